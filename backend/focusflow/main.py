from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Response, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import models
from .achievements import list_achievements
from .clock import LoopClock
from .config import settings
from .controller import TimerController
from .database import engine, get_db
from .identity import create_user, current_user, require_user, resolve_user
from .middleware import RequestLogMiddleware
from .schemas import (
    AchievementResponse,
    DayStatsResponse,
    SessionCreateRequest,
    SessionResponse,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
    TimerCommand,
    TodayStatsResponse,
    UserCreatedResponse,
    UserCreateRequest,
    UserResponse,
    UserSettingsPayload,
    UserSettingsResponse,
)
from .services import (
    create_task,
    delete_task,
    find_task,
    get_task,
    get_user_settings,
    list_sessions,
    list_tasks,
    load_timer_settings,
    record_session,
    today_stats,
    update_task,
    upsert_user_settings,
    weekly_stats,
)
from .timer import PhaseCompletion

logger = logging.getLogger(__name__)

SETTINGS_EXPORT_FILENAME = "focusflow-settings.json"


models.Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name)
app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/users", response_model=UserCreatedResponse, status_code=status.HTTP_201_CREATED)
def register_user(payload: UserCreateRequest, db: Session = Depends(get_db)) -> UserCreatedResponse:
    user, token_value = create_user(db, payload.display_name)
    return UserCreatedResponse(
        id=user.id,
        display_name=user.display_name,
        created_at=user.created_at,
        token=token_value,
    )


@app.get("/me", response_model=UserResponse)
def read_me(user: models.User = Depends(require_user)) -> UserResponse:
    return user


@app.get("/settings", response_model=Optional[UserSettingsResponse])
def read_settings(
    user: Optional[models.User] = Depends(current_user),
    db: Session = Depends(get_db),
) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return get_user_settings(db, user)


@app.put("/settings", response_model=UserSettingsResponse)
def write_settings(
    payload: UserSettingsPayload,
    user: models.User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return upsert_user_settings(db, user, payload.model_dump())


@app.get("/settings/export")
def export_settings(
    user: models.User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Response:
    values = UserSettingsResponse.model_validate(get_user_settings(db, user))
    headers = {"Content-Disposition": f'attachment; filename="{SETTINGS_EXPORT_FILENAME}"'}
    return JSONResponse(values.model_dump(mode="json", by_alias=True), headers=headers)


@app.post("/settings/import", response_model=UserSettingsResponse)
def import_settings(
    payload: UserSettingsPayload,
    user: models.User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return upsert_user_settings(db, user, payload.model_dump())


@app.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def save_session(
    payload: SessionCreateRequest,
    user: models.User = Depends(require_user),
    db: Session = Depends(get_db),
) -> SessionResponse:
    return record_session(db, user, payload.type, payload.duration, payload.task_id)


@app.get("/sessions", response_model=list[SessionResponse])
def get_sessions(
    date: Optional[dt.date] = None,
    user: Optional[models.User] = Depends(current_user),
    db: Session = Depends(get_db),
) -> list[SessionResponse]:
    if user is None:
        return []
    return list_sessions(db, user, date)


@app.get("/stats/today", response_model=Optional[TodayStatsResponse])
def get_today_stats(
    user: Optional[models.User] = Depends(current_user),
    db: Session = Depends(get_db),
) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return today_stats(db, user)


@app.get("/stats/weekly", response_model=list[DayStatsResponse])
def get_weekly_stats(
    user: Optional[models.User] = Depends(current_user),
    db: Session = Depends(get_db),
) -> list[Dict[str, Any]]:
    if user is None:
        return []
    return weekly_stats(db, user)


@app.get("/achievements", response_model=list[AchievementResponse])
def get_achievements(
    user: Optional[models.User] = Depends(current_user),
    db: Session = Depends(get_db),
) -> list[AchievementResponse]:
    if user is None:
        return []
    return list_achievements(db, user)


@app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task_entry(
    payload: TaskCreateRequest,
    user: models.User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TaskResponse:
    return create_task(
        db,
        user,
        payload.title,
        payload.estimated_pomodoros,
        payload.priority,
        payload.description,
        payload.category,
        payload.due_date,
    )


@app.get("/tasks", response_model=list[TaskResponse])
def get_tasks(
    completed: Optional[bool] = None,
    user: Optional[models.User] = Depends(current_user),
    db: Session = Depends(get_db),
) -> list[TaskResponse]:
    if user is None:
        return []
    return list_tasks(db, user, completed)


@app.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task_entry(
    task_id: int,
    user: models.User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TaskResponse:
    return get_task(db, user, task_id)


@app.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task_entry(
    task_id: int,
    payload: TaskUpdateRequest,
    user: models.User = Depends(require_user),
    db: Session = Depends(get_db),
) -> TaskResponse:
    changes = payload.model_dump(exclude_unset=True)
    return update_task(db, user, task_id, changes)


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task_entry(
    task_id: int,
    user: models.User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Response:
    delete_task(db, user, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def _forward_events(websocket: WebSocket, outbox: "asyncio.Queue[Dict[str, Any]]") -> None:
    while True:
        event = await outbox.get()
        await websocket.send_json(event)


@app.websocket("/ws/timer")
async def timer_socket(
    websocket: WebSocket,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
) -> None:
    user = resolve_user(db, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def record_completion(completion: PhaseCompletion) -> None:
        try:
            record_session(db, user, completion.phase, completion.duration_minutes, completion.task_id)
        except Exception:
            db.rollback()
            raise

    controller = TimerController(
        LoopClock(),
        lambda: load_timer_settings(db, user),
        record_completion,
        outbox.put_nowait,
        tick_interval=settings.tick_interval_seconds,
        auto_start_delay=settings.auto_start_delay_seconds,
    )
    sender = asyncio.create_task(_forward_events(websocket, outbox))
    logger.info("Timer connected: user=%s", user.id)
    controller.publish_snapshot()
    try:
        while True:
            message = await websocket.receive_text()
            try:
                command = TimerCommand.model_validate_json(message)
            except ValueError:
                outbox.put_nowait({"type": "error", "detail": "Invalid timer command"})
                continue
            if command.action == "select_task":
                if command.task_id is not None and find_task(db, user, command.task_id) is None:
                    outbox.put_nowait({"type": "error", "detail": "Task not found or unauthorized"})
                    continue
                controller.select_task(command.task_id)
            elif command.action == "refresh_settings":
                controller.refresh_settings()
            elif command.action == "snapshot":
                controller.publish_snapshot()
            else:
                controller.dispatch(command.action)
    except WebSocketDisconnect:
        logger.info("Timer disconnected: user=%s", user.id)
    finally:
        controller.close()
        sender.cancel()
