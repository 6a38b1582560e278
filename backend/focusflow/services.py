from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from .achievements import evaluate_achievements
from .models import SESSION_TYPES, TASK_PRIORITIES, THEMES, PomodoroSession, Task, User, UserSettings
from .timer import TimerSettings
from .utils import as_utc, local_day, normalize_text, now_ms, truncate_ms

logger = logging.getLogger(__name__)


DEFAULT_USER_SETTINGS: Dict[str, Any] = {
    "work_duration": 25,
    "short_break_duration": 5,
    "long_break_duration": 15,
    "sessions_until_long_break": 4,
    "sound_enabled": True,
    "notifications_enabled": True,
    "theme": "dark",
    "auto_start_breaks": False,
    "auto_start_pomodoros": False,
    "daily_goal": 8,
}

REQUIRED_SETTINGS_FIELDS = (
    "work_duration",
    "short_break_duration",
    "long_break_duration",
    "sessions_until_long_break",
    "sound_enabled",
    "notifications_enabled",
    "theme",
)
OPTIONAL_SETTINGS_FIELDS = ("auto_start_breaks", "auto_start_pomodoros", "daily_goal")

POSITIVE_SETTINGS_FIELDS = (
    "work_duration",
    "short_break_duration",
    "long_break_duration",
    "sessions_until_long_break",
    "daily_goal",
)

TASK_UPDATE_FIELDS = {
    "title",
    "description",
    "completed",
    "estimated_pomodoros",
    "priority",
    "category",
    "due_date",
}

WEEK_DAYS = 7

TASK_NOT_FOUND = "Task not found or unauthorized"


def _invalid(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _get_settings_record(db: Session, user: User) -> Optional[UserSettings]:
    return db.query(UserSettings).filter(UserSettings.user_id == user.id).one_or_none()


def merge_settings_defaults(record: Optional[UserSettings]) -> Dict[str, Any]:
    merged = dict(DEFAULT_USER_SETTINGS)
    if record is None:
        return merged
    for field in REQUIRED_SETTINGS_FIELDS + OPTIONAL_SETTINGS_FIELDS:
        value = getattr(record, field)
        if value is not None:
            merged[field] = value
    return merged


def get_user_settings(db: Session, user: User) -> Dict[str, Any]:
    return merge_settings_defaults(_get_settings_record(db, user))


def validate_settings(values: Dict[str, Any]) -> None:
    for field in REQUIRED_SETTINGS_FIELDS:
        if values.get(field) is None:
            raise _invalid(f"Missing setting: {field}")
    for field in POSITIVE_SETTINGS_FIELDS:
        value = values.get(field)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise _invalid(f"{field} must be a positive integer")
    if values["theme"] not in THEMES:
        raise _invalid("theme must be 'light' or 'dark'")


def upsert_user_settings(db: Session, user: User, values: Dict[str, Any]) -> Dict[str, Any]:
    validate_settings(values)
    record = _get_settings_record(db, user)
    if record is None:
        record = UserSettings(user_id=user.id)
    for field in REQUIRED_SETTINGS_FIELDS + OPTIONAL_SETTINGS_FIELDS:
        setattr(record, field, values.get(field))
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("Settings saved for user=%s", user.id)
    return merge_settings_defaults(record)


def timer_settings(values: Dict[str, Any]) -> TimerSettings:
    return TimerSettings(
        work_duration=values["work_duration"],
        short_break_duration=values["short_break_duration"],
        long_break_duration=values["long_break_duration"],
        sessions_until_long_break=values["sessions_until_long_break"],
        auto_start_breaks=bool(values["auto_start_breaks"]),
        auto_start_pomodoros=bool(values["auto_start_pomodoros"]),
    )


def load_timer_settings(db: Session, user: User) -> TimerSettings:
    return timer_settings(get_user_settings(db, user))


def record_session(
    db: Session,
    user: User,
    session_type: str,
    duration: int,
    task_id: Optional[int] = None,
    now: Optional[dt.datetime] = None,
) -> PomodoroSession:
    """Store a finished phase, credit its task and re-check achievements.

    The session insert and the task counter update are separate commits; a
    failure in between leaves the session without a counter bump.
    """
    if session_type not in SESSION_TYPES:
        raise _invalid(f"Unknown session type: {session_type}")
    if duration < 1:
        raise _invalid("duration must be a positive integer")
    completed_at = truncate_ms(as_utc(now)) if now else now_ms()
    task = None
    if session_type == "work" and task_id is not None:
        task = find_task(db, user, task_id)
    linked_task_id = task.id if task is not None else None

    session = PomodoroSession(
        user_id=user.id,
        type=session_type,
        duration=duration,
        completed_at=completed_at,
        date=local_day(completed_at),
        task_id=linked_task_id,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info("Recorded %s session id=%s user=%s", session_type, session.id, user.id)

    if task is not None:
        task.completed_pomodoros = (task.completed_pomodoros or 0) + 1
        db.add(task)
        db.commit()

    evaluate_achievements(db, user, completed_at)
    return session


def list_sessions(db: Session, user: User, day: Optional[dt.date] = None) -> List[PomodoroSession]:
    query = db.query(PomodoroSession).filter(PomodoroSession.user_id == user.id)
    if day is not None:
        query = query.filter(PomodoroSession.date == day)
    return query.order_by(PomodoroSession.completed_at.desc(), PomodoroSession.id.desc()).all()


def today_stats(db: Session, user: User, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
    today = local_day(now or now_ms())
    sessions = list_sessions(db, user, today)
    work_sessions = sum(1 for session in sessions if session.type == "work")
    total_minutes = sum(session.duration for session in sessions)
    daily_goal = get_user_settings(db, user)["daily_goal"]
    return {
        "work_sessions": work_sessions,
        "total_minutes": total_minutes,
        "total_sessions": len(sessions),
        "daily_goal": daily_goal,
        "goal_progress": min(work_sessions / daily_goal * 100, 100),
    }


def weekly_stats(db: Session, user: User, now: Optional[dt.datetime] = None) -> List[Dict[str, Any]]:
    moment = as_utc(now) if now else now_ms()
    today = local_day(moment)
    buckets: Dict[dt.date, Dict[str, Any]] = {}
    for offset in range(WEEK_DAYS - 1, -1, -1):
        day = today - dt.timedelta(days=offset)
        buckets[day] = {"date": day, "sessions": 0, "minutes": 0}

    window_start = moment - dt.timedelta(days=WEEK_DAYS)
    sessions = (
        db.query(PomodoroSession)
        .filter(
            PomodoroSession.user_id == user.id,
            PomodoroSession.completed_at >= window_start,
        )
        .all()
    )
    for session in sessions:
        bucket = buckets.get(session.date)
        if bucket is None or session.type != "work":
            continue
        bucket["sessions"] += 1
        bucket["minutes"] += session.duration
    return list(buckets.values())


def _owned_task(db: Session, user: User, task_id: int) -> Task:
    task = db.get(Task, task_id)
    if task is None or task.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=TASK_NOT_FOUND)
    return task


def _validate_task_fields(values: Dict[str, Any]) -> None:
    if "title" in values and values["title"] is None:
        raise _invalid("Task title must not be empty")
    estimated = values.get("estimated_pomodoros")
    if estimated is not None and estimated < 1:
        raise _invalid("estimated_pomodoros must be a positive integer")
    priority = values.get("priority")
    if priority is not None and priority not in TASK_PRIORITIES:
        raise _invalid("priority must be one of low, medium, high")


def create_task(
    db: Session,
    user: User,
    title: str,
    estimated_pomodoros: int,
    priority: str,
    description: Optional[str] = None,
    category: Optional[str] = None,
    due_date: Optional[dt.date] = None,
) -> Task:
    values = {
        "title": normalize_text(title),
        "estimated_pomodoros": estimated_pomodoros,
        "priority": priority,
    }
    _validate_task_fields(values)
    task = Task(
        user_id=user.id,
        title=values["title"],
        description=normalize_text(description),
        completed=False,
        estimated_pomodoros=estimated_pomodoros,
        completed_pomodoros=0,
        priority=priority,
        category=normalize_text(category),
        due_date=due_date,
        created_at=now_ms(),
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def get_task(db: Session, user: User, task_id: int) -> Task:
    return _owned_task(db, user, task_id)


def find_task(db: Session, user: User, task_id: int) -> Optional[Task]:
    task = db.get(Task, task_id)
    if task is None or task.user_id != user.id:
        return None
    return task


def list_tasks(db: Session, user: User, completed: Optional[bool] = None) -> List[Task]:
    query = db.query(Task).filter(Task.user_id == user.id)
    if completed is not None:
        query = query.filter(Task.completed == completed)
    return query.order_by(Task.created_at.desc(), Task.id.desc()).all()


def update_task(db: Session, user: User, task_id: int, changes: Dict[str, Any]) -> Task:
    task = _owned_task(db, user, task_id)
    normalized = {key: value for key, value in changes.items() if key in TASK_UPDATE_FIELDS}
    if "title" in normalized:
        normalized["title"] = normalize_text(normalized["title"])
    for key in ("description", "category"):
        if key in normalized:
            normalized[key] = normalize_text(normalized[key])
    _validate_task_fields(normalized)
    if "completed" in normalized and normalized["completed"] is None:
        normalized.pop("completed")
    if "estimated_pomodoros" in normalized and normalized["estimated_pomodoros"] is None:
        normalized.pop("estimated_pomodoros")
    if "priority" in normalized and normalized["priority"] is None:
        normalized.pop("priority")

    for key, value in normalized.items():
        setattr(task, key, value)
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def delete_task(db: Session, user: User, task_id: int) -> None:
    task = _owned_task(db, user, task_id)
    db.delete(task)
    db.commit()
