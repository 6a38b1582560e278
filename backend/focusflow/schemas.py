from __future__ import annotations

import datetime as dt
from typing import Optional

from typing_extensions import Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

SessionType = Literal["work", "break", "longBreak"]
Priority = Literal["low", "medium", "high"]
Theme = Literal["light", "dark"]
TimerAction = Literal["start", "pause", "reset", "skip", "select_task", "refresh_settings", "snapshot"]


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat(timespec="milliseconds")


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserCreateRequest(ApiModel):
    display_name: Optional[str] = None


class UserResponse(ApiModel):
    id: int
    display_name: Optional[str]
    created_at: dt.datetime

    @field_serializer("created_at", when_used="json")
    def _serialize_created(self, value: dt.datetime) -> str:
        return _serialize_datetime(value)


class UserCreatedResponse(UserResponse):
    token: str


class UserSettingsPayload(ApiModel):
    work_duration: int
    short_break_duration: int
    long_break_duration: int
    sessions_until_long_break: int
    sound_enabled: bool
    notifications_enabled: bool
    theme: Theme
    auto_start_breaks: Optional[bool] = None
    auto_start_pomodoros: Optional[bool] = None
    daily_goal: Optional[int] = None


class UserSettingsResponse(ApiModel):
    work_duration: int
    short_break_duration: int
    long_break_duration: int
    sessions_until_long_break: int
    sound_enabled: bool
    notifications_enabled: bool
    theme: Theme
    auto_start_breaks: bool
    auto_start_pomodoros: bool
    daily_goal: int


class SessionCreateRequest(ApiModel):
    type: SessionType
    duration: int = Field(ge=1)
    task_id: Optional[int] = None


class SessionResponse(ApiModel):
    id: int
    type: SessionType
    duration: int
    completed_at: dt.datetime
    date: dt.date
    task_id: Optional[int]

    @field_serializer("completed_at", when_used="json")
    def _serialize_completed(self, value: dt.datetime) -> str:
        return _serialize_datetime(value)


class TodayStatsResponse(ApiModel):
    work_sessions: int
    total_minutes: int
    total_sessions: int
    daily_goal: int
    goal_progress: float


class DayStatsResponse(ApiModel):
    date: dt.date
    sessions: int
    minutes: int


class AchievementResponse(ApiModel):
    id: int
    type: str
    title: str
    description: str
    icon: str
    unlocked_at: dt.datetime

    @field_serializer("unlocked_at", when_used="json")
    def _serialize_unlocked(self, value: dt.datetime) -> str:
        return _serialize_datetime(value)


class TaskCreateRequest(ApiModel):
    title: str
    description: Optional[str] = None
    estimated_pomodoros: int = 1
    priority: Priority = "medium"
    category: Optional[str] = None
    due_date: Optional[dt.date] = None


class TaskUpdateRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None
    estimated_pomodoros: Optional[int] = None
    priority: Optional[Priority] = None
    category: Optional[str] = None
    due_date: Optional[dt.date] = None


class TaskResponse(ApiModel):
    id: int
    title: str
    description: Optional[str]
    completed: bool
    estimated_pomodoros: int
    completed_pomodoros: int
    priority: Priority
    category: Optional[str]
    due_date: Optional[dt.date]
    created_at: dt.datetime

    @field_serializer("created_at", when_used="json")
    def _serialize_created(self, value: dt.datetime) -> str:
        return _serialize_datetime(value)


class TimerCommand(ApiModel):
    action: TimerAction
    task_id: Optional[int] = None
