from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


SESSION_TYPES = ("work", "break", "longBreak")
TASK_PRIORITIES = ("low", "medium", "high")
THEMES = ("light", "dark")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    display_name = Column(String(100), nullable=True)
    token_hash = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)

    settings = relationship(
        "UserSettings",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )


class UserSettings(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    work_duration = Column(Integer, nullable=False)  # minutes
    short_break_duration = Column(Integer, nullable=False)
    long_break_duration = Column(Integer, nullable=False)
    sessions_until_long_break = Column(Integer, nullable=False)
    sound_enabled = Column(Boolean, nullable=False, default=True)
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    theme = Column(String(10), nullable=False, default="dark")
    # Optional fields stay NULL when omitted; defaults are merged at read time
    auto_start_breaks = Column(Boolean, nullable=True)
    auto_start_pomodoros = Column(Boolean, nullable=True)
    daily_goal = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="settings")


class PomodoroSession(Base):
    __tablename__ = "pomodoro_sessions"
    __table_args__ = (Index("ix_pomodoro_sessions_user_date", "user_id", "date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    duration = Column(Integer, nullable=False)  # planned minutes
    completed_at = Column(DateTime(timezone=True), nullable=False)
    date = Column(Date, nullable=False)
    # Not a foreign key: deleting a task leaves the historical link in place
    task_id = Column(Integer, nullable=True, index=True)


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_user_completed", "user_id", "completed"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    estimated_pomodoros = Column(Integer, nullable=False, default=1)
    completed_pomodoros = Column(Integer, nullable=False, default=0)
    priority = Column(String(10), nullable=False, default="medium")
    category = Column(String(100), nullable=True)
    due_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Achievement(Base):
    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("user_id", "type", name="uq_achievements_user_type"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String(20), nullable=False)
    unlocked_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Goal(Base):
    """Stored for schema compatibility; no handler reads or writes goals yet."""

    __tablename__ = "goals"
    __table_args__ = (
        Index("ix_goals_user_period", "user_id", "period"),
        Index("ix_goals_user_type", "user_id", "type"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String(10), nullable=False)
    target = Column(Integer, nullable=False)
    current = Column(Integer, nullable=False, default=0)
    period = Column(String(10), nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
