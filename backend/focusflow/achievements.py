from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from .models import Achievement, PomodoroSession, User
from .utils import local_day, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementDefinition:
    key: str
    title: str
    description: str
    icon: str
    predicate: Callable[[int, int], bool]  # (today_count, total_count)


ACHIEVEMENT_CATALOG: List[AchievementDefinition] = [
    AchievementDefinition(
        key="first_session",
        title="Getting Started",
        description="Complete your first Pomodoro session",
        icon="🎯",
        predicate=lambda today, total: total >= 1,
    ),
    AchievementDefinition(
        key="daily_5",
        title="Focused Day",
        description="Complete 5 sessions in one day",
        icon="🔥",
        predicate=lambda today, total: today >= 5,
    ),
    AchievementDefinition(
        key="daily_10",
        title="Productivity Master",
        description="Complete 10 sessions in one day",
        icon="⚡",
        predicate=lambda today, total: today >= 10,
    ),
    AchievementDefinition(
        key="total_50",
        title="Dedicated Learner",
        description="Complete 50 total sessions",
        icon="📚",
        predicate=lambda today, total: total >= 50,
    ),
    AchievementDefinition(
        key="total_100",
        title="Focus Champion",
        description="Complete 100 total sessions",
        icon="🏆",
        predicate=lambda today, total: total >= 100,
    ),
]


def earned_keys(
    today_count: int,
    total_count: int,
    catalog: Optional[List[AchievementDefinition]] = None,
) -> List[str]:
    """Catalog keys whose predicate holds for the given work-session counts."""
    entries = ACHIEVEMENT_CATALOG if catalog is None else catalog
    return [entry.key for entry in entries if entry.predicate(today_count, total_count)]


def _work_session_counts(db: Session, user: User, today: dt.date) -> tuple[int, int]:
    base = db.query(PomodoroSession).filter(
        PomodoroSession.user_id == user.id,
        PomodoroSession.type == "work",
    )
    total = base.count()
    today_count = base.filter(PomodoroSession.date == today).count()
    return today_count, total


def evaluate_achievements(
    db: Session,
    user: User,
    now: Optional[dt.datetime] = None,
    catalog: Optional[List[AchievementDefinition]] = None,
) -> List[Achievement]:
    """Unlock every achievement whose condition currently holds.

    Unlocks are monotone: existing rows are never revisited or revoked, and a
    key that is already unlocked for the user is skipped.
    """
    moment = now or now_ms()
    entries = ACHIEVEMENT_CATALOG if catalog is None else catalog
    today_count, total_count = _work_session_counts(db, user, local_day(moment))

    earned = set(earned_keys(today_count, total_count, entries))

    unlocked: List[Achievement] = []
    for entry in entries:
        if entry.key not in earned:
            continue
        existing = (
            db.query(Achievement)
            .filter(Achievement.user_id == user.id, Achievement.type == entry.key)
            .one_or_none()
        )
        if existing:
            continue
        achievement = Achievement(
            user_id=user.id,
            type=entry.key,
            title=entry.title,
            description=entry.description,
            icon=entry.icon,
            unlocked_at=moment,
        )
        db.add(achievement)
        db.commit()
        db.refresh(achievement)
        logger.info("Achievement unlocked: user=%s type=%s", user.id, entry.key)
        unlocked.append(achievement)
    return unlocked


def list_achievements(db: Session, user: User) -> List[Achievement]:
    return (
        db.query(Achievement)
        .filter(Achievement.user_id == user.id)
        .order_by(Achievement.unlocked_at.desc(), Achievement.id.desc())
        .all()
    )
