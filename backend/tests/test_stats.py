from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy.orm import Session

from focusflow import models
from focusflow.services import record_session, today_stats, upsert_user_settings, weekly_stats


def _settings(**overrides):
    values = {
        "work_duration": 25,
        "short_break_duration": 5,
        "long_break_duration": 15,
        "sessions_until_long_break": 4,
        "sound_enabled": True,
        "notifications_enabled": True,
        "theme": "dark",
    }
    values.update(overrides)
    return values


def test_today_summary_with_default_goal(session: Session, user: models.User, noon: dt.datetime):
    for _ in range(5):
        record_session(session, user, "work", 25, now=noon)
    record_session(session, user, "break", 5, now=noon)
    record_session(session, user, "work", 25, now=noon - dt.timedelta(days=1))

    stats = today_stats(session, user, now=noon)
    assert stats["work_sessions"] == 5
    assert stats["total_sessions"] == 6
    assert stats["total_minutes"] == 130
    assert stats["daily_goal"] == 8
    assert stats["goal_progress"] == pytest.approx(62.5)


def test_goal_progress_is_clamped(session: Session, user: models.User, noon: dt.datetime):
    upsert_user_settings(session, user, _settings(daily_goal=2))
    for _ in range(3):
        record_session(session, user, "work", 25, now=noon)
    stats = today_stats(session, user, now=noon)
    assert stats["work_sessions"] == 3
    assert stats["goal_progress"] == 100


def test_weekly_summary_has_seven_buckets_when_empty(session: Session, user: models.User, noon: dt.datetime):
    buckets = weekly_stats(session, user, now=noon)
    assert len(buckets) == 7
    assert buckets[0]["date"] == dt.date(2024, 3, 4)
    assert buckets[-1]["date"] == dt.date(2024, 3, 10)
    assert all(bucket["sessions"] == 0 and bucket["minutes"] == 0 for bucket in buckets)


def test_weekly_summary_counts_work_sessions_per_day(session: Session, user: models.User, noon: dt.datetime):
    record_session(session, user, "work", 25, now=noon)
    record_session(session, user, "work", 50, now=noon)
    record_session(session, user, "break", 5, now=noon)
    record_session(session, user, "work", 25, now=noon - dt.timedelta(days=6))
    # inside the 7*24h scan but on a day before the first bucket
    record_session(session, user, "work", 25, now=noon - dt.timedelta(days=6, hours=23))
    # outside the window entirely
    record_session(session, user, "work", 25, now=noon - dt.timedelta(days=9))

    buckets = weekly_stats(session, user, now=noon)
    by_day = {bucket["date"]: bucket for bucket in buckets}
    assert by_day[dt.date(2024, 3, 10)] == {"date": dt.date(2024, 3, 10), "sessions": 2, "minutes": 75}
    assert by_day[dt.date(2024, 3, 4)]["sessions"] == 1
    assert sum(bucket["sessions"] for bucket in buckets) == 3


def test_weekly_summary_ignores_other_users(
    session: Session,
    user: models.User,
    other_user: models.User,
    noon: dt.datetime,
):
    record_session(session, other_user, "work", 25, now=noon)
    buckets = weekly_stats(session, user, now=noon)
    assert sum(bucket["sessions"] for bucket in buckets) == 0


def test_stats_endpoints(client, auth_headers):
    client.post("/sessions", json={"type": "work", "duration": 25}, headers=auth_headers)
    today = client.get("/stats/today", headers=auth_headers)
    assert today.status_code == 200
    assert today.json() == {
        "workSessions": 1,
        "totalMinutes": 25,
        "totalSessions": 1,
        "dailyGoal": 8,
        "goalProgress": 12.5,
    }

    weekly = client.get("/stats/weekly", headers=auth_headers)
    assert weekly.status_code == 200
    data = weekly.json()
    assert len(data) == 7
    assert data[-1]["sessions"] == 1
    assert data[-1]["minutes"] == 25


def test_stats_fail_closed_when_unauthenticated(client):
    assert client.get("/stats/today").json() is None
    assert client.get("/stats/weekly").json() == []
