from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from focusflow.config import settings


@pytest.fixture(autouse=True)
def slow_clock(monkeypatch):
    # keep real ticks out of the way; tests drive phases with skip
    monkeypatch.setattr(settings, "tick_interval_seconds", 3600.0)
    monkeypatch.setattr(settings, "auto_start_delay_seconds", 3600.0)


def _token(headers) -> str:
    return headers["Authorization"].split(" ", 1)[1]


def test_unknown_token_is_refused(client: TestClient):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws/timer?token=bogus") as websocket:
            websocket.receive_json()
    assert excinfo.value.code == 1008


def test_initial_snapshot_reflects_saved_settings(client: TestClient, auth_headers):
    client.put(
        "/settings",
        json={
            "workDuration": 40,
            "shortBreakDuration": 5,
            "longBreakDuration": 15,
            "sessionsUntilLongBreak": 4,
            "soundEnabled": True,
            "notificationsEnabled": True,
            "theme": "dark",
        },
        headers=auth_headers,
    )
    with client.websocket_connect(f"/ws/timer?token={_token(auth_headers)}") as websocket:
        event = websocket.receive_json()
        assert event == {
            "type": "snapshot",
            "timer": {
                "state": "idle",
                "phase": "work",
                "remainingSeconds": 2400,
                "plannedSeconds": 2400,
                "completedCycles": 0,
                "taskId": None,
            },
        }


def test_start_then_skip_records_session(client: TestClient, auth_headers):
    task = client.post(
        "/tasks",
        json={"title": "Inbox zero", "estimatedPomodoros": 2, "priority": "low"},
        headers=auth_headers,
    ).json()

    with client.websocket_connect(f"/ws/timer?token={_token(auth_headers)}") as websocket:
        websocket.receive_json()

        websocket.send_json({"action": "select_task", "taskId": task["id"]})
        assert websocket.receive_json()["timer"]["taskId"] == task["id"]

        websocket.send_json({"action": "start"})
        assert websocket.receive_json()["timer"]["state"] == "running"

        websocket.send_json({"action": "skip"})
        completion = websocket.receive_json()
        assert completion["type"] == "phase_complete"
        assert completion["completion"]["phase"] == "work"
        assert completion["completion"]["durationMinutes"] == 25
        assert completion["completion"]["skipped"] is True
        assert completion["completion"]["nextPhase"] == "break"

        snapshot = websocket.receive_json()
        assert snapshot["timer"]["state"] == "idle"
        assert snapshot["timer"]["phase"] == "break"
        assert snapshot["timer"]["remainingSeconds"] == 300

    sessions = client.get("/sessions", headers=auth_headers).json()
    assert len(sessions) == 1
    assert sessions[0]["type"] == "work"
    assert sessions[0]["duration"] == 25
    assert sessions[0]["taskId"] == task["id"]
    assert client.get(f"/tasks/{task['id']}", headers=auth_headers).json()["completedPomodoros"] == 1
    achievements = client.get("/achievements", headers=auth_headers).json()
    assert [item["type"] for item in achievements] == ["first_session"]


def test_pause_while_running(client: TestClient, auth_headers):
    with client.websocket_connect(f"/ws/timer?token={_token(auth_headers)}") as websocket:
        websocket.receive_json()
        websocket.send_json({"action": "start"})
        websocket.receive_json()
        websocket.send_json({"action": "pause"})
        assert websocket.receive_json()["timer"]["state"] == "paused"
        websocket.send_json({"action": "reset"})
        timer = websocket.receive_json()["timer"]
        assert timer["state"] == "idle"
        assert timer["remainingSeconds"] == 1500


def test_foreign_task_cannot_be_selected(client: TestClient, register):
    owner = register("Alice")
    intruder = register("Bob")
    task = client.post(
        "/tasks",
        json={"title": "Private", "estimatedPomodoros": 1, "priority": "high"},
        headers=owner,
    ).json()

    with client.websocket_connect(f"/ws/timer?token={_token(intruder)}") as websocket:
        websocket.receive_json()
        websocket.send_json({"action": "select_task", "taskId": task["id"]})
        assert websocket.receive_json() == {"type": "error", "detail": "Task not found or unauthorized"}
        websocket.send_json({"action": "snapshot"})
        assert websocket.receive_json()["timer"]["taskId"] is None


def test_malformed_command_keeps_connection_open(client: TestClient, auth_headers):
    with client.websocket_connect(f"/ws/timer?token={_token(auth_headers)}") as websocket:
        websocket.receive_json()
        websocket.send_text("not json")
        assert websocket.receive_json() == {"type": "error", "detail": "Invalid timer command"}
        websocket.send_json({"action": "rewind"})
        assert websocket.receive_json()["type"] == "error"
        websocket.send_json({"action": "snapshot"})
        assert websocket.receive_json()["type"] == "snapshot"
