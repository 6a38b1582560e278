from __future__ import annotations

import datetime as dt
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

_TEST_DATA_DIR = tempfile.mkdtemp(prefix="focusflow-tests-")
os.environ.setdefault("FF_SQLITE_PATH", str(Path(_TEST_DATA_DIR) / "app.db"))
os.environ["FF_TIMEZONE"] = "UTC"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from focusflow import models
from focusflow.database import get_db
from focusflow.identity import create_user
from focusflow.main import app


@pytest.fixture(scope="session")
def temp_db_path() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "test.db"
        yield path


@pytest.fixture(scope="session")
def engine(temp_db_path: Path):
    url = f"sqlite:///{temp_db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False}, future=True)
    models.Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="function")
def session(engine) -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionTesting = sessionmaker(bind=connection, autoflush=False, autocommit=False, future=True)
    session = SessionTesting()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(scope="function")
def client(session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def user(session: Session) -> models.User:
    created, _ = create_user(session, "Ada")
    return created


@pytest.fixture()
def other_user(session: Session) -> models.User:
    created, _ = create_user(session, "Grace")
    return created


@pytest.fixture()
def register(client: TestClient) -> Callable[[str], Dict[str, str]]:
    """Register a user through the API and return its auth headers."""

    def _register(name: str = "Ada") -> Dict[str, str]:
        response = client.post("/users", json={"displayName": name})
        assert response.status_code == 201
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _register


@pytest.fixture()
def auth_headers(register) -> Dict[str, str]:
    return register("Ada")


@pytest.fixture()
def noon() -> dt.datetime:
    return dt.datetime(2024, 3, 10, 12, 0, tzinfo=dt.timezone.utc)


class ManualCall:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Clock whose time only moves when ``advance`` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self._calls: List[ManualCall] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualCall:
        call = ManualCall(self.now + delay, callback)
        self._calls.append(call)
        return call

    @property
    def pending(self) -> List[ManualCall]:
        return [call for call in self._calls if not call.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = self._next_due(target)
            if due is None:
                break
            self._calls.remove(due)
            self.now = due.when
            due.callback()
        self.now = target

    def _next_due(self, target: float) -> Optional[ManualCall]:
        candidates = [call for call in self.pending if call.when <= target]
        if not candidates:
            return None
        return min(candidates, key=lambda call: call.when)


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()
