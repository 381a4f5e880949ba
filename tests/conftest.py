import os
import tempfile

# Settings are cached on first import; point them at a scratch directory.
os.environ.setdefault("FINTRACK_DATA_DIR", tempfile.mkdtemp(prefix="fintrack-tests-"))
os.environ.setdefault("FINTRACK_TIMEZONE", "Asia/Kolkata")
os.environ.pop("FINTRACK_LLM_API_KEY", None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import User


@pytest.fixture()
def session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    engine.dispose()


@pytest.fixture()
def user(session: Session) -> User:
    user = User(subject="auth0|alice", name="Alice", email="alice@example.com")
    session.add(user)
    session.commit()
    return user


class RecordingPush:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict]] = []

    def __call__(self, subject: str, event: str, payload: dict) -> None:
        self.events.append((subject, event, payload))

    def named(self, event: str) -> list[dict]:
        return [payload for _, name, payload in self.events if name == event]


@pytest.fixture()
def push() -> RecordingPush:
    return RecordingPush()
