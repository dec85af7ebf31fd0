"""Pytest configuration for sync tests

WHAT: Shared fixtures: in-memory database, credential store, notification capture
WHY: Each test gets an isolated SQLite schema shared across sessions (StaticPool),
     and a Fernet key so credentials can be stored and decrypted
"""

import os
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet

os.environ.setdefault("TOKEN_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import adsync.models.sync_models  # noqa: F401  (registers tables)
from adsync.models.sync_models import Client, NotificationType
from adsync.sync.credentials import CredentialStore


class RecordingDispatcher:
    """Stands in for NotificationDispatcher; keeps submitted notifications."""

    def __init__(self):
        self.sent = []

    def submit(self, user_id: str, message: str, category: NotificationType) -> None:
        self.sent.append((user_id, message, category))

    def categories(self):
        return [category for _, _, category in self.sent]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session_factory(engine):
    def factory() -> Session:
        return Session(engine)

    return factory


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def client_row(session):
    client = Client(user_id="user-1", name="Acme")
    session.add(client)
    session.commit()
    session.refresh(client)
    return client


@pytest.fixture
def credentials(session_factory):
    return CredentialStore(session_factory)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def future():
    return datetime.now(timezone.utc) + timedelta(days=30)


@pytest.fixture
def past():
    return datetime.now(timezone.utc) - timedelta(days=1)
