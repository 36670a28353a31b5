"""Shared fixtures.

Every test gets its own in-memory SQLite database. Service-level tests talk to
``LibraryService`` directly; API tests go through FastAPI's TestClient with
``get_db`` overridden to the same database.
"""

import os

# Settings are read at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MQTT_ENABLED"] = "false"

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bookies.database import Base, get_db
from bookies.main import app
from bookies.models import User
from bookies.models.enums import UserRole
from bookies.services.auth import issue_token_for
from bookies.services.library import LibraryService
from bookies.services.lifecycle import Actor, BookState, check_invariants


class RecordingNotifier:
    """Stands in for the MQTT notifier and keeps what would have been sent."""

    def __init__(self):
        self.events = []

    def publish_book_event(self, event, book, request=None):
        self.events.append((event, book, request))
        return True

    @property
    def names(self):
        return [event for event, _, _ in self.events]


def assert_consistent(book) -> None:
    """Status and transient fields agree."""
    check_invariants(BookState.of(book))


# === Database ===


@pytest.fixture
def db_engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# === Service ===


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def library(db_session: Session, notifier: RecordingNotifier) -> LibraryService:
    return LibraryService(db_session, notifier=notifier)


@pytest.fixture
def admin() -> Actor:
    return Actor("admin@bookies.com", is_admin=True)


@pytest.fixture
def alice() -> Actor:
    return Actor("a@x.com")


@pytest.fixture
def bob() -> Actor:
    return Actor("b@x.com")


@pytest.fixture
def book(library: LibraryService, admin: Actor):
    """A fresh, available book."""
    return library.add_book(admin, {
        "title": "Dune",
        "author": "Frank Herbert",
        "category": "Fiction",
        "isbn": "9780441013593",
    })


# === API ===


@pytest.fixture
def client(session_factory) -> Generator[TestClient, None, None]:
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_user(db: Session, email: str, role: UserRole = UserRole.USER) -> User:
    user = User(name=email.split("@")[0], email=email, password_hash="not-used", role=role.value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_token_for(user)}"}


@pytest.fixture
def admin_headers(db_session: Session) -> dict:
    return bearer(make_user(db_session, "admin@bookies.com", UserRole.ADMIN))


@pytest.fixture
def alice_headers(db_session: Session) -> dict:
    return bearer(make_user(db_session, "a@x.com"))


@pytest.fixture
def bob_headers(db_session: Session) -> dict:
    return bearer(make_user(db_session, "b@x.com"))
