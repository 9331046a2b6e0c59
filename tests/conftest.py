from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from api import create_app
from models import Role, SessionToken, User, UserSession
from models.db_storage import DBStorage
from services.session_service import SessionService
from utils.security import hash_secret

T0 = datetime(2026, 3, 1, 12, 0, 0)


class FakeClock:
    """Callable clock the services read instead of the wall clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


def add_user(storage, username="reader01", user_id=None):
    """Insert a user with the default role and return its id."""
    db = storage.get_session()
    role = db.scalars(select(Role).where(Role.role_name == "user")).one()
    user = User(
        user_id=user_id,
        username=username,
        email=f"{username}@example.com",
        password_hash=f"not-a-real-hash-{username}",
        role_id=role.role_id,
    )
    db.add(user)
    db.commit()
    return user.user_id


@pytest.fixture()
def storage():
    """Fresh in-memory database per test."""
    store = DBStorage("sqlite://")
    store.reload()
    yield store
    store.dispose()


@pytest.fixture()
def file_storage(tmp_path):
    """File-backed database, for tests that need one connection per thread."""
    store = DBStorage(f"sqlite:///{tmp_path / 'auth.db'}")
    store.reload()
    yield store
    store.dispose()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def service(storage, clock):
    return SessionService(storage, clock=clock)


@pytest.fixture()
def make_user(storage):
    def _make(username="reader01", user_id=None):
        return add_user(storage, username, user_id)

    return _make


@pytest.fixture()
def user_id(make_user):
    return make_user()


@pytest.fixture()
def fetch_session(storage):
    """Reload a session row by its raw session number (None when gone)."""
    def _fetch(session_number):
        db = storage.get_session()
        db.expire_all()
        return db.scalars(
            select(UserSession).where(UserSession.session_hash == hash_secret(session_number))
        ).first()

    return _fetch


@pytest.fixture()
def fetch_tokens(storage):
    """Token rows, optionally limited to one session, oldest first."""
    def _fetch(session_id=None):
        db = storage.get_session()
        db.expire_all()
        stmt = select(SessionToken).order_by(SessionToken.token_id)
        if session_id is not None:
            stmt = stmt.where(SessionToken.session_id == session_id)
        return list(db.scalars(stmt).all())

    return _fetch


@pytest.fixture()
def app(storage):
    app = create_app("test", storage=storage)
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()
