"""
SessionStore and TokenStore: persistence for user_sessions and session_tokens.

Both wrap a Repository for their model and work inside the transaction of the
caller (the SQLAlchemy session is always passed in). Nothing here commits.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Literal, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from models import SessionToken, UserSession, utcnow
from services.errors import StorageError
from services.repository import Repository
from utils.result import Result, fail, success

logger = logging.getLogger(__name__)

DEFAULT_IDLE_THRESHOLD = timedelta(days=1)

# Which sessions a delete targets:
#   user_session       - the one whose session_hash matches
#   all_sessions       - every session of user_id
#   idle_session       - non-persistent sessions unused for longer than the idle threshold
#   expired_persistent - persistent sessions whose expires_at has been reached
DeleteScope = Literal["user_session", "all_sessions", "idle_session", "expired_persistent"]


class SessionStore:
    def __init__(self, idle_threshold: timedelta = DEFAULT_IDLE_THRESHOLD):
        self._repo = Repository(UserSession)
        self.idle_threshold = idle_threshold

    def insert_session(
        self,
        session: Session,
        *,
        user_id: int,
        session_hash: str,
        now: datetime,
        expires_at: Optional[datetime] = None,
    ) -> Result[UserSession, StorageError]:
        logger.info("[UserSession] Attempting to insert new user session for user %s", user_id)
        row = UserSession(
            user_id=user_id,
            session_hash=session_hash,
            created_at=now,
            last_used_at=now,
            expires_at=expires_at,
        )
        outcome = self._repo.insert(session, row)
        if outcome.success:
            logger.info("[UserSession] User session inserted with id: %s", row.session_id)
        return outcome

    def get_by_hash(self, session: Session, session_hash: str) -> Result[Optional[UserSession], StorageError]:
        return self._repo.first(session, UserSession.session_hash == session_hash)

    def update_last_used(self, session: Session, user_session: UserSession, now: datetime) -> Result[int, StorageError]:
        """Bump last_used_at of a loaded session; the result is its id"""
        outcome = self._repo.update(
            session,
            UserSession.session_id == user_session.session_id,
            values={"last_used_at": now},
        )
        if not outcome.success:
            return outcome
        if outcome.result != 1:
            return fail(StorageError("Failed updating session."))
        return success(user_session.session_id, "DB_UPDATE")

    def is_lapsed(self, user_session: UserSession, now: datetime) -> bool:
        """True for a session a sweep would reclaim, swept or not"""
        if user_session.expires_at is not None:
            return user_session.expires_at <= now
        return user_session.last_used_at < now - self.idle_threshold

    def select_ids(
        self,
        session: Session,
        scope: DeleteScope,
        *,
        now: Optional[datetime] = None,
        session_hash: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> Result[List[int], StorageError]:
        return self._repo.ids(session, self._scope_condition(scope, now or utcnow(), session_hash, user_id))

    def delete_by_ids(self, session: Session, ids: Iterable[int]) -> Result[List[int], StorageError]:
        outcome = self._repo.delete_by_ids(session, ids)
        if outcome.success and outcome.result:
            logger.info("[UserSession] Deleted session/s: %s", outcome.result)
        return outcome

    def count(self, session: Session, *criteria) -> Result[int, StorageError]:
        return self._repo.count(session, *criteria)

    def _scope_condition(self, scope, now, session_hash, user_id):
        if scope == "user_session":
            if session_hash is None:
                raise ValueError("session_hash is required for scope 'user_session'")
            return UserSession.session_hash == session_hash
        if scope == "all_sessions":
            if user_id is None:
                raise ValueError("user_id is required for scope 'all_sessions'")
            return UserSession.user_id == user_id
        if scope == "expired_persistent":
            return and_(UserSession.expires_at.is_not(None), UserSession.expires_at <= now)
        if scope == "idle_session":
            return and_(
                UserSession.expires_at.is_(None),
                UserSession.last_used_at < now - self.idle_threshold,
            )
        raise ValueError(f"Invalid scope provided: {scope}")


class TokenStore:
    def __init__(self):
        self._repo = Repository(SessionToken)

    def insert_token(
        self,
        session: Session,
        *,
        session_id: int,
        token_hash: str,
        now: datetime,
        expires_at: Optional[datetime] = None,
    ) -> Result[SessionToken, StorageError]:
        row = SessionToken(
            session_id=session_id,
            token_hash=token_hash,
            created_at=now,
            expires_at=expires_at,
            is_used=False,
        )
        return self._repo.insert(session, row)

    def get_tokens(self, session: Session, token_hash: str) -> Result[List[SessionToken], StorageError]:
        return self._repo.rows(session, SessionToken.token_hash == token_hash)

    def invalidate(self, session: Session, token: SessionToken) -> Result[bool, StorageError]:
        """
        Mark token used only if it is still unused.
        Success(False) means another transaction rotated it out first.
        """
        outcome = self._repo.update(
            session,
            SessionToken.token_id == token.token_id,
            SessionToken.is_used.is_(False),
            values={"is_used": True},
        )
        if not outcome.success:
            return outcome
        return success(outcome.result == 1, "DB_UPDATE")

    def delete_for_sessions(self, session: Session, session_ids: Iterable[int]) -> Result[List[int], StorageError]:
        session_ids = list(session_ids)
        if not session_ids:
            return success([], "DB_DELETE")
        return self._repo.delete_where(session, SessionToken.session_id.in_(session_ids))

    def count(self, session: Session, *criteria) -> Result[int, StorageError]:
        return self._repo.count(session, *criteria)
