"""
Refresh token rotation.

A rotation runs as one transaction:
1. resolve the session by the hash of its session number and bump last_used_at
2. mark the presented (old) token used; it must exist, belong to the session,
   not be expired, and still be unused
3. refuse a new token whose hash is already on record as used
4. store the new token as the session's only unused one

Any failing step rolls back all of them.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from models import utcnow
from models.db_storage import DBStorage
from services.errors import (
    AuthError,
    SessionNotFound,
    StaleOldToken,
    TokenReuseDetected,
)
from services.stores import SessionStore, TokenStore
from utils.result import Result, fail, success
from utils.security import hash_secret

logger = logging.getLogger(__name__)


class TokenRotator:
    def __init__(
        self,
        storage: DBStorage,
        session_store: SessionStore,
        token_store: TokenStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._storage = storage
        self._sessions = session_store
        self._tokens = token_store
        self._clock = clock

    def rotate(self, session_number: str, raw_old_token: str, raw_new_token: str) -> Result[int, AuthError]:
        """Swap the session's live refresh token; the result is the session id."""
        now = self._clock()

        def _rotate(db):
            touched = self._touch_session(db, session_number, now)
            if not touched.success:
                return touched
            session_id = touched.result

            invalidated = self._invalidate_old(db, session_id, raw_old_token, now)
            if not invalidated.success:
                return invalidated

            new_hash = hash_secret(raw_new_token)
            unused = self._ensure_unused(db, new_hash)
            if not unused.success:
                return unused

            stored = self._tokens.insert_token(
                db,
                session_id=session_id,
                token_hash=new_hash,
                now=now,
                expires_at=invalidated.result,
            )
            if not stored.success:
                return stored
            return success(session_id, "TOKEN_ROTATION")

        outcome = self._storage.run_in_transaction(_rotate)
        if not outcome.success:
            logger.warning("Token rotation rejected: %s", outcome.error.to_log())
        return outcome

    def _touch_session(self, db, session_number: str, now: datetime) -> Result[int, AuthError]:
        found = self._sessions.get_by_hash(db, hash_secret(session_number))
        if not found.success:
            return found

        user_session = found.result
        if user_session is None:
            return fail(SessionNotFound("No session matches the session number."))
        if self._sessions.is_lapsed(user_session, now):
            return fail(SessionNotFound(f"Session {user_session.session_id} has lapsed."))

        return self._sessions.update_last_used(db, user_session, now)

    def _invalidate_old(self, db, session_id: int, raw_old_token: str, now: datetime) -> Result:
        """Mark the old token used; the result is its expires_at, inherited by the new token."""
        found = self._tokens.get_tokens(db, hash_secret(raw_old_token))
        if not found.success:
            return found

        token = found.result[0] if found.result else None
        if token is None or token.session_id != session_id:
            return fail(StaleOldToken("Refresh token is not on record for this session."))
        if token.is_used:
            return fail(TokenReuseDetected(f"Refresh token {token.token_id} was already rotated out."))
        if token.expires_at is not None and token.expires_at <= now:
            return fail(StaleOldToken(f"Refresh token {token.token_id} has expired."))

        flipped = self._tokens.invalidate(db, token)
        if not flipped.success:
            return flipped
        if not flipped.result:
            # a concurrent rotation marked it used after we read it
            return fail(TokenReuseDetected(f"Refresh token {token.token_id} was rotated concurrently."))
        return success(token.expires_at, "DB_UPDATE")

    def _ensure_unused(self, db, token_hash: str) -> Result[None, AuthError]:
        found = self._tokens.get_tokens(db, token_hash)
        if not found.success:
            return found
        if any(token.is_used for token in found.result):
            return fail(TokenReuseDetected("New refresh token is already on record as used."))
        return success(None)
