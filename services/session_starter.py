from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from models import utcnow
from models.db_storage import DBStorage
from services.errors import SessionStartFailed
from services.stores import SessionStore, TokenStore
from utils.result import Result, fail, success
from utils.security import generate_session_number, hash_secret

logger = logging.getLogger(__name__)


class SessionStarter:
    """Creates a session together with its first refresh token."""

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

    def generate_session_number(self, user_id: int) -> str:
        return generate_session_number(user_id)

    def start_session(
        self,
        user_id: int,
        raw_refresh_token: str,
        expires_at: Optional[datetime] = None,
        session_number: Optional[str] = None,
    ) -> Result[str, SessionStartFailed]:
        """
        Insert the session row and its first token in one transaction and return
        the raw session number. Only sha256 digests of the session number and the
        token reach the database. If either insert fails nothing is kept.
        """
        session_number = session_number or self.generate_session_number(user_id)
        now = self._clock()

        def _insert(db):
            inserted = self._sessions.insert_session(
                db,
                user_id=user_id,
                session_hash=hash_secret(session_number),
                now=now,
                expires_at=expires_at,
            )
            if not inserted.success:
                return inserted

            return self._tokens.insert_token(
                db,
                session_id=inserted.result.session_id,
                token_hash=hash_secret(raw_refresh_token),
                now=now,
                expires_at=expires_at,
            )

        outcome = self._storage.run_in_transaction(_insert)
        if not outcome.success:
            logger.error("Failed starting session for user %s: %s", user_id, outcome.error.to_log())
            return fail(SessionStartFailed(cause=outcome.error))

        logger.info("Started session %s for user %s", outcome.result.session_id, user_id)
        return success(session_number, "SESSION_START")
