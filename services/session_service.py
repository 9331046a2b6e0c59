"""
SessionService: the entry point the HTTP layer and the CLI use for sessions.

    storage = DBStorage(url); storage.reload()
    service = SessionService(storage)
    started = service.start_session(user_id, raw_token, expires_at=None)
    rotated = service.rotate_token(session_number, old_raw, new_raw)

All methods return utils.result.Success / Failure.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from models import utcnow
from models.db_storage import DBStorage
from services.errors import AuthError, CleanupFailed, SessionStartFailed, TokenReuseDetected
from services.session_cleaner import SessionCleaner
from services.session_starter import SessionStarter
from services.stores import DEFAULT_IDLE_THRESHOLD, SessionStore, TokenStore
from services.token_rotator import TokenRotator
from utils.result import Result

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(
        self,
        storage: DBStorage,
        *,
        idle_threshold: timedelta = DEFAULT_IDLE_THRESHOLD,
        revoke_on_reuse: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.revoke_on_reuse = revoke_on_reuse
        self.sessions = SessionStore(idle_threshold=idle_threshold)
        self.tokens = TokenStore()

        self._starter = SessionStarter(storage, self.sessions, self.tokens, clock=clock)
        self._rotator = TokenRotator(storage, self.sessions, self.tokens, clock=clock)
        self._cleaner = SessionCleaner(storage, self.sessions, self.tokens, clock=clock)

    def generate_session_number(self, user_id: int) -> str:
        return self._starter.generate_session_number(user_id)

    def start_session(
        self,
        user_id: int,
        raw_refresh_token: str,
        expires_at: Optional[datetime] = None,
        session_number: Optional[str] = None,
    ) -> Result[str, SessionStartFailed]:
        return self._starter.start_session(
            user_id, raw_refresh_token, expires_at=expires_at, session_number=session_number
        )

    def rotate_token(self, session_number: str, raw_old_token: str, raw_new_token: str) -> Result[int, AuthError]:
        outcome = self._rotator.rotate(session_number, raw_old_token, raw_new_token)
        if not outcome.success and self.revoke_on_reuse and isinstance(outcome.error, TokenReuseDetected):
            # The rotation itself was rolled back; ending the session is a separate transaction
            ended = self._cleaner.end_session(session_number)
            if ended.success and ended.result is not None:
                logger.warning("Ended session %s after refresh token reuse", ended.result)
            elif not ended.success:
                logger.error("Could not end session after token reuse: %s", ended.error.to_log())
        return outcome

    def end_session(self, session_number: str) -> Result[Optional[int], CleanupFailed]:
        return self._cleaner.end_session(session_number)

    def end_user_sessions(self, user_id: int) -> Result[List[int], CleanupFailed]:
        return self._cleaner.end_user_sessions(user_id)

    def sweep_idle(self) -> Result[List[int], CleanupFailed]:
        return self._cleaner.sweep_idle()

    def sweep_expired(self) -> Result[List[int], CleanupFailed]:
        return self._cleaner.sweep_expired()
