from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from models import utcnow
from models.db_storage import DBStorage
from services.errors import CleanupFailed
from services.stores import DeleteScope, SessionStore, TokenStore
from utils.result import Result, fail, success
from utils.security import hash_secret

logger = logging.getLogger(__name__)


class SessionCleaner:
    """
    Ends sessions. Every delete removes the sessions' token rows first and then
    the sessions, inside one transaction, so no token outlives its session.
    """

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

    def end_session(self, session_number: str) -> Result[Optional[int], CleanupFailed]:
        """Sign-out: delete the session of session_number; None when it is already gone."""
        outcome = self._delete("user_session", session_hash=hash_secret(session_number))
        if not outcome.success:
            logger.error("Failed deleting session. %s", outcome.error.to_log())
            return fail(CleanupFailed(cause=outcome.error))
        deleted = outcome.result
        return success(deleted[0] if deleted else None, "SESSION_END")

    def end_user_sessions(self, user_id: int) -> Result[List[int], CleanupFailed]:
        return self._sweep("all_sessions", f"Failed deleting sessions of user {user_id}.", user_id=user_id)

    def sweep_idle(self) -> Result[List[int], CleanupFailed]:
        return self._sweep("idle_session", "Failed deleting idle sessions.")

    def sweep_expired(self) -> Result[List[int], CleanupFailed]:
        return self._sweep("expired_persistent", "Failed deleting expired sessions.")

    def _sweep(self, scope: DeleteScope, message: str, **target) -> Result[List[int], CleanupFailed]:
        outcome = self._delete(scope, **target)
        if not outcome.success:
            logger.error("%s %s", message, outcome.error.to_log())
            return fail(CleanupFailed(message, cause=outcome.error))
        if outcome.result:
            logger.info("Swept %d session(s) for scope %s", len(outcome.result), scope)
        return success(outcome.result, "SESSION_END")

    def _delete(self, scope: DeleteScope, **target) -> Result:
        now = self._clock()

        def _run(db):
            selected = self._sessions.select_ids(db, scope, now=now, **target)
            if not selected.success or not selected.result:
                return selected

            tokens = self._tokens.delete_for_sessions(db, selected.result)
            if not tokens.success:
                return tokens
            return self._sessions.delete_by_ids(db, selected.result)

        return self._storage.run_in_transaction(_run)
