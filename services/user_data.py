from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_

from models import Role, User
from models.db_storage import DBStorage
from models.role import DEFAULT_ROLE
from models.schemas.auth import get_sign_in_method
from services.errors import (
    AuthError,
    InvalidCredentials,
    RegistrationFailed,
    SignInFailed,
    UserAlreadyExists,
)
from services.repository import Repository
from utils.result import Result, fail, success
from utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)


class UserDataService:
    """Registration and credential checks; the session core only ever sees user ids."""

    def __init__(self, storage: DBStorage):
        self._storage = storage
        self._users = Repository(User)
        self._roles = Repository(Role)

    def register(self, email: str, username: str, password: str) -> Result[User, AuthError]:
        """
        Insert a user with the default role. The password is hashed with argon2
        before it gets anywhere near the database.
        """
        password_hash = hash_password(password)

        def _insert(db):
            existing = self._users.first(db, or_(User.email == email, User.username == username))
            if not existing.success:
                return existing
            if existing.result is not None:
                return fail(UserAlreadyExists())

            role = self._roles.first(db, Role.role_name == DEFAULT_ROLE)
            if not role.success:
                return role
            if role.result is None:
                return fail(RegistrationFailed(f"Role '{DEFAULT_ROLE}' is missing."))

            return self._users.insert(
                db,
                User(
                    email=email,
                    username=username,
                    password_hash=password_hash,
                    role_id=role.result.role_id,
                ),
            )

        outcome = self._storage.run_in_transaction(_insert)
        if outcome.success:
            logger.info("Registered user %s", outcome.result.user_id)
            return outcome
        if isinstance(outcome.error, UserAlreadyExists):
            return outcome
        return fail(RegistrationFailed(cause=outcome.error))

    def verify_user(self, identifier: str, password: str) -> Result[User, AuthError]:
        """Look the user up by email or username and check the password."""
        method = get_sign_in_method(identifier)
        if method is None:
            # garbage input guard
            return fail(InvalidCredentials())

        column = User.email if method == "email" else User.username
        value = identifier.lower() if method == "email" else identifier
        found = self._users.first(self._storage.get_session(), column == value)
        if not found.success:
            return fail(SignInFailed(cause=found.error))

        user: Optional[User] = found.result
        if user is None or not verify_password(password, user.password_hash):
            return fail(InvalidCredentials())
        return success(user, "CREDENTIAL_VERIFICATION")

    def get_user(self, user_id: int) -> Result[Optional[User], AuthError]:
        return self._users.first(self._storage.get_session(), User.user_id == user_id)
