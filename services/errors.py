"""
Error kinds for the auth and session layers.

They are exceptions so they can carry a cause and a traceback, but they travel
inside `Failure` results; only the HTTP layer turns them into responses.
"""
from __future__ import annotations


class AuthError(Exception):
    name = "AUTH_ERROR"
    status_code = 500
    default_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None, cause: BaseException | None = None):
        self.message = message or self.default_message
        self.cause = cause
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    def to_log(self) -> dict:
        """Full detail for internal logs; never sent to the client."""
        payload = {"name": self.name, "message": self.message}
        if self.cause is not None:
            payload["cause"] = f"{self.cause.__class__.__name__}: {self.cause}"
        return payload

    def __repr__(self):
        return f"<{self.__class__.__name__} name={self.name} message={self.message!r}>"


# Persistence boundary
class StorageError(AuthError):
    name = "DB_ACCESS_ERROR"
    default_message = "Database operation failed."


# Session lifecycle
class SessionStartFailed(AuthError):
    name = "SESSION_START_ERROR"
    default_message = "An error occurred while creating session. Please try again later."


class SessionNotFound(AuthError):
    name = "SESSION_NOT_FOUND_ERROR"
    status_code = 403
    default_message = "Session not found."


class StaleOldToken(AuthError):
    name = "SESSION_TOKEN_STALE_ERROR"
    status_code = 403
    default_message = "Refresh token is unknown or stale."


class TokenReuseDetected(AuthError):
    name = "SESSION_TOKEN_REUSE_ERROR"
    status_code = 403
    default_message = "Token is already used."


class CleanupFailed(AuthError):
    name = "SESSION_CLEANUP_ERROR"
    default_message = "Failed deleting session. Please try again later."


# Credentials and transport
class InvalidRefreshCredential(AuthError):
    name = "SESSION_TOKEN_EXPIRED_OR_INVALID_ERROR"
    status_code = 403
    default_message = "Invalid or expired refresh token."


class InvalidCredentials(AuthError):
    name = "SIGN_IN_INVALID_CREDENTIALS_ERROR"
    status_code = 401
    default_message = "Incorrect sign-in credentials. Please try again."


class SignInFailed(AuthError):
    name = "SIGN_IN_SYSTEM_ERROR"
    default_message = "An error occurred while authenticating. Please try again later."


class UserAlreadyExists(AuthError):
    name = "REGISTER_USER_EXISTS_ERROR"
    status_code = 409
    default_message = "User already exists."


class RegistrationFailed(AuthError):
    name = "REGISTER_SYSTEM_ERROR"
    default_message = "User registration failed. Please try again later."


class AuthConfigError(AuthError):
    name = "AUTH_CONFIG_ERROR"
    default_message = "Authentication is not configured properly."


# Rotation failures the client may see, all collapsed into one generic 403 message
TOKEN_REJECTIONS = (SessionNotFound, StaleOldToken, TokenReuseDetected, InvalidRefreshCredential)
