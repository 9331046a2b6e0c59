"""
security helpers:
- sha256 digests for session numbers and refresh tokens (DB lookup keys)
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT
- session number and raw refresh token generation
"""
from __future__ import annotations

import hashlib
import secrets
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Any

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from flask import current_app
from marshmallow import ValidationError

from models.schemas.auth import RefreshPayloadSchema
from services.errors import InvalidRefreshCredential
from utils.result import Result, fail, success

ph = PasswordHasher()
refresh_payload_schema = RefreshPayloadSchema()


def hash_secret(raw: str) -> str:
    """Deterministic digest of a session number or refresh token; only this is stored."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def generate_session_number(user_id: int) -> str:
    """Opaque session number: user id, epoch millis and a random UUID."""
    return f"{user_id}-{int(time.time() * 1000)}-{uuid.uuid4()}"


def generate_refresh_token() -> str:
    """Opaque, high-entropy refresh token string."""
    return secrets.token_urlsafe(32)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _encode(payload: Dict[str, Any], secret: str, expires: timedelta) -> str:
    now = _now()
    payload = {
        **payload,
        "iss": current_app.config.get("JWT_ISSUER", "session-auth-api"),
        "iat": int(now.timestamp()),
        "exp": int((now + expires).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=current_app.config["JWT_ALGORITHM"])


def create_access_token(user) -> str:
    """Short-lived bearer token carrying the user's public details and role."""
    return _encode(
        {
            "type": "access",
            "sub": str(user.user_id),
            "email": user.email,
            "username": user.username,
            "role": user.role_name,
        },
        current_app.config["ACCESS_TOKEN_SECRET"],
        current_app.config["ACCESS_TOKEN_EXPIRES"],
    )


def create_refresh_credential(user_id: int, session_number: str, raw_token: str, persistent: bool) -> str:
    """
    Refresh credential sent in the cookie. It embeds the session number and the
    raw refresh token; the server keeps only their hashes.
    """
    return _encode(
        {
            "type": "refresh",
            "sub": str(user_id),
            "session_number": session_number,
            "token": raw_token,
            "persistent": bool(persistent),
        },
        current_app.config["REFRESH_TOKEN_SECRET"],
        current_app.config["REFRESH_TOKEN_EXPIRES"],
    )


def decode_token(token: str, expected_type: str = "access") -> Dict[str, Any]:
    """
    Decode and validate a JWT. Raises jwt.InvalidTokenError on invalid signature,
    expired token or a token of the wrong type.
    """
    secret_key = "ACCESS_TOKEN_SECRET" if expected_type == "access" else "REFRESH_TOKEN_SECRET"
    decoded = jwt.decode(
        token,
        current_app.config[secret_key],
        algorithms=[current_app.config["JWT_ALGORITHM"]],
    )
    if decoded.get("type") != expected_type:
        raise jwt.InvalidTokenError("Wrong token type")
    return decoded


def verify_refresh_credential(token: str | None) -> Result[Dict[str, Any], InvalidRefreshCredential]:
    """Decode the refresh cookie and validate its payload shape"""
    if not token:
        return fail(InvalidRefreshCredential("Refresh token not provided."))
    try:
        decoded = decode_token(token, expected_type="refresh")
    except jwt.ExpiredSignatureError as exc:
        return fail(InvalidRefreshCredential("Expired refresh token.", cause=exc))
    except jwt.InvalidTokenError as exc:
        return fail(InvalidRefreshCredential(f"Invalid refresh token: {exc}", cause=exc))

    try:
        payload = refresh_payload_schema.load(decoded)
    except ValidationError as exc:
        return fail(InvalidRefreshCredential("Malformed refresh token.", cause=exc))
    return success(payload, "SESSION_TOKEN_VERIFY")
