"""
Authentication blueprint:
- POST /auth/register
- POST /auth/sign-in
- POST /auth/refresh
- POST /auth/sign-out

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens in the response body
- Keeps the refresh credential (a JWT holding the session number and the raw,
  single-use refresh token) in an http-only cookie
- Rotates the refresh token on every /auth/refresh through SessionService
"""
from __future__ import annotations

import logging
import re
from datetime import timedelta

from flask import Blueprint, request, jsonify, current_app

from api.errors import auth_error_response
from models import utcnow
from models.schemas.auth import RegisterSchema, SignInSchema, get_sign_in_method
from models.schemas.user import UserOutSchema
from services.errors import InvalidRefreshCredential
from utils.security import (
    create_access_token,
    create_refresh_credential,
    generate_refresh_token,
    verify_refresh_credential,
)

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

register_schema = RegisterSchema()
sign_in_schema = SignInSchema()
user_out_schema = UserOutSchema()


def _session_service():
    return current_app.extensions["session_service"]


def _user_data():
    return current_app.extensions["user_data"]


def _safe_id(identifier: str) -> str:
    """Mask an identifier before it is written to the logs"""
    method = get_sign_in_method(identifier)
    if method == "email":
        return re.sub(r"^(.{2}).*(@.*)$", r"\1***\2", identifier)
    if method == "username":
        return identifier[: min(8, len(identifier))] + "***"
    return repr(identifier)[:50]


def set_refresh_cookie(response, credential: str, persistent: bool):
    cfg = current_app.config
    response.set_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        credential,
        # persistent logins survive the browser session, session-scoped ones do not
        max_age=cfg["REFRESH_COOKIE_MAX_AGE"] if persistent else None,
        path=cfg["REFRESH_COOKIE_PATH"],
        secure=cfg["REFRESH_COOKIE_SECURE"],
        httponly=True,
        samesite=cfg["REFRESH_COOKIE_SAMESITE"],
    )
    return response


def clear_refresh_cookie(response):
    cfg = current_app.config
    response.delete_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        path=cfg["REFRESH_COOKIE_PATH"],
        secure=cfg["REFRESH_COOKIE_SECURE"],
        httponly=True,
        samesite=cfg["REFRESH_COOKIE_SAMESITE"],
    )
    return response


@bp.post("/register")
def register():
    """
    Register a new user.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            username: { type: string }
            password: { type: string }
    responses:
      201:
        description: Created
      409:
        description: Email or username already registered
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = register_schema.load(payload)

    registered = _user_data().register(data["email"], data["username"], data["password"])
    if not registered.success:
        return auth_error_response(
            registered.error,
            f"Failed registering user {_safe_id(data['email'])}.",
            "User registration failed. Please try again later.",
        )

    return jsonify(
        {
            "success": True,
            "message": "User registration success.",
            "data": user_out_schema.dump(registered.result),
        }
    ), 201


@bp.post("/sign-in")
def sign_in():
    """
    Sign in: return an access token and set the refresh cookie
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             identifier: { type: string, description: email or username }
             password: { type: string }
             isPersistentAuth: { type: boolean }
    responses:
      200:
        description: OK (returns access token, sets refresh cookie)
      401:
        description: Unauthorized
      500:
        description: Session could not be started
    """
    payload = request.get_json(silent=True) or {}
    data = sign_in_schema.load(payload)
    persistent = data["is_persistent_auth"]

    verified = _user_data().verify_user(data["identifier"], data["password"])
    if not verified.success:
        return auth_error_response(
            verified.error, f"Failed sign-in attempt from user {_safe_id(data['identifier'])}."
        )
    user = verified.result

    raw_token = generate_refresh_token()
    expires_at = None
    if persistent:
        expires_at = utcnow() + timedelta(days=current_app.config["PERSISTENT_SESSION_DAYS"])

    started = _session_service().start_session(user.user_id, raw_token, expires_at=expires_at)
    if not started.success:
        return auth_error_response(
            started.error,
            "Failed starting session.",
            "An error occurred while authenticating. Please try again later.",
        )

    credential = create_refresh_credential(user.user_id, started.result, raw_token, persistent)
    response = jsonify({"success": True, "accessToken": create_access_token(user)})
    return set_refresh_cookie(response, credential, persistent)


@bp.post("/refresh")
def refresh():
    """
    Rotate the refresh token in the cookie and return a new access token
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK (returns access token, replaces refresh cookie)
      403:
        description: Missing, invalid, stale or replayed refresh token
      500:
        description: Storage failure
    """
    verified = verify_refresh_credential(request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"]))
    if not verified.success:
        response, status = auth_error_response(verified.error, "Refresh credential rejected.")
        return clear_refresh_cookie(response), status
    claims = verified.result

    found = _user_data().get_user(claims["user_id"])
    if not found.success:
        return auth_error_response(
            found.error,
            "Failed loading user for refresh.",
            "An error occurred while refreshing session. Please try again later.",
        )
    user = found.result
    if user is None:
        response, status = auth_error_response(
            InvalidRefreshCredential(f"User {claims['user_id']} no longer exists."),
            "Refresh credential rejected.",
        )
        return clear_refresh_cookie(response), status

    new_raw = generate_refresh_token()
    rotated = _session_service().rotate_token(claims["session_number"], claims["token"], new_raw)
    if not rotated.success:
        response, status = auth_error_response(
            rotated.error,
            f"Failed rotating refresh token for user {user.user_id}.",
            "An error occurred while refreshing session. Please try again later.",
        )
        if status == 403:
            clear_refresh_cookie(response)
        return response, status

    credential = create_refresh_credential(user.user_id, claims["session_number"], new_raw, claims["persistent"])
    response = jsonify({"success": True, "accessToken": create_access_token(user)})
    return set_refresh_cookie(response, credential, claims["persistent"])


@bp.post("/sign-out")
def sign_out():
    """
    Sign out: end the session in the refresh cookie and clear the cookie
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         required: false
         schema:
           type: object
           properties:
             allSessions: { type: boolean, description: end every session of the user }
    responses:
      200:
        description: Signed out (also when there was no valid session)
      500:
        description: Storage failure
    """
    payload = request.get_json(silent=True) or {}
    verified = verify_refresh_credential(request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"]))

    # no usable cookie: nothing to end, just clear it
    if verified.success:
        claims = verified.result
        if payload.get("allSessions") is True:
            ended = _session_service().end_user_sessions(claims["user_id"])
        else:
            ended = _session_service().end_session(claims["session_number"])
        if not ended.success:
            return auth_error_response(
                ended.error,
                "Failed ending session.",
                "An error occurred while signing out session. Please try again later.",
            )

    response = jsonify({"success": True, "message": "Logged out successfully."})
    return clear_refresh_cookie(response)
