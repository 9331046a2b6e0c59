from __future__ import annotations
from functools import wraps

import jwt
from flask import request, g, abort, current_app

from utils.security import decode_token


def jwt_required():
    """Require a valid access token; loads the user into g.current_user."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                abort(401, description="Missing or invalid Authorization header")
            token = auth.split(" ", 1)[1].strip()
            try:
                decoded = decode_token(token, expected_type="access")
            except jwt.ExpiredSignatureError:
                abort(401, description="Token expired")
            except jwt.InvalidTokenError:
                abort(401, description="Invalid token")

            try:
                user_id = int(decoded.get("sub"))
            except (TypeError, ValueError):
                abort(401, description="Invalid token")

            found = current_app.extensions["user_data"].get_user(user_id)
            if not found.success:
                abort(500, description="An error occurred. Please try again later.")
            if found.result is None:
                abort(401, description="User not found")
            g.current_user = found.result
            g.current_user_role = decoded.get("role", found.result.role_name)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
