import re

from marshmallow import Schema, fields, pre_load, validate, EXCLUDE

# Starts with a letter; letters, digits, "-" or "_"; 4 to 24 characters
USERNAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9\-_]{3,23}$")
# One lowercase, one uppercase, one digit, one of "!@#$%"; 8 to 24 characters
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*[0-9])(?=.*[!@#$%]).{8,24}$")
EMAIL_RE = re.compile(
    r"^(?!\.)(?!.*\.\.)([a-z0-9_'+\-\.]*)[a-z0-9_+-]@([a-z0-9][a-z0-9\-]*\.)+[a-z]{2,}$",
    re.IGNORECASE,
)


def _norm(v):
    return v.strip() if isinstance(v, str) else v


def get_sign_in_method(identifier: str):
    """'email', 'username' or None for input that is neither."""
    if not isinstance(identifier, str):
        return None
    if EMAIL_RE.match(identifier):
        return "email"
    if USERNAME_RE.match(identifier):
        return "username"
    return None


class RegisterSchema(Schema):
    email = fields.Email(required=True)
    username = fields.String(
        required=True,
        validate=validate.Regexp(USERNAME_RE, error="Invalid username."),
    )
    password = fields.String(
        required=True,
        load_only=True,
        validate=validate.Regexp(PASSWORD_RE, error="Invalid password."),
    )

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict):
            data = dict(data)
            if "email" in data:
                data["email"] = _norm(data["email"])
                if isinstance(data["email"], str):
                    data["email"] = data["email"].lower()
            if "username" in data:
                data["username"] = _norm(data["username"])
        return data


class SignInSchema(Schema):
    identifier = fields.String(required=True, validate=validate.Length(min=1, error="Username or email is required."))
    password = fields.String(required=True, load_only=True, validate=validate.Length(min=1, error="Password is required."))
    is_persistent_auth = fields.Boolean(data_key="isPersistentAuth", load_default=False)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "identifier" in data:
            data = dict(data)
            data["identifier"] = _norm(data["identifier"])
        return data


class RefreshPayloadSchema(Schema):
    """Claims of the refresh credential; registered JWT claims are ignored."""

    class Meta:
        unknown = EXCLUDE

    user_id = fields.Integer(data_key="sub", required=True)
    session_number = fields.String(required=True, validate=validate.Length(min=1))
    token = fields.String(required=True, validate=validate.Length(min=1))
    persistent = fields.Boolean(load_default=False)
