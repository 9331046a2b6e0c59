"""
Environment-aware configuration.
Values come from the environment (a .env file is read if present); the class
is picked by APP_ENV (dev / prod / test).
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

from services.errors import AuthConfigError

load_dotenv()  # Read .env if present

DEV_ACCESS_SECRET = "dev-access-secret-change-me"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-me"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    DEBUG = False
    TESTING = False
    APP_ENV = os.getenv("APP_ENV", "dev")
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///auth.db")
    SQL_ECHO = _flag("SQL_ECHO", "false")

    # Tokens
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", DEV_ACCESS_SECRET)
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", DEV_REFRESH_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "session-auth-api")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "300")))
    REFRESH_TOKEN_EXPIRES = timedelta(days=int(os.getenv("REFRESH_TOKEN_EXPIRES_DAYS", "30")))

    # Sessions
    PERSISTENT_SESSION_DAYS = int(os.getenv("PERSISTENT_SESSION_DAYS", "30"))
    SESSION_IDLE_HOURS = int(os.getenv("SESSION_IDLE_HOURS", "24"))
    REVOKE_SESSION_ON_TOKEN_REUSE = _flag("REVOKE_SESSION_ON_TOKEN_REUSE", "false")

    # Refresh cookie
    REFRESH_COOKIE_NAME = os.getenv("REFRESH_COOKIE_NAME", "refresh_token")
    REFRESH_COOKIE_SECURE = _flag("REFRESH_COOKIE_SECURE", "true")
    REFRESH_COOKIE_SAMESITE = os.getenv("REFRESH_COOKIE_SAMESITE", "None")
    REFRESH_COOKIE_PATH = os.getenv("REFRESH_COOKIE_PATH", "/")
    # max-age of the persistent cookie, capped by the refresh credential lifetime
    REFRESH_COOKIE_MAX_AGE = int(os.getenv("REFRESH_COOKIE_MAX_AGE_SECONDS", str(30 * 24 * 60 * 60)))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    ACCESS_TOKEN_SECRET = "test-access-secret"
    REFRESH_TOKEN_SECRET = "test-refresh-secret"
    REFRESH_COOKIE_SECURE = False
    REFRESH_COOKIE_SAMESITE = "Lax"
    REVOKE_SESSION_ON_TOKEN_REUSE = False
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    DEBUG = False


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/prod/test).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def validate_config(config) -> None:
    """Refuse to serve production traffic with the development token secrets."""
    if config.get("DEBUG") or config.get("TESTING"):
        return
    if config.get("ACCESS_TOKEN_SECRET") in (None, "", DEV_ACCESS_SECRET):
        raise AuthConfigError("ACCESS_TOKEN_SECRET not configured.")
    if config.get("REFRESH_TOKEN_SECRET") in (None, "", DEV_REFRESH_SECRET):
        raise AuthConfigError("REFRESH_TOKEN_SECRET not configured.")
    if config.get("ACCESS_TOKEN_SECRET") == config.get("REFRESH_TOKEN_SECRET"):
        raise AuthConfigError("Access and refresh tokens must use different secrets.")
