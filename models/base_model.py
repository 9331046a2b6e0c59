#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixin for the auth models.

- Integer surrogate keys are declared per table (role_id, user_id, session_id, token_id)
- Timestamps are naive UTC datetimes produced by utcnow(); SQLite keeps no tz info
- Models are plain data: persistence goes through the stores in services.stores,
  which receive an explicit DBStorage handle instead of reaching for a global one
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

TIME_FMT = "%Y-%m-%dT%H:%M:%S.%f"

# Declarative base for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time without tzinfo, the form every timestamp column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel:
    """
    Base mixin for all persistent models.

    - kwargs constructor that skips "__class__"
    - __str__ with the primary key
    - to_dict() with formatted timestamps and hashes/secrets stripped
    """

    # column names never returned by to_dict()
    __hidden__ = ("password_hash", "session_hash", "token_hash")

    def __init__(self, *args, **kwargs):
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)

    @property
    def pk(self):
        mapper = self.__mapper__
        return getattr(self, mapper.primary_key[0].key)

    def __str__(self) -> str:
        return f"[{self.__class__.__name__}] ({self.pk}) {self.to_dict()}"

    def to_dict(self) -> dict:
        """
        Return a dictionary of column values suitable for API responses and logs:
        - datetimes formatted with TIME_FMT
        - hashed secrets removed
        - __class__ added for readability in logs
        """
        d = {}
        for column in self.__table__.columns:
            key = column.key
            if key in self.__hidden__:
                continue
            value = getattr(self, key, None)
            if isinstance(value, datetime):
                value = value.strftime(TIME_FMT)
            d[key] = value
        d["__class__"] = self.__class__.__name__
        return d
