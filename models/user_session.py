"""
UserSession model: one row per login session.
Fields:
- session_id (PK)
- user_id - FK to users.user_id, removed with the user
- session_hash - sha256 of the session number handed to the client (unique)
- created_at, last_used_at - last_used_at advances on every token rotation
- expires_at - NULL for a session-scoped login (reclaimed when idle),
  set for a persistent "remember me" login (reclaimed when reached)
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, utcnow


class UserSession(BaseModel, Base):
    __tablename__ = "user_sessions"

    session_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
    )
    session_hash = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="sessions")
    tokens = relationship(
        "SessionToken",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_user_sessions_user_id", "user_id"),
        Index("ix_user_sessions_persistent_cleanup", "expires_at"),
        Index("ix_user_sessions_idle_cleanup", "expires_at", "last_used_at"),
    )

    @property
    def is_persistent(self) -> bool:
        return self.expires_at is not None
