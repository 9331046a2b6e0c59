"""
SessionToken model: hashes of the refresh tokens issued for a session.
Only the newest row of a live session has is_used = False; rotated-out tokens
stay behind with is_used = True so a replayed token can be recognised.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, false
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, utcnow


class SessionToken(BaseModel, Base):
    __tablename__ = "session_tokens"

    token_id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        Integer,
        ForeignKey("user_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    is_used = Column(Boolean, nullable=False, default=False, server_default=false())

    session = relationship("UserSession", back_populates="tokens")

    def __repr__(self):
        return f"<SessionToken id={self.token_id} session={self.session_id} used={self.is_used}>"
