from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class User(BaseModel, Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    # Roles may not be dropped while users still reference them
    role_id = Column(Integer, ForeignKey("roles.role_id", ondelete="RESTRICT"), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    username = Column(String(24), nullable=False, unique=True, index=True)
    password_hash = Column(String(128), nullable=False, unique=True)

    role = relationship("Role", back_populates="users")
    sessions = relationship(
        "UserSession",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    @property
    def role_name(self):
        return self.role.role_name if self.role is not None else None
