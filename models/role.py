from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base

# Seeded by DBStorage.reload(); new registrations get DEFAULT_ROLE
DEFAULT_ROLES = ("admin", "user")
DEFAULT_ROLE = "user"


class Role(BaseModel, Base):
    __tablename__ = "roles"

    role_id = Column(Integer, primary_key=True, autoincrement=True)
    role_name = Column(String(32), nullable=False, unique=True)

    users = relationship("User", back_populates="role", passive_deletes=True)
