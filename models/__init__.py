"""
ORM models for the session auth API.

Importing the package registers every mapped class on Base.metadata so that
relationship() strings resolve and DBStorage.reload() creates all tables.
There is no module-level storage here: build a DBStorage and pass it around.
"""
from models.base_model import Base, BaseModel, utcnow
from models.role import Role
from models.user import User
from models.user_session import UserSession
from models.session_token import SessionToken

__all__ = ["Base", "BaseModel", "utcnow", "Role", "User", "UserSession", "SessionToken"]
