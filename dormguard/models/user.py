"""User model definitions."""

import enum
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, Integer, String
from dormguard.database import Base


class Role(str, enum.Enum):
    """The two account roles. Admins additionally manage user accounts."""
    admin = "admin"
    staff = "staff"


class User(Base):
    """Represents a staff or admin account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(50), nullable=False, default="")
    role = Column(Enum(Role, name="user_role"), nullable=False, default=Role.staff)
    created_at = Column(DateTime, default=datetime.now)


@dataclass(frozen=True)
class Claims:
    """Identity carried by a verified access token."""
    user_id: int
    username: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.admin
