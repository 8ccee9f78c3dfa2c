"""
Club member as seen by the reservation engine.

Accounts are managed by the identity service; the engine only needs the
role, the membership tier (`is_member` decides the session price) and the
address to send confirmations to.
"""

import enum

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint

from swimclub.db.base import Base, TimestampMixin


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    TREASURER = "TREASURER"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=Role.USER.value)
    is_member = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("role IN ('USER', 'ADMIN', 'TREASURER')", name="check_user_role"),
    )

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.TREASURER)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, member={self.is_member})>"
