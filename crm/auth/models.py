"""
Authentication models for the CRM.

This module defines:
- The SQLAlchemy User model
- Role ids and the authority each one grants
"""
from datetime import datetime, timezone
from enum import IntEnum
from sqlalchemy import Column, Integer, String, DateTime, Index, text
from crm.base_microservice import Base

ADMIN_AUTHORITY = "ADMIN"
USER_AUTHORITY = "USER"

class Role(IntEnum):
    """Role identifiers stored on users."""
    ADMIN = 1
    USER = 2

def authority_for_role(role_id: int) -> str:
    """Map a role id to its authority. Anything but admin is a standard user."""
    return ADMIN_AUTHORITY if role_id == Role.ADMIN else USER_AUTHORITY

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

# Usernames and emails only need to be unique among users that are not deleted
ACTIVE_ROWS = text("deleted_at IS NULL")

class User(Base):
    """User model for authentication and authorization."""
    __tablename__ = "users"
    __table_args__ = (
        Index(
            "uq_users_username_active", "username", unique=True,
            postgresql_where=ACTIVE_ROWS, sqlite_where=ACTIVE_ROWS,
        ),
        Index(
            "uq_users_email_active", "email", unique=True,
            postgresql_where=ACTIVE_ROWS, sqlite_where=ACTIVE_ROWS,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(20), nullable=False)
    email = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role_id = Column(Integer, nullable=False, default=Role.USER)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def authority(self) -> str:
        return authority_for_role(self.role_id)

    def soft_delete(self) -> None:
        """Mark the user as deleted without removing the row."""
        self.deleted_at = _utcnow()
