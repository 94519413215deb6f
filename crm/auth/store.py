"""
User persistence.

UserStore is the interface the account service and the authentication
filter depend on. SqlUserStore implements it on an async SQLAlchemy session.
Every lookup ignores soft-deleted users.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from crm.auth.models import User

class UniqueConstraintViolation(Exception):
    """Raised when saving a user collides with an active username or email."""

    def __init__(self, field: str):
        super().__init__(f"An active user with this {field} already exists")
        self.field = field

class UserStore(ABC):
    @abstractmethod
    async def exists_by_username(self, username: str) -> bool: ...

    @abstractmethod
    async def exists_by_email(self, email: str) -> bool: ...

    @abstractmethod
    async def find_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def find_by_id(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    async def find_all(self) -> List[User]: ...

    @abstractmethod
    async def save(self, user: User) -> User:
        """Persist a user. Raises UniqueConstraintViolation on a collision."""

class SqlUserStore(UserStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _exists(self, *criteria) -> bool:
        result = await self.session.execute(
            select(exists().where(User.deleted_at.is_(None), *criteria))
        )
        return bool(result.scalar())

    async def exists_by_username(self, username: str) -> bool:
        return await self._exists(User.username == username)

    async def exists_by_email(self, email: str) -> bool:
        return await self._exists(User.email == email)

    async def find_by_username(self, username: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.username == username, User.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: int) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.id == user_id, User.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def find_all(self) -> List[User]:
        result = await self.session.execute(
            select(User).where(User.deleted_at.is_(None)).order_by(User.id)
        )
        return list(result.scalars().all())

    async def save(self, user: User) -> User:
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            # PostgreSQL names the index, SQLite names the column
            message = str(e.orig)
            for field in ("username", "email"):
                if f"uq_users_{field}_active" in message or f"users.{field}" in message:
                    raise UniqueConstraintViolation(field) from e
            raise
        await self.session.refresh(user)
        return user
