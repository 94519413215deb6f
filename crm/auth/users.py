"""
User account service.

This module provides functionality for:
- User registration
- User login
- User lookup
"""
import asyncio
from datetime import datetime
from typing import Optional, List
from email_validator import validate_email, EmailNotValidError
from fastapi import Depends
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator
from sqlalchemy.ext.asyncio import AsyncSession
from crm.base_microservice import AsyncSessionLocal
from crm.auth.errors import ErrorCode, Ok, Failure, Result
from crm.auth.jwt import TokenService, token_service
from crm.auth.models import User
from crm.auth.passwords import PasswordHasher, password_hasher
from crm.auth.store import UserStore, SqlUserStore, UniqueConstraintViolation

USERNAME_MIN_LENGTH = 4
USERNAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 6

# Pydantic models for request validation
class RegisterRequest(BaseModel):
    """Model for user registration."""
    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = Field(None, validate_default=True)
    email: Optional[str] = Field(None, validate_default=True)
    password: Optional[str] = Field(None, validate_default=True)
    # Strict so that JSON booleans are not taken as role 1 or 0
    role_id: Optional[int] = Field(
        None,
        strict=True,
        validate_default=True,
        validation_alias=AliasChoices("roleId", "roleID", "role_id"),
    )

    @field_validator("username")
    @classmethod
    def username_must_be_valid(cls, v):
        if v is None or not v.strip():
            raise ValueError("Username must not be blank")
        if not USERNAME_MIN_LENGTH <= len(v) <= USERNAME_MAX_LENGTH:
            raise ValueError("Username must be between 4 and 20 characters")
        return v

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, v):
        if v is None or not v.strip():
            raise ValueError("Email must not be blank")
        try:
            validate_email(v, check_deliverability=False)
        except EmailNotValidError:
            raise ValueError("Email is invalid")
        return v

    @field_validator("password")
    @classmethod
    def password_must_be_valid(cls, v):
        if v is None or not v.strip():
            raise ValueError("Password must not be blank")
        if len(v) < PASSWORD_MIN_LENGTH:
            raise ValueError("Password must be at least 6 characters")
        return v

    @field_validator("role_id")
    @classmethod
    def role_must_be_defined(cls, v):
        if v is None:
            raise ValueError("Role ID is required")
        if v not in (1, 2):
            raise ValueError("Undefined role")
        return v

class LoginRequest(BaseModel):
    """Model for user login."""
    username: str
    password: str

class LoginResponse(BaseModel):
    """Model returned to clients after a successful login."""
    userId: int
    username: str
    email: str
    accessToken: str

class UserOut(BaseModel):
    """Model for user information returned to clients."""
    id: int
    username: str
    email: str
    role: str
    createdAt: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=user.authority,
            createdAt=user.created_at,
        )

async def get_db_session():
    """Dependency for getting a database session."""
    async with AsyncSessionLocal() as session:
        yield session

def get_user_store(db: AsyncSession = Depends(get_db_session)) -> UserStore:
    """Dependency for the user store bound to the request's session."""
    return SqlUserStore(db)

class AccountService:
    """
    Service for account operations.

    Business outcomes come back as Ok / Failure results; only unexpected
    faults (store unavailable and the like) propagate as exceptions.
    """
    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher = password_hasher,
        tokens: TokenService = token_service
    ):
        self.store = store
        self.hasher = hasher
        self.tokens = tokens

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        role_id: int
    ) -> Result[User]:
        """
        Register a new user.

        Username conflicts are reported before email conflicts.

        Args:
            username: Desired username
            email: User's email address
            password: Plain text password, stored only as a hash
            role_id: Role identifier, stored as given

        Returns:
            Ok with the saved user, or Failure with USERNAME_ALREADY_EXISTS
            or EMAIL_ALREADY_EXISTS
        """
        if await self.store.exists_by_username(username):
            return Failure(ErrorCode.USERNAME_ALREADY_EXISTS)
        if await self.store.exists_by_email(email):
            return Failure(ErrorCode.EMAIL_ALREADY_EXISTS)

        # bcrypt is CPU-bound; keep it off the event loop
        hashed_password = await asyncio.to_thread(self.hasher.hash, password)
        new_user = User(
            username=username,
            email=email,
            hashed_password=hashed_password,
            role_id=role_id
        )
        try:
            saved = await self.store.save(new_user)
        except UniqueConstraintViolation as e:
            # Another registration won the race between the checks and the insert
            if e.field == "username":
                return Failure(ErrorCode.USERNAME_ALREADY_EXISTS)
            return Failure(ErrorCode.EMAIL_ALREADY_EXISTS)
        return Ok(saved)

    async def login(self, username: str, password: str) -> Result[LoginResponse]:
        """
        Authenticate a user and issue an access token.

        An unknown username and a wrong password give the same failure so
        callers cannot tell which one was wrong.
        """
        user = await self.store.find_by_username(username)
        if user is None:
            return Failure(ErrorCode.INVALID_CREDENTIALS)
        if not await asyncio.to_thread(self.hasher.verify, password, user.hashed_password):
            return Failure(ErrorCode.INVALID_CREDENTIALS)

        token = self.tokens.issue(user.id, user.email)
        return Ok(LoginResponse(
            userId=user.id,
            username=user.username,
            email=user.email,
            accessToken=token
        ))

    async def find_by_id(self, user_id: int) -> Result[User]:
        user = await self.store.find_by_id(user_id)
        if user is None:
            return Failure(ErrorCode.USER_NOT_FOUND)
        return Ok(user)

    async def find_all(self) -> List[User]:
        return await self.store.find_all()

def get_account_service(store: UserStore = Depends(get_user_store)) -> AccountService:
    """Dependency for the account service."""
    return AccountService(store)
