"""
Authentication router.

This module provides FastAPI routers for:
- User registration and login (public)
- User lookup (authenticated, some routes admin only)
"""
from fastapi import APIRouter, Depends, status
from crm.base_microservice import BaseMicroservice, Base, engine
from crm.auth.errors import Failure, unwrap
from crm.auth.middleware import AccessPolicy, AuthenticatedPrincipal, require_principal
from crm.auth.models import ADMIN_AUTHORITY
from crm.auth.users import (
    AccountService, RegisterRequest, LoginRequest, UserOut, get_account_service
)

# Create routers
auth_router = APIRouter(tags=["auth"])
users_router = APIRouter(tags=["users"], dependencies=[Depends(require_principal)])

# Create service instance
base_service = BaseMicroservice()

async def start_auth_service():
    """Initialize the auth service."""
    base_service.log_event("service.startup", {"service": "auth"})

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        base_service.log_error(e, context="Auth service startup")
        raise

# --- Basic Auth Endpoints ---

@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    body: RegisterRequest,
    accounts: AccountService = Depends(get_account_service)
):
    """
    Register a new user.

    Returns an empty success envelope; failures are reported through the
    error handlers.
    """
    user = unwrap(await accounts.register(
        body.username, body.email, body.password, body.role_id
    ))

    base_service.log_event("user.registered", {
        "id": user.id,
        "username": user.username,
        "role_id": user.role_id
    })

    return base_service.api_response(status_code=status.HTTP_201_CREATED)

@auth_router.post("/login")
async def login(
    body: LoginRequest,
    accounts: AccountService = Depends(get_account_service)
):
    """
    Authenticate a user and return an access token.
    """
    result = await accounts.login(body.username, body.password)
    if isinstance(result, Failure):
        base_service.log_warning("user.login.failed", {"username": body.username})
    login_data = unwrap(result)

    base_service.log_event("user.login", {
        "username": login_data.username,
        "id": login_data.userId
    })

    return base_service.api_response(data=login_data)

# --- User Endpoints ---

@users_router.get("/me")
async def get_current_user_info(
    principal: AuthenticatedPrincipal = Depends(require_principal)
):
    """Get information about the current authenticated user."""
    return base_service.api_response(data=UserOut.from_user(principal.user))

@users_router.get("")
async def list_users(
    principal: AuthenticatedPrincipal = Depends(AccessPolicy.has_authority(ADMIN_AUTHORITY)),
    accounts: AccountService = Depends(get_account_service)
):
    """List all active users. Admin only."""
    users = await accounts.find_all()
    return base_service.api_response(data=[UserOut.from_user(u) for u in users])

@users_router.get("/{user_id}")
async def get_user(
    user_id: int,
    principal: AuthenticatedPrincipal = Depends(AccessPolicy.has_authority(ADMIN_AUTHORITY)),
    accounts: AccountService = Depends(get_account_service)
):
    """Get a user by id. Admin only."""
    user = unwrap(await accounts.find_by_id(user_id))
    return base_service.api_response(data=UserOut.from_user(user))
