from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
from contextlib import asynccontextmanager

from crm.base_microservice import BaseMicroservice
from crm.auth.errors import install_error_handlers
from crm.auth.middleware import get_request_context
from crm.auth.router import auth_router, users_router, start_auth_service

# Create shared base microservice instance
base_service = BaseMicroservice()

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    base_service.log_event("service.startup", {"service": "main"})
    await start_auth_service()
    yield
    base_service.log_event("service.shutdown", {"service": "main"})

# Every request passes through the authentication filter before its handler
app = FastAPI(
    title="CRM API",
    description="Authentication and user services for the internal CRM",
    lifespan=lifespan,
    dependencies=[Depends(get_request_context)],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
    max_age=3600,
)

install_error_handlers(app, base_service)

# Include routers with prefixes
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(users_router, prefix="/api/users", tags=["users"])

@app.get("/health", tags=["health"])
async def health_check():
    """Overall system health check."""
    return {
        "status": "ok",
        "services": {
            "auth": "online"
        }
    }
