"""
Authentication middleware.

This module provides:
- The per-request authentication filter for bearer tokens
- The request context that carries the authenticated principal
- Route dependencies for authentication and role-based access control
"""
from dataclasses import dataclass
from typing import FrozenSet, Optional
from fastapi import Depends, Request
from crm.base_microservice import BaseMicroservice
from crm.auth.errors import AuthenticationRequired, AccessDenied
from crm.auth.jwt import TokenService, token_service
from crm.auth.models import User
from crm.auth.store import UserStore
from crm.auth.users import get_user_store

BEARER_PREFIX = "Bearer "

@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """A resolved user together with the authorities granted to it."""
    user: User
    authorities: FrozenSet[str]

    def has_authority(self, authority: str) -> bool:
        return authority in self.authorities

@dataclass(frozen=True)
class RequestContext:
    """Per-request authentication state, passed explicitly to handlers."""
    principal: Optional[AuthenticatedPrincipal] = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an Authorization header, or None if there is none."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX):]

class AuthenticationFilter:
    """
    Turns a bearer token into an authenticated principal.

    Never rejects a request itself: every failure leaves the request
    unauthenticated and the route's access rule decides what happens next.
    """
    def __init__(self, tokens: TokenService = token_service, service: BaseMicroservice = None):
        self.tokens = tokens
        self.service = service or BaseMicroservice()

    async def authenticate(
        self,
        authorization: Optional[str],
        store: UserStore
    ) -> Optional[AuthenticatedPrincipal]:
        """
        Resolve the principal for a request.

        Args:
            authorization: Raw Authorization header value
            store: User store used to load the token's user

        Returns:
            The principal, or None if no valid token for an active user
        """
        token = extract_bearer_token(authorization)
        if token is None or not self.tokens.validate(token):
            return None

        try:
            user = await store.find_by_id(self.tokens.subject_user_id(token))
        except Exception as e:
            self.service.log_error(e, context="Authentication filter user lookup")
            return None

        # Deleted users keep valid tokens until expiry but get no access
        if user is None:
            return None

        return AuthenticatedPrincipal(user=user, authorities=frozenset([user.authority]))

authentication_filter = AuthenticationFilter()

async def get_request_context(
    request: Request,
    store: UserStore = Depends(get_user_store)
) -> RequestContext:
    """
    Dependency that runs the authentication filter for the request.

    Installed application-wide, so it runs once before every handler and
    later dependencies receive the cached result.
    """
    principal = await authentication_filter.authenticate(
        request.headers.get("Authorization"), store
    )
    return RequestContext(principal=principal)

async def require_principal(
    context: RequestContext = Depends(get_request_context)
) -> AuthenticatedPrincipal:
    """Dependency for routes that need an authenticated user."""
    if context.principal is None:
        raise AuthenticationRequired()
    return context.principal

class AccessPolicy:
    """
    Role-based access control.

    Creates FastAPI dependencies for protecting routes based on the
    authorities of the attached principal.
    """

    @staticmethod
    def has_authority(*authorities: str):
        """
        Dependency to check if the principal has any of the given authorities.

        Args:
            authorities: Accepted authority names (any match is sufficient)

        Returns:
            Dependency function
        """
        async def verify_authority(
            principal: AuthenticatedPrincipal = Depends(require_principal)
        ) -> AuthenticatedPrincipal:
            if not any(principal.has_authority(a) for a in authorities):
                raise AccessDenied()
            return principal

        return verify_authority
