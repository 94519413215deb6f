"""
Tests for the per-request authentication filter.
"""
from datetime import timedelta
import pytest
from crm.auth.middleware import AuthenticationFilter, RequestContext, extract_bearer_token
from crm.auth.models import Role

@pytest.fixture
def auth_filter(tokens):
    return AuthenticationFilter(tokens)

def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"
    assert extract_bearer_token(None) is None
    assert extract_bearer_token("") is None
    assert extract_bearer_token("Basic dXNlcjpwYXNz") is None
    assert extract_bearer_token("bearer abc") is None

def test_empty_context_is_anonymous():
    assert not RequestContext().is_authenticated

@pytest.mark.asyncio
async def test_no_credentials_leaves_request_anonymous(auth_filter, store):
    assert await auth_filter.authenticate(None, store) is None
    assert await auth_filter.authenticate("Basic dXNlcjpwYXNz", store) is None

@pytest.mark.asyncio
async def test_invalid_token_leaves_request_anonymous(auth_filter, store):
    assert await auth_filter.authenticate("Bearer not-a-token", store) is None
    assert await auth_filter.authenticate("Bearer ", store) is None

@pytest.mark.asyncio
async def test_expired_token_leaves_request_anonymous(auth_filter, store, tokens, create_user):
    user = await create_user()
    token = tokens.issue(user.id, user.email, expires_delta=timedelta(seconds=-1))

    assert await auth_filter.authenticate(f"Bearer {token}", store) is None

@pytest.mark.asyncio
async def test_valid_token_attaches_user_authority(auth_filter, store, tokens, create_user):
    user = await create_user(role_id=Role.USER)
    token = tokens.issue(user.id, user.email)

    principal = await auth_filter.authenticate(f"Bearer {token}", store)

    assert principal.user.id == user.id
    assert principal.authorities == frozenset(["USER"])
    assert principal.has_authority("USER")
    assert not principal.has_authority("ADMIN")

@pytest.mark.asyncio
async def test_admin_role_grants_admin_authority(auth_filter, store, tokens, create_user):
    admin = await create_user(username="admin", email="admin@x.com", role_id=Role.ADMIN)

    principal = await auth_filter.authenticate(f"Bearer {tokens.issue(admin.id, admin.email)}", store)

    assert principal.authorities == frozenset(["ADMIN"])

@pytest.mark.asyncio
async def test_unknown_role_is_treated_as_user(auth_filter, store, tokens, create_user):
    user = await create_user(role_id=9)

    principal = await auth_filter.authenticate(f"Bearer {tokens.issue(user.id, user.email)}", store)

    assert principal.authorities == frozenset(["USER"])

@pytest.mark.asyncio
async def test_deleted_user_token_grants_nothing(auth_filter, store, tokens, create_user, db_session):
    user = await create_user()
    token = tokens.issue(user.id, user.email)
    user.soft_delete()
    await db_session.commit()

    assert tokens.validate(token)
    assert await auth_filter.authenticate(f"Bearer {token}", store) is None

@pytest.mark.asyncio
async def test_store_failure_leaves_request_anonymous(auth_filter, tokens, unavailable_store, caplog):
    token = tokens.issue(1, "alice@x.com")

    with caplog.at_level("ERROR"):
        assert await auth_filter.authenticate(f"Bearer {token}", unavailable_store) is None
    assert "database unavailable" in caplog.text
