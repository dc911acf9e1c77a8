"""Route access table and authenticator helper tests."""

import re
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI

from eams.api.enterprise import router as enterprise_router
from eams.auth.middleware import (
    AccountDep,
    MeteredAccountDep,
    account_field,
    extract_api_key,
    subscription_in_good_standing,
)
from eams.auth.routes import (
    PUBLIC_ROUTES,
    TENANT_ROUTES,
    Access,
    RoutePolicyError,
    access_for,
    verify_route_policy,
)
from eams.main import ROUTERS, create_app
from eams.models import SubscriptionPlan, SubscriptionStatus
from eams.schemas.context import AccountContext


def _context(**overrides) -> AccountContext:
    fields = {
        "id": "acc-1",
        "name": "Cleaners",
        "tenant_id": "tenant_0123456789abcdef",
        "user_id": "user-1",
        "subscription_plan": SubscriptionPlan.STARTUP,
        "api_key_enabled": True,
        "api_key_prefix": "ek_0123456",
    }
    fields.update(overrides)
    return AccountContext(**fields)


def _registered_routers():
    return [(prefix, router) for prefix, router, _ in ROUTERS]


def test_app_routes_match_access_table():
    verify_route_policy(create_app(), _registered_routers())


def test_policy_reads_routes_from_included_routers():
    # Nothing is flattened into this app; every route comes from the routers
    verify_route_policy(FastAPI(), _registered_routers())


def test_unregistered_table_entries_fail_startup():
    missing = re.escape("GET /enterprise/{account_id}/quota is in the access table but not registered")
    with pytest.raises(RoutePolicyError, match=missing):
        verify_route_policy(FastAPI(), [("/enterprise", enterprise_router)])


def test_public_and_tenant_tables_are_disjoint():
    assert not PUBLIC_ROUTES & set(TENANT_ROUTES)


def test_exempt_routes_are_exactly_create_and_validate():
    assert PUBLIC_ROUTES == {
        ("POST", "/enterprise"),
        ("POST", "/enterprise/validate-api-key"),
    }


def test_quota_and_key_admin_are_not_metered():
    assert access_for("GET", "/enterprise/{account_id}/quota") is Access.TENANT
    assert access_for("POST", "/enterprise/{account_id}/api-key/regenerate") is Access.TENANT
    assert access_for("patch", "/enterprise/{account_id}/api-key/toggle") is Access.TENANT
    assert access_for("GET", "/enterprise/{account_id}/branches") is Access.METERED


def test_unlisted_route_fails_startup():
    app = FastAPI()
    app.include_router(enterprise_router, prefix="/enterprise")

    @app.get("/enterprise/{account_id}/secrets")
    async def secrets(account_id: str, caller: AccountDep):
        return {}

    with pytest.raises(RoutePolicyError, match="not in the access table"):
        verify_route_policy(app, [("/enterprise", enterprise_router)])


def test_unprotected_tenant_route_fails_startup():
    app = FastAPI()

    @app.get("/enterprise/{account_id}/quota")
    async def quota(account_id: str):
        return {}

    with pytest.raises(RoutePolicyError, match="is tenant but declares public"):
        verify_route_policy(app)


def test_mixed_authenticators_fail_startup():
    app = FastAPI()

    @app.get("/enterprise/{account_id}/api-logs")
    async def logs(account_id: str, caller: MeteredAccountDep, other: AccountDep):
        return {}

    with pytest.raises(RoutePolicyError, match="mixes tenant and metered authenticators"):
        verify_route_policy(app)


def test_account_field_rejects_unknown_names():
    with pytest.raises(ValueError):
        account_field("api_key_hash")


def test_account_field_returns_single_value():
    dependency = account_field("tenant_id")
    assert dependency(_context()) == "tenant_0123456789abcdef"
    metered = account_field("user_id", metered=True)
    assert metered(_context()) == "user-1"


def test_extract_api_key_prefers_header():
    assert extract_api_key("ek_header", "Bearer ek_bearer") == "ek_header"


def test_extract_api_key_falls_back_to_bearer():
    assert extract_api_key(None, "Bearer ek_bearer") == "ek_bearer"
    assert extract_api_key("  ", "bearer ek_bearer") == "ek_bearer"


def test_extract_api_key_missing():
    assert extract_api_key(None, None) is None
    assert extract_api_key("", "Basic dXNlcjpwYXNz") is None
    assert extract_api_key(None, "Bearer") is None


def test_subscription_gate():
    now = datetime(2026, 6, 1, tzinfo=timezone.utc)
    assert subscription_in_good_standing(_context(), now)
    assert subscription_in_good_standing(
        _context(subscription_status=SubscriptionStatus.TRIALING), now
    )
    assert not subscription_in_good_standing(
        _context(subscription_status=SubscriptionStatus.PAST_DUE), now
    )
    assert not subscription_in_good_standing(
        _context(
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_period_end=now - timedelta(days=1),
        ),
        now,
    )
    # Naive timestamps (SQLite) are read as UTC
    assert subscription_in_good_standing(
        _context(subscription_period_end=datetime(2026, 7, 1)), now
    )
