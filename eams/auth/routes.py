"""Route access table for the /enterprise surface.

Every (method, path) under ``/enterprise`` is listed exactly once as
public, tenant (authenticated) or metered (authenticated and counted
against the monthly quota). ``verify_route_policy`` runs at startup and
refuses to build the app when the table and the registered routes
disagree, so a route can never silently fall out of the protected set.
"""

import enum
import logging
from collections.abc import Iterable

from fastapi import APIRouter, FastAPI
from fastapi.dependencies.models import Dependant
from fastapi.routing import APIRoute

from eams.auth.middleware import get_account_context, get_metered_account_context

logger = logging.getLogger(__name__)

PROTECTED_PREFIX = "/enterprise"


class Access(str, enum.Enum):
    PUBLIC = "public"
    TENANT = "tenant"
    METERED = "metered"


PUBLIC_ROUTES: frozenset[tuple[str, str]] = frozenset(
    {
        ("POST", "/enterprise"),
        ("POST", "/enterprise/validate-api-key"),
    }
)

TENANT_ROUTES: dict[tuple[str, str], Access] = {
    ("GET", "/enterprise"): Access.METERED,
    ("GET", "/enterprise/by-user/{user_id}"): Access.METERED,
    ("GET", "/enterprise/by-tenant/{tenant_id}"): Access.METERED,
    ("GET", "/enterprise/{account_id}"): Access.METERED,
    ("PATCH", "/enterprise/{account_id}"): Access.METERED,
    ("DELETE", "/enterprise/{account_id}"): Access.METERED,
    ("POST", "/enterprise/{account_id}/api-key/regenerate"): Access.TENANT,
    ("PATCH", "/enterprise/{account_id}/api-key/toggle"): Access.TENANT,
    ("POST", "/enterprise/{account_id}/branches"): Access.METERED,
    ("GET", "/enterprise/{account_id}/branches"): Access.METERED,
    ("GET", "/enterprise/branches/{branch_id}"): Access.METERED,
    ("PATCH", "/enterprise/branches/{branch_id}"): Access.METERED,
    ("DELETE", "/enterprise/branches/{branch_id}"): Access.METERED,
    ("POST", "/enterprise/branches/{branch_id}/deactivate"): Access.METERED,
    ("GET", "/enterprise/{account_id}/quota"): Access.TENANT,
    ("GET", "/enterprise/{account_id}/api-logs"): Access.METERED,
}


class RoutePolicyError(RuntimeError):
    """Registered routes and the access table disagree."""


def access_for(method: str, path: str) -> Access | None:
    key = (method.upper(), path)
    if key in PUBLIC_ROUTES:
        return Access.PUBLIC
    return TENANT_ROUTES.get(key)


def _dependency_calls(dependant: Dependant) -> set:
    calls = set()
    for sub in dependant.dependencies:
        if sub.call is not None:
            calls.add(sub.call)
        calls |= _dependency_calls(sub)
    return calls


def _declared_access(route: APIRoute) -> Access | None:
    """Access level wired into the route, or None when it mixes authenticators."""
    calls = _dependency_calls(route.dependant)
    metered = get_metered_account_context in calls
    tenant = get_account_context in calls
    if metered and tenant:
        return None
    if metered:
        return Access.METERED
    if tenant:
        return Access.TENANT
    return Access.PUBLIC


def _collect_routes(
    app: FastAPI, routers: Iterable[tuple[str, APIRouter]]
) -> dict[tuple[str, str], APIRoute]:
    """Every API route under the protected prefix, keyed by (method, full path).

    Included routers are read from their own route lists; ``app.routes``
    only contributes routes declared on the app itself.
    """
    found: dict[tuple[str, str], APIRoute] = {}
    candidates = [(route.path, route) for route in app.routes if isinstance(route, APIRoute)]
    for prefix, router in routers:
        candidates.extend(
            (prefix + route.path, route) for route in router.routes if isinstance(route, APIRoute)
        )
    for path, route in candidates:
        if not path.startswith(PROTECTED_PREFIX):
            continue
        for method in route.methods:
            found.setdefault((method, path), route)
    return found


def verify_route_policy(app: FastAPI, routers: Iterable[tuple[str, APIRouter]] = ()) -> None:
    """Check table consistency and route wiring once, at startup.

    ``routers`` are the ``(prefix, router)`` pairs passed to ``include_router``.
    """
    overlap = PUBLIC_ROUTES & set(TENANT_ROUTES)
    if overlap:
        raise RoutePolicyError(f"Routes both public and tenant-scoped: {sorted(overlap)}")

    registered = _collect_routes(app, routers)
    problems: list[str] = []
    for (method, path), route in sorted(registered.items()):
        declared = _declared_access(route)
        expected = access_for(method, path)
        if expected is None:
            problems.append(f"{method} {path} is not in the access table")
        elif declared is None:
            problems.append(f"{method} {path} mixes tenant and metered authenticators")
        elif expected is not declared:
            problems.append(f"{method} {path} is {expected.value} but declares {declared.value}")

    missing = (PUBLIC_ROUTES | set(TENANT_ROUTES)) - set(registered)
    problems.extend(f"{m} {p} is in the access table but not registered" for m, p in sorted(missing))
    if problems:
        raise RoutePolicyError("; ".join(problems))
    logger.info(
        "route_policy_verified public=%d tenant_scoped=%d", len(PUBLIC_ROUTES), len(TENANT_ROUTES)
    )
