# Overview: Request decorators establishing principal and tenant context for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import TenantAccessError
from .extensions import identity
from .services import tenant_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_tenant(f):
    """
    Require an authenticated principal and establish tenant context.

    Sets the following Flask g attributes:
    - g.principal: Principal from the identity service
    - g.tenant: the principal's Tenant (provisioned on first use)
    - g.tenant_id: tenant id, passed explicitly into every service call
    - g.membership: the principal's Membership

    Returns 401 for a missing or rejected token and 403 for a deactivated
    tenant. Identity or storage outages surface as 503 through the app's
    error handler.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        principal = identity.fetch_principal(token)
        if principal is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        tenant, membership = tenant_service.resolve_tenant(principal)
        if not tenant.is_active:
            current_app.logger.warning(
                "Principal %s rejected: tenant %s is not active", principal.id, tenant.id
            )
            raise TenantAccessError()

        g.principal = principal
        g.tenant = tenant
        g.tenant_id = tenant.id
        g.membership = membership

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the tenant membership to be admin or owner. Use after @require_tenant."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        membership = getattr(g, "membership", None)
        if membership is None:
            return jsonify({"error": "Authentication required"}), 401
        if not membership.is_admin:
            current_app.logger.warning(
                "Admin access denied for %s on %s %s", membership.user_id, request.method, request.path
            )
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
