# Overview: Request decorators that establish the organization context for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.tenant_service import OrgContext, SCOPE_MODES, default_scope_mode


def _header_int(name: str):
    value = request.headers.get(name)
    if value is None or not value.strip():
        return None
    return int(value.strip())


def require_context(f):
    """
    Build the caller's OrgContext from identity headers.

    The upstream identity collaborator authenticates the caller and forwards:
    - X-User-Id: acting user (REQUIRED)
    - X-Org-Id: organization (optional; absent means an unscoped deployment)
    - X-Org-Scope: "include_unscoped" to also see legacy rows without an org

    Sets g.ctx for the route. Returns 401 without a user id and 400 when an id
    is not an integer or the scope mode is unknown.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user_id = _header_int("X-User-Id")
            org_id = _header_int("X-Org-Id")
        except ValueError:
            return jsonify({"error": "X-User-Id and X-Org-Id must be integers", "kind": "ValidationError"}), 400

        if user_id is None:
            return jsonify({"error": "Authentication required", "kind": "Unauthorized"}), 401

        scope_mode = (request.headers.get("X-Org-Scope") or default_scope_mode()).strip().lower()
        if scope_mode not in SCOPE_MODES:
            return jsonify({"error": f"Unknown X-Org-Scope: {scope_mode}", "kind": "ValidationError"}), 400

        g.ctx = OrgContext(org_id=org_id, user_id=user_id, scope_mode=scope_mode)
        return f(*args, **kwargs)

    return decorated_function
