# Overview: Request decorators for API routes (actor context and role checks).

from functools import wraps
from flask import request, jsonify, g, current_app


ROLES = ("customer", "staff", "admin")
STAFF_ROLES = ("staff", "admin")


def _has_actor() -> bool:
    return hasattr(g, "actor") and hasattr(g, "actor_role")


def require_actor(f):
    """
    Require an actor forwarded by the upstream gateway.

    Authentication itself happens before requests reach this service.
    Sets the following Flask g attributes:
    - g.actor: value of the X-Actor-Id header
    - g.actor_role: value of X-Actor-Role (defaults to "customer")

    Returns 401 if X-Actor-Id is missing, 403 for an unknown role.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get("X-Actor-Id") or "").strip()
        if not actor:
            return jsonify({"error": "Authentication required", "code": "Unauthorized", "details": {}}), 401
        if len(actor) > 64:
            return jsonify({"error": "Invalid actor id", "code": "Unauthorized", "details": {}}), 401

        role = (request.headers.get("X-Actor-Role") or "customer").strip().lower()
        if role not in ROLES:
            current_app.logger.warning("Rejected unknown actor role %r for %s", role, actor)
            return jsonify({
                "error": "Unknown actor role",
                "code": "Forbidden",
                "details": {"allowed_roles": list(ROLES)},
            }), 403

        g.actor = actor
        g.actor_role = role
        return f(*args, **kwargs)

    return decorated_function


def require_staff(f):
    """
    Restrict a back-office route to staff and admins.

    Must be stacked under @require_actor.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # Ensure @require_actor was called first
        if not _has_actor():
            return jsonify({"error": "Authentication required", "code": "Unauthorized", "details": {}}), 401

        if g.actor_role not in STAFF_ROLES:
            current_app.logger.warning(
                "Actor %s (%s) denied %s %s", g.actor, g.actor_role, request.method, request.path
            )
            return jsonify({
                "error": "Permission denied",
                "code": "Forbidden",
                "details": {"required_role": "staff"},
            }), 403

        return f(*args, **kwargs)

    return decorated_function
