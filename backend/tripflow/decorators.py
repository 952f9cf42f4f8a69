# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def require_actor(f):
    """
    Require an acting user and establish actor context.

    Authentication happens upstream; the gateway forwards the verified
    identity in headers. Sets the following Flask g attributes:
    - g.actor_id: X-Actor-Id header - REQUIRED
    - g.actor_role: X-Actor-Role header (may be None)

    Returns 401 when X-Actor-Id is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get("X-Actor-Id") or "").strip()
        if not actor_id:
            return jsonify({"error": "Actor required"}), 401

        actor_role = (request.headers.get("X-Actor-Role") or "").strip()

        g.actor_id = actor_id
        g.actor_role = actor_role or None

        return f(*args, **kwargs)

    return decorated_function
