# Overview: Request decorators for API routes.
from __future__ import annotations


from functools import wraps
from flask import request, jsonify, g

from .context import Actor
from .models.enums import Role


ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


def _actor_from_headers() -> Actor | None:
    raw_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
    raw_role = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip().upper()
    if not raw_id.isdigit() or not raw_role:
        return None
    try:
        role = Role(raw_role)
    except ValueError:
        return None
    return Actor(id=int(raw_id), role=role)


def require_auth(f):
    """
    Require an authenticated actor.

    Identity is established by the trusted gateway in front of this service,
    which forwards X-Actor-Id and X-Actor-Role. Sets g.actor.

    Returns 401 if either header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = _actor_from_headers()
        if actor is None:
            return jsonify({"error": "Authentication required", "kind": "AUTHENTICATION"}), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function
