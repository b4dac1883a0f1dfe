# Overview: Request decorators for API routes (actor resolution, domain error mapping).

from functools import wraps
from flask import request, jsonify, g, current_app

from .extensions import db
from .services.tenant_service import get_actor
from .validation import DomainError, NotFound, parse_int


def api_errors(f):
    """
    Map domain errors to their HTTP status and roll back the unit of work.

    Response body: {"error": <message>, "code": <machine code>[, "details": {...}]}.
    Anything else is logged and answered 500 without internals.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except DomainError as exc:
            db.session.rollback()
            return jsonify(exc.to_dict()), exc.status_code
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Unhandled error in %s %s", request.method, request.path)
            return jsonify({"error": "Internal server error", "code": "internal_error"}), 500

    return decorated_function


def require_actor(body_field: str | None = None):
    """
    Resolve the acting staff member.

    Identity comes from the external auth layer as the X-User-Id header;
    commands whose payload names the actor (e.g. "opened_by") may carry it
    there instead, and feeds accept ?user_id=.

    Sets:
    - g.current_user: the active User
    - g.establishment_id: the user's establishment (tenant scope)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            raw = request.headers.get("X-User-Id")
            if raw in (None, "") and body_field:
                payload = request.get_json(silent=True)
                if isinstance(payload, dict):
                    raw = payload.get(body_field)
            if raw in (None, ""):
                raw = request.args.get("user_id")
            if raw in (None, ""):
                return jsonify({"error": "Authentication required", "code": "unauthenticated"}), 401

            try:
                user = get_actor(parse_int(raw, "user id", minimum=1))
            except NotFound:
                return jsonify({"error": "Unknown user", "code": "unauthenticated"}), 401
            except DomainError as exc:
                return jsonify(exc.to_dict()), exc.status_code

            g.current_user = user
            g.establishment_id = user.establishment_id
            return f(*args, **kwargs)

        return decorated_function

    return decorator
