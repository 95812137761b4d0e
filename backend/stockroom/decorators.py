# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service
from .permissions import Decision, check


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid server-issued session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    Returns 401 if the Authorization header is missing, or the token is
    invalid, expired, idle, or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(required_role: str):
    """
    Require the authenticated user's role to satisfy required_role.

    The role is read from the user record behind the session, never from
    request headers or body.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not hasattr(g, "current_user"):
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if check(required_role, user.role) is Decision.DENY:
                current_app.logger.warning(
                    "Access denied: user=%s role=%s required=%s path=%s",
                    user.username, user.role, required_role, request.path,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_role": required_role,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
