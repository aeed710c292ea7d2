# Overview: Request decorators for API routes; bearer-token auth and order principal setup.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require a valid session and establish the caller's principal.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.principal: Principal(user_id, role, shop_id, branch_id) for order services
    - g.session_context: the full SessionContext

    Returns 401 when the header is missing or the token is invalid, expired
    or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.principal = context.principal
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function
