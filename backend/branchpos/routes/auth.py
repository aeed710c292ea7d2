# Overview: Flask API routes for staff login/logout; issues the session tokens order routes require.

# backend/branchpos/routes/auth.py
"""Authentication API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import bearer_token, require_auth
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate staff and create a session token.

    Token must be sent as "Authorization: Bearer <token>" on order routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.warning("Failed login for %s from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        try:
            session, token = session_service.create_session(user.id)
        except ValueError as e:
            return jsonify({"error": str(e)}), 403

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "shop_id": session.shop_id,
            "branch_id": session.branch_id,
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user and the order scope carried by the session."""
    principal = g.principal
    return jsonify({
        "user": g.current_user.to_dict(),
        "principal": {
            "user_id": principal.user_id,
            "role": principal.role,
            "shop_id": principal.shop_id,
            "branch_id": principal.branch_id,
            "is_privileged": principal.is_privileged,
        },
    }), 200
