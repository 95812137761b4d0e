# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stockroom/routes/auth.py
"""
Authentication and credential-recovery API routes

SECURITY FEATURES:
- Session management with server-issued bearer tokens
- Registration and password reset gated by emailed, single-use codes
- Reset codes are exchanged for an identity-bound reset token before a
  new password is accepted
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..errors import ServiceError
from ..services import auth_service
from ..services import session_service
from ..services.audit_service import AuditTrail
from ..services.mail_service import MailDelivery
from ..services.verification_service import VerificationFlow
from ..decorators import bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


def build_verification_flow() -> VerificationFlow:
    cfg = current_app.config
    return VerificationFlow(
        db.session,
        MailDelivery(),
        AuditTrail(db.session),
        secret_key=cfg["SECRET_KEY"],
        registration_ttl_seconds=cfg["REGISTRATION_CODE_TTL_SECONDS"],
        reset_ttl_seconds=cfg["RESET_CODE_TTL_SECONDS"],
        reset_token_ttl_seconds=cfg["RESET_TOKEN_TTL_SECONDS"],
    )


def _service_error_response(e: ServiceError, action: str):
    if e.status_code >= 500:
        current_app.logger.error("%s failed: %s", action, e.__class__.__name__)
    return jsonify({"error": e.message}), e.status_code


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("identifier")
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        AuditTrail(db.session).append(user.username, "login_success", {"username": user.username})

        return jsonify({
            "success": True,
            "username": user.username,
            "role": user.role,
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        token = bearer_token()
        if token is None:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/send-code")
def send_code_route():
    """
    Email a registration code for a new username.

    409 if the username already belongs to a registered account.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    email = data.get("email")
    if not username or not email:
        return jsonify({"error": "username and email required"}), 400

    try:
        issued = build_verification_flow().issue_registration_code(username, email)
    except ServiceError as e:
        return _service_error_response(e, "send-code")
    except Exception:
        current_app.logger.exception("Failed to issue registration code")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "message": "Verification code sent",
        "expires_in_seconds": current_app.config["REGISTRATION_CODE_TTL_SECONDS"],
        "username": issued.username,
    }), 200


@auth_bp.post("/register")
def register_route():
    """Redeem a registration code and set the account password."""
    data = request.get_json(silent=True) or {}
    required = ("username", "password", "email", "code")
    if not all(data.get(k) for k in required):
        return jsonify({"error": "username, password, email and code required"}), 400

    try:
        user = build_verification_flow().register(
            data["username"], data["email"], data["password"], str(data["code"])
        )
    except ServiceError as e:
        return _service_error_response(e, "register")
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"success": True, "message": "Registration complete", "user": user.to_dict()}), 201


@auth_bp.post("/forgot-password")
def forgot_password_route():
    """Email a password reset code to the account's address on file."""
    data = request.get_json(silent=True) or {}
    identifier = data.get("identifier") or data.get("username")
    if not identifier:
        return jsonify({"error": "identifier required"}), 400

    try:
        build_verification_flow().issue_reset_code(identifier)
    except ServiceError as e:
        return _service_error_response(e, "forgot-password")
    except Exception:
        current_app.logger.exception("Failed to issue reset code")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "message": "Verification code sent to the registered email",
        "expires_in_seconds": current_app.config["RESET_CODE_TTL_SECONDS"],
    }), 200


@auth_bp.post("/verify-code")
def verify_code_route():
    """
    Exchange a reset code for a reset token.

    The returned token, not the numeric code, is what /reset-password accepts.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    code = data.get("code")
    if not username or not code:
        return jsonify({"error": "username and code required"}), 400

    try:
        grant = build_verification_flow().verify_reset_code(username, str(code))
    except ServiceError as e:
        return _service_error_response(e, "verify-code")
    except Exception:
        current_app.logger.exception("Failed to verify reset code")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "message": "Code verified, continue to set a new password",
        "token": grant.token,
        "expires_in_seconds": current_app.config["RESET_TOKEN_TTL_SECONDS"],
    }), 200


@auth_bp.post("/reset-password")
def reset_password_route():
    """
    Set a new password with the reset token from /verify-code.

    Accepts the token under "token"; "code" is read as a fallback for
    clients that still send the older field name.
    """
    data = request.get_json(silent=True) or {}
    token = data.get("token") or data.get("code")
    new_password = data.get("newPassword") or data.get("new_password")
    if not token or not new_password:
        return jsonify({"error": "token and newPassword required"}), 400

    try:
        build_verification_flow().reset_password(str(token), new_password)
    except ServiceError as e:
        return _service_error_response(e, "reset-password")
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"message": "Password reset, please log in again"}), 200
