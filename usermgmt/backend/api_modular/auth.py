"""
Account API Blueprint

Provides endpoints for:
- Login / logout / session check (session cookie)
- Password reset by email and by SMS code
- Signup and signup approval
- Profile, password change, phone update
- TOTP setup / enable / disable / recovery

The blueprint holds no state of its own: services are looked up on
``current_app.extensions["usermgmt"]``, populated by ``init_auth_routes``.
"""

import base64
import threading
from functools import wraps
from typing import Callable, List

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request

from ...auth import (
    AccountError,
    AccountService,
    AuthService,
    MetadataStoreError,
    Unauthorized,
    UserFileError,
)
from ...config import Settings

auth_bp = Blueprint("auth", __name__, url_prefix="/api")

EXTENSION_KEY = "usermgmt"


class BackgroundSender:
    """
    Runs reset deliveries (mail, SMS) on daemon threads.

    The reset-request endpoints answer before delivery starts, so a known
    user and an unknown one take the same time. Failures are logged.
    """

    def __init__(self, logger):
        self.logger = logger
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    def submit(self, description: str, func: Callable, *args) -> threading.Thread:
        def run():
            try:
                func(*args)
            except Exception as e:
                self.logger.error(f"{description} failed: {type(e).__name__}: {e}")

        thread = threading.Thread(target=run, daemon=True)
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        thread.start()
        return thread

    def join(self, timeout: float = None) -> None:
        """Wait for deliveries started so far."""
        with self._lock:
            pending = list(self._threads)
        for thread in pending:
            thread.join(timeout)


def init_auth_routes(
    app: Flask,
    auth_service: AuthService,
    account_service: AccountService,
    settings: Settings,
) -> None:
    """Attach services to ``app`` and register the blueprint."""
    app.extensions[EXTENSION_KEY] = {
        "auth": auth_service,
        "account": account_service,
        "settings": settings,
        "background": BackgroundSender(app.logger),
    }
    app.register_blueprint(auth_bp)


def _auth() -> AuthService:
    return current_app.extensions[EXTENSION_KEY]["auth"]


def _account() -> AccountService:
    return current_app.extensions[EXTENSION_KEY]["account"]


def _settings() -> Settings:
    return current_app.extensions[EXTENSION_KEY]["settings"]


def _background() -> BackgroundSender:
    return current_app.extensions[EXTENSION_KEY]["background"]


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _ok(**extra) -> Response:
    return jsonify({"ok": True, **extra})


@auth_bp.errorhandler(AccountError)
def handle_account_error(error: AccountError):
    return jsonify({"error": error.message}), error.status_code


@auth_bp.errorhandler(UserFileError)
@auth_bp.errorhandler(MetadataStoreError)
def handle_storage_error(error: Exception):
    current_app.logger.error(f"Storage error: {error}")
    return jsonify({"error": "failed to save account data"}), 500


# =============================================================================
# Session Middleware
# =============================================================================

def login_required(f: Callable) -> Callable:
    """Resolve the session cookie to ``g.username`` or answer 401."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = request.cookies.get(_settings().session_cookie_name)
        try:
            g.username = _auth().session_username(token)
        except Unauthorized as e:
            return jsonify({"error": e.message}), 401
        return f(*args, **kwargs)
    return decorated


def set_session_cookie(response: Response, token: str) -> Response:
    settings = _settings()
    response.set_cookie(
        settings.session_cookie_name,
        token,
        httponly=True,
        secure=settings.secure_cookie,
        samesite="Lax",
        max_age=settings.session_ttl_seconds,
        path="/",
    )
    return response


def clear_session_cookie(response: Response) -> Response:
    settings = _settings()
    response.delete_cookie(settings.session_cookie_name, path="/")
    return response


# =============================================================================
# Session Endpoints
# =============================================================================

@auth_bp.route("/auth/login", methods=["POST"])
def login():
    """
    Request body:
        {"username": "...", "password": "..."}

    Returns:
        200: {"ok": true} with session cookie
        401: {"error": "invalid credentials"}
    """
    data = _json_body()
    username = str(data.get("username", "")).strip()
    password = str(data.get("password", ""))
    if not username or not password:
        return jsonify({"error": "username and password required"}), 400

    try:
        token = _auth().login(username, password)
    except AccountError as e:
        return jsonify({"error": e.message}), 401

    return set_session_cookie(_ok(), token)


@auth_bp.route("/auth/logout", methods=["POST"])
def logout():
    token = request.cookies.get(_settings().session_cookie_name)
    if token:
        _auth().logout(token)
    return clear_session_cookie(_ok())


@auth_bp.route("/auth/session", methods=["GET"])
@login_required
def session_info():
    return jsonify({"username": g.username})


# =============================================================================
# Public Endpoints
# =============================================================================

@auth_bp.route("/health", methods=["GET"])
def health():
    return _ok()


@auth_bp.route("/features", methods=["GET"])
def features():
    return jsonify({"smsEnabled": _account().sms_enabled()})


@auth_bp.route("/password-reset/request", methods=["POST"])
def request_password_reset():
    """Always answers the same way, whether or not the user exists."""
    username = str(_json_body().get("username", "")).strip()
    if username:
        _background().submit("Password reset request", _account().request_password_reset, username)
    return _ok(message="If user exists, reset email sent")


@auth_bp.route("/password-reset/confirm", methods=["POST"])
def confirm_password_reset():
    data = _json_body()
    _account().reset_password(str(data.get("token", "")), str(data.get("newPassword", "")))
    return _ok()


@auth_bp.route("/signup", methods=["POST"])
def signup():
    data = _json_body()
    result = _account().signup(
        str(data.get("username", "")).strip(),
        str(data.get("email", "")).strip(),
        str(data.get("password", "")),
        str(data.get("phone", "")).strip(),
    )
    body = {"status": result.status}
    if result.signup_id:
        body["id"] = result.signup_id
    return _ok(**body)


@auth_bp.route("/signup/approve", methods=["POST"])
def approve_signup():
    _account().approve_signup(str(_json_body().get("id", "")))
    return _ok()


@auth_bp.route("/auth/forgot-password-sms", methods=["POST"])
def forgot_password_sms():
    """Always answers the same way, whether or not the phone is known."""
    phone = str(_json_body().get("phone", "")).strip()
    if not phone:
        return jsonify({"error": "phone required"}), 400
    _background().submit("SMS reset request", _account().request_sms_reset, phone)
    return _ok(message="If a user is associated with this phone, a code was sent")


@auth_bp.route("/auth/reset-password-sms", methods=["POST"])
def reset_password_sms():
    data = _json_body()
    phone = str(data.get("phone", "")).strip()
    code = str(data.get("code", "")).strip()
    new_password = str(data.get("newPassword", ""))
    if not phone or not code or not new_password:
        return jsonify({"error": "phone, code, and newPassword required"}), 400
    _account().reset_password_sms(phone, code, new_password)
    return _ok()


# =============================================================================
# Account Endpoints (session required)
# =============================================================================

@auth_bp.route("/account/profile", methods=["GET"])
@login_required
def profile():
    return jsonify(_account().profile(g.username).to_dict())


@auth_bp.route("/account/change-password", methods=["POST"])
@login_required
def change_password():
    data = _json_body()
    _account().change_password(
        g.username,
        str(data.get("oldPassword", "")),
        str(data.get("newPassword", "")),
    )
    return _ok()


@auth_bp.route("/account/phone", methods=["POST"])
@login_required
def update_phone():
    _account().set_phone(g.username, str(_json_body().get("phone", "")).strip())
    return _ok()


@auth_bp.route("/account/totp/setup", methods=["POST"])
@login_required
def totp_setup():
    setup = _account().totp_setup(g.username)
    return jsonify({
        "secret": setup.secret,
        "otpUrl": setup.otp_url,
        "qrPng": "data:image/png;base64," + base64.b64encode(setup.qr_png).decode("ascii"),
    })


@auth_bp.route("/account/totp/enable", methods=["POST"])
@login_required
def totp_enable():
    data = _json_body()
    _account().totp_enable(g.username, str(data.get("secret", "")), str(data.get("code", "")))
    return _ok()


@auth_bp.route("/account/totp/disable", methods=["POST"])
@login_required
def totp_disable():
    _account().totp_disable(g.username, str(_json_body().get("password", "")))
    return _ok()


@auth_bp.route("/account/totp/recover", methods=["POST"])
@login_required
def totp_recover():
    data = _json_body()
    _account().totp_recover(
        g.username,
        str(data.get("recoveryKey", "")),
        str(data.get("secret", "")),
        str(data.get("code", "")),
    )
    return _ok()
