"""
Flask application assembly.

Builds the stores, services and providers from Settings and mounts the
account blueprint. Collaborators can be swapped in for tests.
"""

from typing import Callable, Optional

from flask import Flask, request

from ...auth import AccountService, AuthService, MetadataStore, StateStore, UserFile, now_seconds
from ...config import Settings, load_settings
from ...providers import (
    DockerRestartNotifier,
    PasswordSyncDispatcher,
    PasswordTargetProvider,
    SMTPMailer,
    build_sms_provider,
)
from .auth import auth_bp, init_auth_routes

__all__ = ["auth_bp", "create_app", "run_server"]


def create_app(
    settings: Optional[Settings] = None,
    metadata: Optional[MetadataStore] = None,
    mailer=None,
    restarter=None,
    password_sync=None,
    sms=None,
    clock: Callable[[], int] = now_seconds,
) -> Flask:
    """
    Create the Flask application.

    Args:
        settings: Resolved settings (loaded from the environment if None)
        metadata: Durable metadata store (opened at settings.users_toml_path if None)
        mailer, restarter, password_sync, sms: collaborator overrides
        clock: epoch-seconds time source shared by the services
    """
    if settings is None:
        settings = load_settings()

    app = Flask(__name__)

    if metadata is None:
        metadata = MetadataStore(settings.users_toml_path)
    state = StateStore(phone_lookup=metadata.find_user_by_phone)
    state.purge_expired(clock())
    users = UserFile(settings.users_file_path)

    if mailer is None:
        mailer = SMTPMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_addr=settings.smtp_from,
            base_url=settings.mail_base_url,
        )
    if restarter is None:
        restarter = DockerRestartNotifier(settings.tinyauth_container_name)
    if password_sync is None:
        provider = PasswordTargetProvider(settings.password_targets) if settings.password_targets else None
        password_sync = PasswordSyncDispatcher(provider)
    if sms is None:
        sms = build_sms_provider(settings.sms_target)

    auth_service = AuthService(
        state,
        users,
        session_ttl_seconds=settings.session_ttl_seconds,
        clock=clock,
    )
    account_service = AccountService(
        state,
        metadata,
        users,
        mailer=mailer,
        restarter=restarter,
        password_sync=password_sync,
        sms=sms,
        totp_issuer=settings.totp_issuer,
        reset_token_ttl_seconds=settings.reset_token_ttl_seconds,
        signup_require_approval=settings.signup_require_approval,
        clock=clock,
    )
    init_auth_routes(app, auth_service, account_service, settings)

    origins = settings.cors_origins

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and ("*" in origins or origin in origins):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Origin, Content-Type, Accept"
            response.headers["Vary"] = "Origin"
        return response

    return app


def run_server(app: Flask, port: int = 8080, debug: bool = False, use_waitress: bool = False) -> None:
    """
    Serve ``app`` on all interfaces.

    Args:
        use_waitress: production WSGI server instead of the Flask dev server
    """
    if use_waitress:
        from waitress import serve

        app.logger.info(f"Serving with waitress on port {port}")
        serve(app, host="0.0.0.0", port=port, threads=8)
        return
    app.run(host="0.0.0.0", port=port, debug=debug, threaded=True)
