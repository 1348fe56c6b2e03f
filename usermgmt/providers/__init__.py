"""
Outbound collaborators: webhook fan-out, SMS, mail and auth proxy restart.
"""

from .webhook import (
    WebhookError,
    WebhookTarget,
    build_template_data,
    deliver,
    render_template,
)
from .password_targets import (
    PasswordChanged,
    PasswordSyncDispatcher,
    PasswordTargetProvider,
    parse_password_targets,
)
from .sms import SMSProvider, WebhookSMSProvider, build_sms_provider
from .mail import MailError, SMTPMailer
from .docker import DockerRestartNotifier

__all__ = [
    # Webhooks
    "WebhookError",
    "WebhookTarget",
    "build_template_data",
    "deliver",
    "render_template",
    # Password targets
    "PasswordChanged",
    "PasswordSyncDispatcher",
    "PasswordTargetProvider",
    "parse_password_targets",
    # SMS
    "SMSProvider",
    "WebhookSMSProvider",
    "build_sms_provider",
    # Mail
    "MailError",
    "SMTPMailer",
    # Restart
    "DockerRestartNotifier",
]
