"""
Webhook SMS Provider

Sends a text message by calling one templated webhook with ``To`` and
``Message`` variables (plus the configured ``env``).
"""

import logging
from typing import Optional, Protocol

from .webhook import DEFAULT_TIMEOUT, WebhookTarget, deliver

logger = logging.getLogger(__name__)


class SMSProvider(Protocol):
    def send_sms(self, to: str, message: str) -> None:
        ...


class WebhookSMSProvider:
    """SMS delivery through a configurable HTTP webhook."""

    def __init__(self, target: WebhookTarget, timeout: float = DEFAULT_TIMEOUT):
        if not target.name:
            target.name = "sms"
        self.target = target
        self.timeout = timeout

    def send_sms(self, to: str, message: str) -> None:
        """
        Raises:
            WebhookError: delivery failed
        """
        status = deliver(self.target, {"To": to, "Message": message}, timeout=self.timeout)
        logger.info("Sent SMS to %s via webhook (HTTP %d)", to, status)


def build_sms_provider(target: Optional[WebhookTarget]) -> Optional[WebhookSMSProvider]:
    if target is None:
        return None
    logger.info("Webhook SMS provider configured: %s %s", target.method, target.url)
    return WebhookSMSProvider(target)
