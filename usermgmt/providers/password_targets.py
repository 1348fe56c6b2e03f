"""
Password Target Fan-Out

Pushes a changed password to every configured webhook target at once. Each
target runs on its own thread; ``sync_password`` joins them all and returns
the per-target errors. ``PasswordSyncDispatcher`` wraps that in a detached
background thread so the request that changed the password never waits on
it, and only logs what went wrong.
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .webhook import DEFAULT_TIMEOUT, WebhookError, WebhookTarget, deliver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PasswordChanged:
    """Event emitted whenever a user's password is set."""
    username: str
    password: str
    hashed_password: str

    def template_vars(self) -> dict:
        return {
            "Username": self.username,
            "Password": self.password,
            "HashedPassword": self.hashed_password,
        }


def parse_password_targets(raw: Optional[str]) -> List[WebhookTarget]:
    """
    Parse the PASSWORD_TARGETS JSON list.

    Malformed input is logged and treated as no targets.
    """
    if not raw or not raw.strip():
        return []
    try:
        records = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse PASSWORD_TARGETS: %s", e)
        return []
    if not isinstance(records, list):
        logger.error("PASSWORD_TARGETS must be a JSON list, got %s", type(records).__name__)
        return []
    targets = [WebhookTarget.from_dict(r) for r in records if isinstance(r, dict)]
    logger.info("Loaded %d password target(s)", len(targets))
    return targets


class PasswordTargetProvider:
    """Delivers PasswordChanged events to N webhook targets in parallel."""

    def __init__(self, targets: Iterable[WebhookTarget], timeout: float = DEFAULT_TIMEOUT):
        self.targets = list(targets)
        self.timeout = timeout

    def sync_password(self, username: str, plain_password: str, hashed_password: str) -> List[WebhookError]:
        """
        Call every target concurrently and wait for all of them.

        Returns:
            One WebhookError per failed target; empty when all succeeded
        """
        event = PasswordChanged(username, plain_password, hashed_password)
        errors: List[WebhookError] = []
        errors_lock = threading.Lock()

        def run(target: WebhookTarget) -> None:
            try:
                deliver(target, event.template_vars(), timeout=self.timeout)
            except WebhookError as e:
                logger.warning("Password target %s failed: %s", target.name, e.reason)
                with errors_lock:
                    errors.append(e)
            except Exception as e:
                logger.exception("Password target %s crashed", target.name)
                with errors_lock:
                    errors.append(WebhookError(target.name, f"{type(e).__name__}: {e}"))
            else:
                logger.info("Password target %s synced OK for user %s", target.name, username)

        threads = [
            threading.Thread(target=run, args=(t,), name=f"password-target-{t.name}", daemon=True)
            for t in self.targets
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return errors


class PasswordSyncDispatcher:
    """
    Fire-and-forget front for PasswordTargetProvider.

    Services call ``notify_async``; with no provider it does nothing.
    """

    def __init__(self, provider: Optional[PasswordTargetProvider] = None):
        self.provider = provider

    @property
    def enabled(self) -> bool:
        return self.provider is not None and bool(self.provider.targets)

    def _run(self, event: PasswordChanged) -> None:
        errors = self.provider.sync_password(event.username, event.password, event.hashed_password)
        for error in errors:
            logger.error("Password sync error: %s", error)

    def notify_async(self, event: PasswordChanged) -> Optional[threading.Thread]:
        """Start the fan-out in the background. Returns the thread, if any."""
        if not self.enabled:
            return None
        thread = threading.Thread(
            target=self._run,
            args=(event,),
            name=f"password-sync-{event.username}",
            daemon=True,
        )
        thread.start()
        return thread
