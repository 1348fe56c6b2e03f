"""
Auth Proxy Restart

tinyauth reads its users file at startup, so credential changes only take
effect after its container restarts. The restart runs on a daemon thread;
callers never wait for it and failures are only logged.
"""

import logging
import subprocess
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class DockerRestartNotifier:
    """Restart the tinyauth container via the docker CLI."""

    def __init__(self, container_name: str = "tinyauth", docker_bin: str = "docker"):
        self.container_name = container_name
        self.docker_bin = docker_bin

    def _restart(self) -> None:
        try:
            result = subprocess.run(
                [self.docker_bin, "restart", self.container_name],
                capture_output=True,
                text=True,
                timeout=60,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error("Restart of %s failed: %s", self.container_name, e)
            return
        if result.returncode != 0:
            logger.error(
                "Restart of %s failed (exit %d): %s",
                self.container_name, result.returncode, result.stderr.strip(),
            )
        else:
            logger.info("Restarted %s", self.container_name)

    def restart_auth_proxy(self) -> Optional[threading.Thread]:
        thread = threading.Thread(target=self._restart, name="restart-auth-proxy", daemon=True)
        thread.start()
        return thread
