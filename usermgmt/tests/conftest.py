"""
Pytest configuration and shared fixtures for the account sidecar tests.
"""

import http.server
import sys
import tempfile
import threading
from pathlib import Path

import pytest

# Project root (two levels up from usermgmt/tests/)
PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from usermgmt.auth import (  # noqa: E402
    AccountService,
    AuthService,
    MetadataStore,
    StateStore,
    UserFile,
)

# A fixed, 30-second-aligned moment so TOTP windows are predictable
START_TIME = 1_700_000_010


class FakeClock:
    """Epoch-seconds clock the tests move by hand."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class RecordingMailer:
    def __init__(self):
        self.sent = []
        self.fail_with = None

    def send_reset_email(self, username, token):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((username, token))


class RecordingRestarter:
    def __init__(self):
        self.count = 0

    def restart_auth_proxy(self):
        self.count += 1


class RecordingPasswordSync:
    def __init__(self):
        self.events = []

    def notify_async(self, event):
        self.events.append(event)


class RecordingSMS:
    def __init__(self):
        self.sent = []
        self.fail_with = None

    def send_sms(self, to, message):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((to, message))


@pytest.fixture
def temp_dir():
    """Temporary directory as a Path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metadata(temp_dir):
    return MetadataStore(str(temp_dir / "users" / "users.toml"))


@pytest.fixture
def state(metadata):
    return StateStore(phone_lookup=metadata.find_user_by_phone)


@pytest.fixture
def users(temp_dir):
    return UserFile(str(temp_dir / "data" / "users.txt"))


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def restarter():
    return RecordingRestarter()


@pytest.fixture
def password_sync():
    return RecordingPasswordSync()


@pytest.fixture
def sms():
    return RecordingSMS()


@pytest.fixture
def auth_service(state, users, clock):
    return AuthService(state, users, session_ttl_seconds=3600, clock=clock)


@pytest.fixture
def account_factory(state, metadata, users, mailer, restarter, password_sync, sms, clock):
    """Build an AccountService; keyword overrides replace the defaults."""
    def make(**overrides):
        kwargs = dict(
            mailer=mailer,
            restarter=restarter,
            password_sync=password_sync,
            sms=sms,
            totp_issuer="tinyauth-test",
            reset_token_ttl_seconds=600,
            signup_require_approval=False,
            clock=clock,
        )
        kwargs.update(overrides)
        return AccountService(state, metadata, users, **kwargs)
    return make


@pytest.fixture
def account_service(account_factory):
    return account_factory()


# =============================================================================
# Recording HTTP server for webhook tests
# =============================================================================

class _RecordingHandler(http.server.BaseHTTPRequestHandler):
    """Records each request; answers with the status configured for its path."""

    def _handle(self):
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length) if length > 0 else b""
        server = self.server
        with server.lock:
            server.requests.append({
                "method": self.command,
                "path": self.path,
                "headers": dict(self.headers),
                "body": body.decode("utf-8"),
            })
            status = server.statuses.get(self.path.split("?")[0], 200)
            reply = server.replies.get(self.path.split("?")[0], b"ok")

        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(reply)))
        self.end_headers()
        self.wfile.write(reply)

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle
    do_PATCH = _handle

    def log_message(self, format, *args):
        pass


class RecordingServer(http.server.ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), _RecordingHandler)
        self.lock = threading.Lock()
        self.requests = []
        self.statuses = {}
        self.replies = {}

    def url(self, path: str) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}{path}"

    def requests_for(self, path: str):
        with self.lock:
            return [r for r in self.requests if r["path"].split("?")[0] == path]


@pytest.fixture
def webhook_server():
    server = RecordingServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
