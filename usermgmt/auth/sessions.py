"""
Auth Service: login, logout and session validation.

Session lifecycle: absent -> active -> (expired | revoked). Expiry is lazy,
checked on every ``session_username`` read; an expired session found there
is deleted before the caller is turned away.
"""

import logging
from typing import Callable, Optional

from .database import generate_session_token
from .exceptions import InvalidCredentials, Unauthorized
from .models import StateStore, now_seconds
from .passwords import verify_password
from .users import UserFile

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 86400


class AuthService:
    """Issues and validates session tokens against the users file."""

    def __init__(
        self,
        state: StateStore,
        users: UserFile,
        session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], int] = now_seconds,
    ):
        self.state = state
        self.users = users
        self.session_ttl_seconds = session_ttl_seconds
        self.clock = clock

    def login(self, username: str, password: str) -> str:
        """
        Verify credentials and open a session.

        Returns:
            Session token (64 hex chars)

        Raises:
            InvalidCredentials: unknown user or wrong password (indistinguishable)
        """
        record = self.users.find(username)
        if record is None or not verify_password(password, record.password):
            raise InvalidCredentials()

        token = generate_session_token()
        now = self.clock()
        self.state.create_session(token, record.username, now, now + self.session_ttl_seconds)
        logger.info("Session opened for %s", record.username)
        return token

    def logout(self, token: str) -> None:
        self.state.delete_session(token)

    def session_username(self, token: Optional[str]) -> str:
        """
        Resolve a session token to its username.

        Raises:
            Unauthorized: token unknown or expired
        """
        if not token:
            raise Unauthorized()
        session = self.state.get_session(token)
        if session is None:
            raise Unauthorized()
        if session.is_expired(self.clock()):
            self.state.delete_session(token)
            raise Unauthorized()
        return session.username
