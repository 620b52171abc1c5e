"""Authentication handshake with the patch server.

After the connection opens the server drives the exchange by sending raw
int32 response codes:

- 511: challenge. The client answers with its fingerprint as one ASCII frame.
  The server may challenge again before deciding; the fingerprint is only
  ever written once per handshake.
- 202: accepted. The handshake is complete.
- anything else: denied. The connection is closed and the session ends.

There is no retry and no timeout at this layer.
"""

from __future__ import annotations

import structlog

from rappelz_updater.core.errors import AuthenticationDenied
from rappelz_updater.core.events import UpdaterEvents
from rappelz_updater.core.types import AuthenticationState
from rappelz_updater.protocol.constants import CODE_ACCEPTED, CODE_CHALLENGE
from rappelz_updater.protocol.framing import FramedStream

logger = structlog.get_logger()


class Handshake:
    """Authentication state machine for one connection.

    Args:
        stream: Framed stream over the freshly opened connection
        fingerprint: Client credential sent in reply to a challenge
        events: Notification hooks to emit on
    """

    def __init__(
        self,
        stream: FramedStream,
        fingerprint: str,
        events: UpdaterEvents | None = None,
    ) -> None:
        self.stream = stream
        self.fingerprint = fingerprint
        self.events = events or UpdaterEvents()
        self.state = AuthenticationState.AWAITING_CHALLENGE
        self.challenges = 0
        self.credentials_sent = 0

    def run(self) -> AuthenticationState:
        """Drive the handshake until it is accepted or denied.

        Returns:
            AuthenticationState.AUTHENTICATED

        Raises:
            AuthenticationDenied: If the server answers with any other code
            ConnectionLost: If the stream closes during the handshake
        """
        while not self.state.terminal:
            self.step(self.stream.read_int32())
        return self.state

    def step(self, code: int) -> AuthenticationState:
        """Apply one response code to the state machine."""
        if self.state is not AuthenticationState.AWAITING_CHALLENGE:
            raise RuntimeError(f"Handshake is not awaiting a response (state={self.state})")

        if code == CODE_CHALLENGE:
            self.challenges += 1
            logger.debug("auth_challenge", count=self.challenges)
            self.events.authentication_requested.emit()
            if self.credentials_sent == 0:
                self.state = AuthenticationState.RESPONDING
                self.stream.write_framed(self.fingerprint.encode("ascii"))
                self.credentials_sent += 1
            self.state = AuthenticationState.AWAITING_CHALLENGE

        elif code == CODE_ACCEPTED:
            self.state = AuthenticationState.AUTHENTICATED
            logger.info("auth_accepted", challenges=self.challenges)
            self.events.authentication_accepted.emit()

        else:
            self.state = AuthenticationState.DENIED
            logger.error("auth_denied", code=code)
            self.events.authentication_denied.emit()
            self.stream.close()
            raise AuthenticationDenied(
                f"Authentication failed or received unexpected result from the server (code {code})",
                code=code,
            )

        return self.state
