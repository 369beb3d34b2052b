"""
Connection supervisor.

Keeps exactly one tunnel session to the controller alive, reconnecting
after every failure. Backoff is deterministic:

- 5s between attempts while the link has not come up since the last drop
- 2.5s for the first retry right after a live session drops
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from dockhand.modules.tunnel import ConnectError, Handshake, TunnelSession, TunnelState, open_tunnel

logger = logging.getLogger(__name__)

COLD_RETRY_DELAY = 5.0
WARM_RETRY_DELAY = 2.5

Connector = Callable[[], Awaitable[TunnelSession]]


class ConnectionAttempt:
    """One connect attempt; its failure is handled at most once."""

    def __init__(self, number: int):
        self.number = number
        self.failed = False

    def fail(self) -> bool:
        """Mark the attempt failed. Returns False if it already was."""
        if self.failed:
            return False
        self.failed = True
        return True


class ConnectionSupervisor:
    """Owns the outbound tunnel: connect, detect failure, back off, repeat."""

    def __init__(
        self,
        host: str,
        port: int,
        identity: str,
        tags: List[str],
        dispatcher,
        key: Optional[str] = None,
        connector: Optional[Connector] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the supervisor.

        Args:
            host: Controller host
            port: Controller port
            identity: Local identity (origin header and handshake id)
            tags: Capability tags sent in the handshake
            dispatcher: CommandDispatcher attached to each live session
            key: Optional credential for the controller
            connector: Override for dialing the controller
            sleep: Override for the backoff wait
        """
        self.host = host
        self.port = port
        self.identity = identity
        self.tags = list(tags)
        self.dispatcher = dispatcher
        self.key = key
        self._connector = connector or self._open
        self._sleep = sleep

        self.state = TunnelState.DISCONNECTED
        self.dropped = True
        self.session: Optional[TunnelSession] = None
        self._attempts = 0
        self._running = False

    async def _open(self) -> TunnelSession:
        return await open_tunnel(self.host, self.port, self.identity, key=self.key)

    def _set_state(self, state: TunnelState) -> None:
        if state != self.state:
            logger.info(f"Tunnel {self.state.value} -> {state.value}")
            self.state = state

    def handshake(self) -> Handshake:
        return Handshake(id=self.identity, tags=self.tags)

    def on_failure(self, attempt: ConnectionAttempt) -> Optional[float]:
        """
        Record a failed attempt and pick the retry delay.

        Returns:
            Seconds to wait before the next attempt, or None if this
            attempt's failure was already handled
        """
        if not attempt.fail():
            return None

        self.session = None
        self._set_state(TunnelState.DISCONNECTED)
        if self.dropped:
            return COLD_RETRY_DELAY
        self.dropped = True
        return WARM_RETRY_DELAY

    def on_ready(self, session: TunnelSession) -> None:
        """Mark the link live, send our handshake, then start taking commands."""
        self.dropped = False
        self.session = session
        self._set_state(TunnelState.READY)
        session.send_handshake(self.handshake())
        self.dispatcher.attach(session)

    async def connect_once(self) -> float:
        """
        Run one connection attempt to completion.

        Returns:
            Delay before the next attempt
        """
        self._attempts += 1
        attempt = ConnectionAttempt(self._attempts)
        self._set_state(TunnelState.CONNECTING)
        logger.info(f"Connecting to {self.host}:{self.port} (attempt {attempt.number})")

        try:
            session = await self._connector()
        except (ConnectError, OSError) as e:
            logger.warning(f"Connect to {self.host}:{self.port} failed: {e}")
            return self.on_failure(attempt)

        delay = None
        try:
            self.on_ready(session)
            error = await session.run()
            if error is not None:
                logger.warning(f"Tunnel dropped: {error}")
            else:
                logger.info("Tunnel closed by controller")
        finally:
            delay = self.on_failure(attempt)
            # A second close signal for the same attempt is a no-op
            session.close()
        return delay

    async def run_forever(self) -> None:
        """Connect, and reconnect after every failure, until cancelled."""
        self._running = True
        try:
            while self._running:
                delay = await self.connect_once()
                if delay is None:
                    continue
                logger.info(f"Reconnecting in {delay:g}s")
                await self._sleep(delay)
        finally:
            self._running = False
            if self.session is not None:
                self.session.close()

    def stop(self) -> None:
        self._running = False
        if self.session is not None:
            self.session.close()
