"""
Tunnel session: one physical connection wrapped as a framed peer.

A session never retries. It reads until the stream ends or errors and then
resolves its closed future; whoever owns it decides what happens next.
"""

import asyncio
import logging
from typing import Any, Optional

import h11

from .channel import MessageChannel
from .models import Handshake

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024
DOCK_PATH = "/dock"
PROTOCOL_NAME = "hms-protocol"


class ConnectError(Exception):
    """Raised when the tunnel upgrade to the controller fails."""

    pass


class TunnelSession:
    """Framed peer on top of an asyncio stream pair."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        initial: bytes = b"",
        name: str = "tunnel",
    ):
        self.reader = reader
        self.writer = writer
        self.name = name
        self.channel = MessageChannel(self._write)
        self._initial = initial
        self._closed: Optional[asyncio.Future] = None

    # Delegates to the channel

    def subscribe(self, event, handler) -> None:
        self.channel.subscribe(event, handler)

    async def emit(self, event: str, *args: Any) -> Any:
        return await self.channel.emit(event, *args)

    def send_handshake(self, payload: Handshake) -> None:
        self.channel.send_handshake(payload)

    def on_handshake(self, handler) -> None:
        self.channel.on_handshake(handler)

    async def ping(self) -> None:
        await self.channel.ping()

    # Lifecycle

    def _closed_future(self) -> asyncio.Future:
        if self._closed is None:
            self._closed = asyncio.get_running_loop().create_future()
        return self._closed

    def _write(self, data: bytes) -> None:
        if self.writer.is_closing():
            return
        self.writer.write(data)

    def _finish(self, error: Optional[BaseException]) -> bool:
        """
        Resolve the closed future with the first error/close signal.

        Returns:
            True if this call was the one that closed the session
        """
        closed = self._closed_future()
        if closed.done():
            return False
        closed.set_result(error)
        self.channel.close()
        if not self.writer.is_closing():
            self.writer.close()
        if error is not None:
            logger.warning(f"{self.name}: connection error: {error}")
        else:
            logger.info(f"{self.name}: connection closed")
        return True

    async def run(self) -> Optional[BaseException]:
        """
        Read frames until the stream ends or errors.

        Returns:
            The error that ended the session, or None on a clean close
        """
        closed = self._closed_future()
        if self._initial:
            self.channel.feed(self._initial)
            self._initial = b""
        try:
            while not closed.done():
                data = await self.reader.read(READ_CHUNK)
                if not data:
                    break
                self.channel.feed(data)
        except (OSError, asyncio.IncompleteReadError) as e:
            self._finish(e)
        else:
            self._finish(None)
        return closed.result()

    def close(self) -> None:
        self._finish(None)

    async def wait_closed(self) -> Optional[BaseException]:
        return await self._closed_future()


async def open_tunnel(
    host: str,
    port: int,
    origin: str,
    key: Optional[str] = None,
    path: str = DOCK_PATH,
) -> TunnelSession:
    """
    Dial the controller and upgrade the connection with CONNECT.

    Args:
        host: Controller host
        port: Controller port
        origin: Local identity sent in the origin header
        key: Optional credential sent as a bearer token
        path: Upgrade path

    Returns:
        A TunnelSession for the upgraded connection

    Raises:
        ConnectError: If the controller refuses the upgrade
        OSError: If the connection cannot be established
    """
    reader, writer = await asyncio.open_connection(host, port)
    try:
        initial = await _upgrade(reader, writer, host, port, origin, key, path)
    except BaseException:
        writer.close()
        raise
    return TunnelSession(reader, writer, initial=initial, name=f"{host}:{port}")


async def _upgrade(reader, writer, host, port, origin, key, path) -> bytes:
    conn = h11.Connection(our_role=h11.CLIENT)
    headers = [
        ("host", f"[{host}]:{port}" if ":" in host else f"{host}:{port}"),
        ("origin", origin),
        ("connection", "upgrade"),
        ("upgrade", PROTOCOL_NAME),
    ]
    if key:
        headers.append(("authorization", f"Bearer {key}"))
    writer.write(conn.send(h11.Request(method="CONNECT", target=path, headers=headers)))
    writer.write(conn.send(h11.EndOfMessage()))
    await writer.drain()

    while True:
        try:
            event = conn.next_event()
        except h11.RemoteProtocolError as e:
            raise ConnectError(f"bad upgrade response: {e}") from e

        if event is h11.NEED_DATA:
            data = await reader.read(READ_CHUNK)
            if not data:
                raise ConnectError("connection closed during upgrade")
            conn.receive_data(data)
        elif isinstance(event, h11.InformationalResponse):
            # 101 accepts the Upgrade; h11 pauses right after it
            continue
        elif isinstance(event, h11.Response):
            # 2xx accepts the CONNECT
            if not 200 <= event.status_code < 300:
                raise ConnectError(f"upgrade refused with status {event.status_code}")
        elif event is h11.PAUSED:
            data, _ = conn.trailing_data
            return bytes(data)
        elif isinstance(event, (h11.ConnectionClosed, h11.EndOfMessage)):
            raise ConnectError("connection closed during upgrade")
