"""
Local control endpoint.

Plain requests get a static identification string. A CONNECT request is a
tunnel upgrade from a peer dialing the agent: the socket becomes a tunnel
session, and commands are only dispatched once the peer has sent its
handshake.
"""

import asyncio
import logging
from typing import Optional, Set

import h11

from dockhand.modules.tunnel import PROTOCOL_NAME, Handshake, TunnelSession, TunnelState

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024
IDENTIFICATION = b"dockhand\n"

SWITCH_RESPONSE = (
    "HTTP/1.1 101 Switching Protocols\r\n"
    f"Upgrade: {PROTOCOL_NAME}\r\n"
    "Connection: Upgrade\r\n\r\n"
).encode("ascii")


class InboundSession:
    """A peer-initiated tunnel waiting for, then holding, a handshake."""

    def __init__(self, session: TunnelSession, dispatcher):
        self.session = session
        self.dispatcher = dispatcher
        self.state = TunnelState.AWAITING_HANDSHAKE
        self.peer: Optional[Handshake] = None
        session.on_handshake(self._on_handshake)

    def _on_handshake(self, handshake: Handshake) -> None:
        if self.peer is not None:
            logger.debug(f"{self.session.name}: ignoring repeated handshake from {handshake.id}")
            return
        self.peer = handshake
        logger.info(f"{self.session.name}: handshake from {handshake.id} tags={handshake.tags}")
        self.dispatcher.attach(self.session)
        self.state = TunnelState.READY

    async def run(self) -> None:
        await self.session.run()
        self.state = TunnelState.DISCONNECTED


class ControlServer:
    """HTTP listener for identification requests and inbound tunnel upgrades."""

    def __init__(self, dispatcher, host: str = "0.0.0.0", port: int = 10002):
        self.dispatcher = dispatcher
        self.host = host
        self.port = port
        self.sessions: Set[InboundSession] = set()
        self._server: Optional[asyncio.AbstractServer] = None

    async def start(self) -> asyncio.AbstractServer:
        self._server = await asyncio.start_server(self.handle, self.host, self.port)
        sock = self._server.sockets[0]
        self.port = sock.getsockname()[1]
        logger.info(f"Control endpoint listening on {self.host}:{self.port}")
        return self._server

    async def close(self) -> None:
        for inbound in list(self.sessions):
            inbound.session.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        conn = h11.Connection(our_role=h11.SERVER)
        request: Optional[h11.Request] = None
        try:
            while True:
                event = conn.next_event()
                if event is h11.NEED_DATA:
                    conn.receive_data(await reader.read(READ_CHUNK))
                elif isinstance(event, h11.Request):
                    request = event
                elif event is h11.PAUSED:
                    break
                elif isinstance(event, h11.EndOfMessage) and request.method != b"CONNECT":
                    break
                elif isinstance(event, h11.ConnectionClosed):
                    writer.close()
                    return
        except (h11.RemoteProtocolError, OSError) as e:
            logger.warning(f"Bad request from {peer}: {e}")
            writer.close()
            return

        if request.method == b"CONNECT":
            trailing, _ = conn.trailing_data
            await self._upgrade(reader, writer, bytes(trailing), peer)
        else:
            await self._identify(conn, writer)

    async def _identify(self, conn: h11.Connection, writer: asyncio.StreamWriter) -> None:
        headers = [
            ("content-type", "text/plain"),
            ("content-length", str(len(IDENTIFICATION))),
            ("connection", "close"),
        ]
        try:
            writer.write(conn.send(h11.Response(status_code=200, headers=headers)))
            writer.write(conn.send(h11.Data(data=IDENTIFICATION)))
            writer.write(conn.send(h11.EndOfMessage()))
            await writer.drain()
        except OSError as e:
            logger.debug(f"Identification response failed: {e}")
        finally:
            writer.close()

    async def _upgrade(self, reader, writer, trailing: bytes, peer) -> None:
        logger.info(f"Inbound tunnel from {peer}")
        writer.write(SWITCH_RESPONSE)
        session = TunnelSession(reader, writer, initial=trailing, name=f"inbound {peer}")
        inbound = InboundSession(session, self.dispatcher)
        self.sessions.add(inbound)
        try:
            await inbound.run()
        finally:
            self.sessions.discard(inbound)
