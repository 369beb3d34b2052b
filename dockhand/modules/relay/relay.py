"""
Artifact relay.

Proxies local fetches to the controller and streams the upstream response
straight back. Nothing is buffered beyond one chunk.

If the upstream fails at any point the local connection is aborted instead
of answered: callers retry the whole fetch and never see a partial body
dressed up as a complete one.
"""

import asyncio
import logging
from typing import Optional

import h11
import httpx

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024


class ArtifactRelay:
    """HTTP listener that relays GET requests to the controller."""

    def __init__(
        self,
        upstream_url: str,
        identity: str,
        key: Optional[str] = None,
        host: str = "0.0.0.0",
        port: int = 7001,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the relay.

        Args:
            upstream_url: Base URL of the controller, e.g. http://host:10002
            identity: Local identity sent in the origin header
            key: Optional credential for the controller
            host: Bind address
            port: Bind port (0 picks a free one)
            transport: Override for the upstream HTTP transport
        """
        self.upstream_url = upstream_url.rstrip("/")
        self.identity = identity
        self.key = key
        self.host = host
        self.port = port
        headers = {"origin": identity}
        if key:
            headers["authorization"] = f"Bearer {key}"
        self.client = httpx.AsyncClient(
            base_url=self.upstream_url,
            headers=headers,
            timeout=httpx.Timeout(30.0, read=None),
            transport=transport,
        )
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def url(self) -> str:
        """Base URL local consumers fetch artifacts from."""
        host = "localhost" if self.host in ("0.0.0.0", "") else self.host
        return f"http://{host}:{self.port}"

    async def start(self) -> asyncio.AbstractServer:
        self._server = await asyncio.start_server(self.handle, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info(f"Artifact relay listening on {self.host}:{self.port} -> {self.upstream_url}")
        return self._server

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
        await self.client.aclose()

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        conn = h11.Connection(our_role=h11.SERVER)
        request: Optional[h11.Request] = None
        try:
            while request is None:
                event = conn.next_event()
                if event is h11.NEED_DATA:
                    conn.receive_data(await reader.read(READ_CHUNK))
                elif isinstance(event, h11.Request):
                    request = event
                elif isinstance(event, h11.ConnectionClosed):
                    writer.close()
                    return
        except (h11.RemoteProtocolError, OSError) as e:
            logger.warning(f"Bad relay request: {e}")
            writer.transport.abort()
            return

        path = request.target.decode("ascii", errors="replace")
        logger.info(f"fetching tar: {path}")
        await self.relay(path, conn, writer)

    async def relay(self, path: str, conn: h11.Connection, writer: asyncio.StreamWriter) -> None:
        """Stream GET <path> from upstream into the local connection."""
        try:
            async with self.client.stream("GET", path) as upstream:
                headers = [(name, value) for name, value in upstream.headers.raw]
                writer.write(
                    conn.send(h11.Response(status_code=upstream.status_code, headers=headers))
                )
                async for chunk in upstream.aiter_raw():
                    writer.write(conn.send(h11.Data(data=chunk)))
                    await writer.drain()
                writer.write(conn.send(h11.EndOfMessage()))
                await writer.drain()
        except (httpx.HTTPError, h11.LocalProtocolError, OSError) as e:
            logger.warning(f"Relay of {path} failed, dropping connection: {e}")
            writer.transport.abort()
            return
        writer.close()
