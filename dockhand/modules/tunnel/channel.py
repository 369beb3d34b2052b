"""
Message channel: named-event calls, replies, handshake and ping on top of a
line-framed byte stream.

The channel owns no socket. Bytes go out through the write callable given
at construction; bytes come in through feed(). TunnelSession wires both to
a real connection.
"""

import asyncio
import inspect
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from .models import Frame, FrameOp, Handshake

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]
HandshakeHandler = Callable[[Handshake], Any]


class ProtocolError(Exception):
    """Raised for frames that cannot be decoded."""

    pass


class CommandError(Exception):
    """Raised by a handler to send an error reply with the given reason."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RemoteError(Exception):
    """Raised by emit() when the far side answers with an error."""

    pass


class ChannelClosed(Exception):
    """Raised for calls pending when the channel closes."""

    pass


def encode_frame(frame: Frame) -> bytes:
    return frame.model_dump_json(exclude_none=True).encode("utf-8") + b"\n"


def decode_frame(line: bytes) -> Frame:
    """Decode one line into a Frame."""
    try:
        return Frame.model_validate(json.loads(line))
    except (ValueError, ValidationError) as e:
        raise ProtocolError(f"invalid frame: {e}") from e


class MessageChannel:
    """Framed peer offering subscribe / emit / handshake / ping."""

    def __init__(self, write: Callable[[bytes], None]):
        self._write = write
        self._handlers: Dict[str, Handler] = {}
        self._handshake_handlers = []
        self._pending: Dict[int, asyncio.Future] = {}
        self._seq = itertools.count(1)
        self._buffer = b""
        self._tasks = set()
        self._closed = False
        self.remote_handshake: Optional[Handshake] = None

    # Outbound

    def subscribe(self, event: str, handler: Handler) -> None:
        """Register the handler answering calls for event."""
        self._handlers[event] = handler

    def on_handshake(self, handler: HandshakeHandler) -> None:
        self._handshake_handlers.append(handler)

    def send_handshake(self, payload: Handshake) -> None:
        self._send(Frame(op=FrameOp.HANDSHAKE, payload=payload))

    async def emit(self, event: str, *args: Any) -> Any:
        """
        Call a named event on the far side and wait for its reply.

        Raises:
            RemoteError: If the far side answered with an error
            ChannelClosed: If the channel closed before the reply
        """
        seq = next(self._seq)
        future = self._expect(seq)
        self._send(Frame(op=FrameOp.CALL, seq=seq, event=event, args=list(args)))
        reply = await future
        if reply.error is not None:
            raise RemoteError(reply.error)
        return reply.result

    async def ping(self) -> None:
        """Send a ping and wait for the matching pong."""
        seq = next(self._seq)
        future = self._expect(seq)
        self._send(Frame(op=FrameOp.PING, seq=seq))
        await future

    # Inbound

    def feed(self, data: bytes) -> None:
        """Consume raw bytes from the transport."""
        self._buffer += data
        while b"\n" in self._buffer:
            line, self._buffer = self._buffer.split(b"\n", 1)
            if not line.strip():
                continue
            try:
                frame = decode_frame(line)
            except ProtocolError as e:
                logger.warning(f"Dropping frame: {e}")
                continue
            self._receive(frame)

    def close(self) -> None:
        """Fail pending calls and cancel running handlers."""
        if self._closed:
            return
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ChannelClosed("channel closed"))
        self._pending.clear()
        for task in list(self._tasks):
            task.cancel()

    async def drain(self) -> None:
        """Wait for handlers still running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Internals

    def _send(self, frame: Frame) -> None:
        if self._closed:
            raise ChannelClosed("channel closed")
        self._write(encode_frame(frame))

    def _expect(self, seq: int) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._pending[seq] = future
        return future

    def _receive(self, frame: Frame) -> None:
        if frame.op == FrameOp.HANDSHAKE:
            if frame.payload is None:
                logger.warning("Handshake frame without payload")
                return
            self.remote_handshake = frame.payload
            for handler in list(self._handshake_handlers):
                handler(frame.payload)
        elif frame.op == FrameOp.CALL:
            task = asyncio.create_task(self._dispatch(frame))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif frame.op == FrameOp.PING:
            self._send(Frame(op=FrameOp.PONG, seq=frame.seq))
        elif frame.op in (FrameOp.REPLY, FrameOp.PONG):
            future = self._pending.pop(frame.seq, None)
            if future is None:
                logger.warning(f"Unexpected {frame.op.value} for seq {frame.seq}")
            elif not future.done():
                future.set_result(frame)

    async def _dispatch(self, frame: Frame) -> None:
        """Run one call and send exactly one reply for it."""
        handler = self._handlers.get(frame.event)
        args = frame.args or []
        error = None
        result = None
        if handler is None:
            error = f"unknown command: {frame.event}"
        else:
            try:
                inspect.signature(handler).bind(*args)
            except TypeError as e:
                error = f"bad arguments for {frame.event}: {e}"
        if error is None:
            try:
                result = await handler(*args)
            except CommandError as e:
                error = e.reason
            except Exception as e:
                logger.exception(f"Handler for {frame.event} failed")
                error = str(e) or type(e).__name__

        if self._closed:
            logger.info(f"Dropping reply for {frame.event}: channel closed")
            return
        reply = Frame(op=FrameOp.REPLY, seq=frame.seq, error=error, result=result)
        # error and result are always present on replies, even when null
        data = reply.model_dump_json(include={"op", "seq", "error", "result"})
        self._write(data.encode("utf-8") + b"\n")
