"""
Tunnel wire models.

Every frame is one JSON object per line. The "op" field selects the frame
type; pydantic validates the rest.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field

HANDSHAKE_TYPE = "dock"


class TunnelState(str, Enum):
    """Lifecycle of the tunnel owned by a supervisor or acceptor."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    READY = "ready"


class FrameOp(str, Enum):
    """Frame types carried on the tunnel."""

    HANDSHAKE = "handshake"
    CALL = "call"
    REPLY = "reply"
    PING = "ping"
    PONG = "pong"


class Handshake(BaseModel):
    """Identity exchanged once per connection, before any command."""

    id: str = Field(..., min_length=1, description="Hostname derived identity")
    type: str = Field(default=HANDSHAKE_TYPE, description="Peer kind")
    tags: List[str] = Field(default_factory=list, description="Capability tags")


class Frame(BaseModel):
    """A single message on the tunnel."""

    op: FrameOp
    seq: Optional[int] = None
    event: Optional[str] = None
    args: Optional[List[Any]] = None
    error: Optional[str] = None
    result: Any = None
    payload: Optional[Handshake] = None
