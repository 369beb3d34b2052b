"""
Tunnel Module - Black Box Interface

Purpose: Framed, bidirectional message channel between the agent and a peer
Interface: TunnelSession (subscribe, emit, send_handshake, on_handshake, ping,
           run, close, wait_closed), open_tunnel()
Hidden: Line framing, call/reply correlation, CONNECT upgrade handshake

Can be replaced with any transport offering named events with replies.
"""

from .channel import ChannelClosed, CommandError, MessageChannel, ProtocolError, RemoteError
from .models import HANDSHAKE_TYPE, Frame, FrameOp, Handshake, TunnelState
from .session import DOCK_PATH, PROTOCOL_NAME, ConnectError, TunnelSession, open_tunnel

__all__ = [
    "ChannelClosed",
    "CommandError",
    "ConnectError",
    "DOCK_PATH",
    "Frame",
    "FrameOp",
    "HANDSHAKE_TYPE",
    "Handshake",
    "MessageChannel",
    "PROTOCOL_NAME",
    "ProtocolError",
    "RemoteError",
    "TunnelSession",
    "TunnelState",
    "open_tunnel",
]
