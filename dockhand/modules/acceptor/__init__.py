"""
Acceptor Module - Black Box Interface

Purpose: Local control endpoint; identification and inbound tunnel upgrades
Interface: ControlServer.start(), close()
Hidden: HTTP parsing, switch response, handshake-gated dispatcher attachment
"""

from .acceptor import IDENTIFICATION, SWITCH_RESPONSE, ControlServer, InboundSession

__all__ = ["ControlServer", "IDENTIFICATION", "InboundSession", "SWITCH_RESPONSE"]
