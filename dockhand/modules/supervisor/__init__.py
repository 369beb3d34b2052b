"""
Supervisor Module - Black Box Interface

Purpose: Keep one outbound tunnel to the controller alive
Interface: ConnectionSupervisor.run_forever(), stop()
Hidden: Connect/reconnect loop, backoff timing, handshake ordering
"""

from .supervisor import COLD_RETRY_DELAY, WARM_RETRY_DELAY, ConnectionAttempt, ConnectionSupervisor

__all__ = [
    "COLD_RETRY_DELAY",
    "WARM_RETRY_DELAY",
    "ConnectionAttempt",
    "ConnectionSupervisor",
]
