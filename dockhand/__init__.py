"""
dockhand - Node agent for managed worker hosts

Keeps a persistent tunnel to a central controller and runs the service
lifecycle commands it sends through a local script executor.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- executor: Local script execution, one result per command
- dispatcher: Command vocabulary -> executor scripts
- tunnel: Framed message channel and sessions
- supervisor: Outbound tunnel lifecycle and backoff
- acceptor: Local control endpoint and inbound tunnels
- relay: Artifact streaming from the controller
"""

__version__ = "1.0.0"
