"""Configuration provider: command line first, environment as defaults."""
import argparse
import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

DEFAULT_HOST = "localhost"
DEFAULT_REMOTE_PORT = 10002
DEFAULT_CONTROL_PORT = 10002
DEFAULT_RELAY_PORT = 7001
PLATFORM_TAG = "windows"
IDENTITY_PREFIX = "win-"
DEFAULT_SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "scripts"


@dataclass(frozen=True)
class RemoteEndpoint:
    """Controller address; immutable once parsed."""
    host: str
    port: int
    key: Optional[str] = None

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"

    @property
    def url(self) -> str:
        return f"http://{self.netloc}"

    def __str__(self) -> str:
        return self.netloc


@dataclass
class AgentConfig:
    """Agent configuration."""
    remote: RemoteEndpoint
    identity: str
    tags: List[str]
    debug: bool
    control_port: int
    relay_port: int
    executor: Optional[str]
    scripts_dir: Path
    bind_host: str = "0.0.0.0"


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_agent_config(self) -> AgentConfig:
        """Get agent configuration."""
        ...


def parse_remote(value: str) -> RemoteEndpoint:
    """
    Parse a remote address of the form [key@]host[:port].

    IPv6 hosts are written in brackets, e.g. [::1]:10002.

    Raises:
        ValueError: If the port is not a number
    """
    key = None
    value = value.strip()
    if "@" in value:
        key, value = value.rsplit("@", 1)
        key = key or None

    if value.startswith("["):
        host, sep, rest = value[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            raise ValueError(f"invalid remote address: {value!r}")
        port = rest[1:]
    else:
        host, sep, port = value.rpartition(":")
        if not sep:
            host, port = value, ""
    if not port:
        port_number = DEFAULT_REMOTE_PORT
    else:
        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"invalid port in remote address: {port!r}")

    return RemoteEndpoint(host=host or DEFAULT_HOST, port=port_number, key=key)


def local_identity(hostname: Optional[str] = None) -> str:
    return IDENTITY_PREFIX + (hostname or socket.gethostname())


def split_tags(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def build_tags(extra: Sequence[str]) -> List[str]:
    """Platform tag first, then configured extras without duplicates."""
    tags = [PLATFORM_TAG]
    for tag in extra:
        if tag not in tags:
            tags.append(tag)
    return tags


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dockhand",
        description="Node agent: keeps a tunnel to the controller and runs service commands",
    )
    parser.add_argument(
        "remote",
        nargs="?",
        default=os.getenv("DOCKHAND_REMOTE", f"{DEFAULT_HOST}:{DEFAULT_REMOTE_PORT}"),
        help="Controller address as [key@]host[:port] (default: localhost:10002)",
    )
    parser.add_argument(
        "--tag", "-t",
        action="append",
        dest="tags",
        default=None,
        help="Extra capability tag sent in the handshake (repeatable)",
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        default=os.getenv("DOCKHAND_DEBUG", "false").lower() == "true",
        help="Log executor arguments and raw output",
    )
    parser.add_argument(
        "--control-port",
        type=int,
        default=int(os.getenv("DOCKHAND_CONTROL_PORT", str(DEFAULT_CONTROL_PORT))),
        help="Local control endpoint port (default: 10002)",
    )
    parser.add_argument(
        "--relay-port",
        type=int,
        default=int(os.getenv("DOCKHAND_RELAY_PORT", str(DEFAULT_RELAY_PORT))),
        help="Artifact relay port (default: 7001)",
    )
    parser.add_argument(
        "--executor",
        default=os.getenv("DOCKHAND_EXECUTOR"),
        help="Path to the script executor (default: locate PowerShell)",
    )
    parser.add_argument(
        "--scripts-dir",
        default=os.getenv("DOCKHAND_SCRIPTS_DIR", str(DEFAULT_SCRIPTS_DIR)),
        help="Directory holding the service action scripts",
    )
    return parser


class CLIConfigProvider:
    """Command line based configuration provider with environment defaults."""

    def __init__(self, argv: Optional[Sequence[str]] = None):
        self.argv = argv

    def get_agent_config(self) -> AgentConfig:
        """
        Parse the command line.

        argparse exits with status 0 after printing usage for --help, and
        with status 2 for unknown arguments.
        """
        parser = build_parser()
        args = parser.parse_args(self.argv)

        try:
            remote = parse_remote(args.remote)
        except ValueError as e:
            parser.error(str(e))

        extra = args.tags if args.tags is not None else split_tags(os.getenv("DOCKHAND_TAGS"))

        return AgentConfig(
            remote=remote,
            identity=local_identity(),
            tags=build_tags(extra),
            debug=args.debug,
            control_port=args.control_port,
            relay_port=args.relay_port,
            executor=args.executor,
            scripts_dir=Path(args.scripts_dir),
        )
