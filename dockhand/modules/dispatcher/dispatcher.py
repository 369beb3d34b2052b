"""
Command dispatcher.

Binds the controller's command vocabulary to executor scripts. Every inbound
command turns into at most one executor run and exactly one reply.
"""

import logging
from typing import Any, Dict, List, Optional

from dockhand.modules.executor import ExecutionResult, ScriptExecutor
from dockhand.modules.tunnel import CommandError

logger = logging.getLogger(__name__)

# command -> executor script; "update" has no script and never runs one
SCRIPTS: Dict[str, Optional[str]] = {
    "add": "add",
    "remove": "remove",
    "sync": "sync",
    "update": None,
    "restart": "restart",
    # TODO: switch to a dedicated start script once one ships alongside restart.ps1
    "start": "restart",
    "stop": "stop",
    "list": "list",
    "ps": "ps",
}


def _unwrap(command: str, result: ExecutionResult) -> Any:
    if not result.ok:
        logger.warning(f"Command {command} failed: {result.reason}")
        raise CommandError(result.reason)
    return result.value


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    # ConvertTo-Json collapses single-element arrays into the element
    return [value]


class CommandDispatcher:
    """Routes command events from a tunnel session to the script executor."""

    def __init__(
        self,
        executor: ScriptExecutor,
        identity: str,
        relay_url: str,
        fetch_helper: str,
    ):
        """
        Initialize the dispatcher.

        Args:
            executor: Script executor adapter
            identity: Local identity reported by ps
            relay_url: Base URL of the local artifact relay
            fetch_helper: Path of the artifact fetch helper passed to sync
        """
        self.executor = executor
        self.identity = identity
        self.relay_url = relay_url.rstrip("/")
        self.fetch_helper = fetch_helper

    def attach(self, session) -> None:
        """Subscribe every command handler on the session."""
        session.subscribe("add", self.add)
        session.subscribe("remove", self.remove)
        session.subscribe("sync", self.sync)
        session.subscribe("update", self.update)
        session.subscribe("restart", self.restart)
        session.subscribe("start", self.start)
        session.subscribe("stop", self.stop)
        session.subscribe("list", self.list)
        session.subscribe("ps", self.ps)
        logger.debug(f"Dispatcher attached to {getattr(session, 'name', session)}")

    async def _run(self, command: str, options: Dict[str, Any]) -> ExecutionResult:
        logger.info(f"Running {command} {options.get('serviceName', '')}".rstrip())
        return await self.executor.run(SCRIPTS[command], options)

    async def _service(self, command: str, service_id: str) -> Any:
        result = await self._run(command, {"serviceName": service_id})
        return _unwrap(command, result)

    async def add(self, service_id: str, opts: Any = None) -> Any:
        return await self._service("add", service_id)

    async def remove(self, service_id: str) -> Any:
        return await self._service("remove", service_id)

    async def sync(self, service_id: str, service: Any = None) -> Any:
        result = await self._run(
            "sync",
            {
                "serviceName": service_id,
                "fetchTar": self.fetch_helper,
                "tarball": f"{self.relay_url}/{service_id}",
            },
        )
        return _unwrap("sync", result)

    async def update(self, service_id: str, service: Any = None) -> None:
        return None

    async def restart(self, service_id: str) -> Any:
        return await self._service("restart", service_id)

    async def start(self, service_id: str) -> Any:
        return await self._service("start", service_id)

    async def stop(self, service_id: str) -> Any:
        return await self._service("stop", service_id)

    async def list(self) -> List[Any]:
        result = await self._run("list", {})
        return _as_list(_unwrap("list", result))

    async def ps(self) -> List[Dict[str, Any]]:
        result = await self._run("ps", {})
        return [{"id": self.identity, "list": _as_list(_unwrap("ps", result))}]
