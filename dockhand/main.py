#!/usr/bin/env python3
"""
dockhand - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Locates the script executor (fatal if missing)
3. Starts the control endpoint, the artifact relay and the tunnel supervisor

All behavior lives in the modules.
"""

import asyncio
import logging
import logging.config as log_config
import sys
from pathlib import Path
from typing import List, Optional

from dockhand.config import AgentConfig, CLIConfigProvider, ConfigProvider
from dockhand.logging_config import get_logging_config
from dockhand.modules.acceptor import ControlServer
from dockhand.modules.dispatcher import CommandDispatcher
from dockhand.modules.executor import ConfigurationError, ScriptExecutor, resolve_executor
from dockhand.modules.relay import ArtifactRelay
from dockhand.modules.supervisor import ConnectionSupervisor

logger = logging.getLogger("dockhand.main")

FETCH_HELPER = str(Path(__file__).resolve().parent / "fetch_tar.py")


class Agent:
    """Wires the modules together for one agent process."""

    def __init__(self, config: AgentConfig, executable: str):
        self.config = config
        remote = config.remote

        self.executor = ScriptExecutor(executable, config.scripts_dir)
        self.relay = ArtifactRelay(
            remote.url,
            config.identity,
            key=remote.key,
            host=config.bind_host,
            port=config.relay_port,
        )
        self.dispatcher = CommandDispatcher(
            self.executor,
            identity=config.identity,
            relay_url=self.relay.url,
            fetch_helper=FETCH_HELPER,
        )
        self.control = ControlServer(self.dispatcher, host=config.bind_host, port=config.control_port)
        self.supervisor = ConnectionSupervisor(
            remote.host,
            remote.port,
            identity=config.identity,
            tags=config.tags,
            dispatcher=self.dispatcher,
            key=remote.key,
        )

    async def run(self) -> None:
        """Start both listeners, then supervise the tunnel forever."""
        await self.relay.start()
        # The relay may have picked its port now; sync hands this URL to scripts
        self.dispatcher.relay_url = self.relay.url
        await self.control.start()
        logger.info(
            f"Agent {self.config.identity} started (tags: {', '.join(self.config.tags)}), "
            f"controller {self.config.remote}"
        )
        try:
            await self.supervisor.run_forever()
        finally:
            self.supervisor.stop()
            await self.control.close()
            await self.relay.close()
            await self.executor.drain()


def main(argv: Optional[List[str]] = None, provider: Optional[ConfigProvider] = None) -> None:
    """Main entry point."""
    config = (provider or CLIConfigProvider(argv)).get_agent_config()
    log_config.dictConfig(get_logging_config(config.debug))

    try:
        executable = resolve_executor(config.executor)
    except ConfigurationError as e:
        logger.error(f"Cannot start: {e}")
        sys.exit(1)
    logger.debug(f"Using executor {executable}, scripts in {config.scripts_dir}")

    agent = Agent(config, executable)
    try:
        asyncio.run(agent.run())
    except KeyboardInterrupt:
        logger.info("Agent stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
