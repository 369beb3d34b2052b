"""Tests for agent startup wiring."""

import os
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dockhand import main as agent_main
from dockhand.config import AgentConfig, RemoteEndpoint
from dockhand.modules.executor import ConfigurationError


def make_config(tmp_path) -> AgentConfig:
    return AgentConfig(
        remote=RemoteEndpoint("ctl", 9000, key="s3cret"),
        identity="win-build-07",
        tags=["windows"],
        debug=False,
        control_port=0,
        relay_port=0,
        executor=None,
        scripts_dir=Path(tmp_path),
        bind_host="127.0.0.1",
    )


def test_missing_executor_is_fatal(tmp_path):
    provider = MagicMock()
    provider.get_agent_config.return_value = make_config(tmp_path)

    with patch.object(agent_main, "resolve_executor", side_effect=ConfigurationError("powershell not found")):
        with pytest.raises(SystemExit) as excinfo:
            agent_main.main(provider=provider)

    assert excinfo.value.code == 1


def test_agent_wiring(tmp_path):
    agent = agent_main.Agent(make_config(tmp_path), "powershell.exe")

    assert agent.executor.executable == "powershell.exe"
    assert agent.executor.scripts_dir == Path(tmp_path)
    assert agent.relay.upstream_url == "http://ctl:9000"
    assert agent.dispatcher.fetch_helper.endswith("fetch_tar.py")
    assert agent.dispatcher.identity == "win-build-07"
    assert agent.supervisor.key == "s3cret"
    assert agent.supervisor.tags == ["windows"]
    assert agent.control.dispatcher is agent.dispatcher


def test_help_flag_exits_zero():
    with pytest.raises(SystemExit) as excinfo:
        agent_main.main(["--help"])

    assert excinfo.value.code == 0
