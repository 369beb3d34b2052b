"""
Shared pytest fixtures for dockhand tests.

This module provides common fixtures including:
- ProcessMocker: Mock executor subprocess spawns with canned output
- Fake executor results for dispatcher tests
- An in-memory session that records subscriptions
"""

import asyncio
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dockhand.modules.executor import ScriptExecutor, Success


# =============================================================================
# Executor Subprocess Mocking Infrastructure
# =============================================================================

@dataclass
class ProcessResponse:
    """Represents a mocked executor process run."""
    stdout: List[bytes] = field(default_factory=list)
    stderr: List[bytes] = field(default_factory=list)
    returncode: int = 0
    spawn_error: Optional[Exception] = None


class FakeProcess:
    """asyncio.subprocess.Process lookalike fed from a ProcessResponse."""

    def __init__(self, response: ProcessResponse):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        for chunk in response.stdout:
            self.stdout.feed_data(chunk)
        self.stdout.feed_eof()
        for chunk in response.stderr:
            self.stderr.feed_data(chunk)
        self.stderr.feed_eof()
        self.returncode = response.returncode

    async def wait(self) -> int:
        return self.returncode


@dataclass
class ProcessCall:
    """Record of an executor spawn made during testing."""
    args: List[str]
    response: ProcessResponse


class ProcessMocker:
    """
    Mock asyncio.create_subprocess_exec with script-matched responses.

    Usage:
        async def test_list(process_mocker, executor):
            process_mocker.register("list", ProcessResponse(stdout=[b'[]']))
            result = await executor.run("list", {})
            assert process_mocker.was_called_with("list.ps1")
    """

    def __init__(self):
        self._responses: Dict[str, ProcessResponse] = {}
        self._call_history: List[ProcessCall] = []
        self._default_response = ProcessResponse(returncode=1)

    def register(self, script: str, response: ProcessResponse) -> "ProcessMocker":
        """Register the response for a script name (without suffix)."""
        self._responses[script] = response
        return self

    def set_default_response(self, response: ProcessResponse) -> "ProcessMocker":
        self._default_response = response
        return self

    async def mock_exec(self, *args, **kwargs) -> FakeProcess:
        """Side effect for patching asyncio.create_subprocess_exec."""
        response = self._default_response
        for script, resp in self._responses.items():
            if any(str(arg).endswith(f"{script}.ps1") for arg in args):
                response = resp
                break

        self._call_history.append(ProcessCall(args=[str(a) for a in args], response=response))
        if response.spawn_error is not None:
            raise response.spawn_error
        return FakeProcess(response)

    @property
    def calls(self) -> List[ProcessCall]:
        return self._call_history

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    def was_called_with(self, pattern: str) -> bool:
        return any(pattern in " ".join(call.args) for call in self._call_history)


@pytest.fixture
def process_mocker():
    """
    Fixture that provides a ProcessMocker with create_subprocess_exec patched.
    """
    mocker = ProcessMocker()
    with patch("asyncio.create_subprocess_exec", side_effect=mocker.mock_exec):
        yield mocker


@pytest.fixture
def executor(tmp_path):
    """ScriptExecutor pointing at a fake PowerShell and a temp scripts dir."""
    return ScriptExecutor("powershell.exe", tmp_path)


# =============================================================================
# Dispatcher / Session Doubles
# =============================================================================

class RecordingSession:
    """Session double that records subscriptions and handshakes."""

    def __init__(self, name: str = "recording"):
        self.name = name
        self.handlers: Dict[str, Any] = {}
        self.handshakes = []
        self.closed = False

    def subscribe(self, event, handler) -> None:
        self.handlers[event] = handler

    def send_handshake(self, payload) -> None:
        self.handshakes.append(payload)

    def close(self) -> None:
        self.closed = True

    async def call(self, event: str, *args):
        return await self.handlers[event](*args)


@pytest.fixture
def recording_session():
    return RecordingSession()


@pytest.fixture
def fake_executor():
    """Executor double whose run() returns Success(None) unless told otherwise."""
    fake = AsyncMock(spec=ScriptExecutor)
    fake.run = AsyncMock(return_value=Success(None))
    return fake


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "process_mock: Tests using mocked executor subprocess spawns"
    )
    config.addinivalue_line(
        "markers", "integration: Tests that open local sockets"
    )
