"""
Local script executor.

Runs one service-action script per command through an external executor
binary (PowerShell) and turns its standard output into exactly one
ExecutionResult.

The first JSON value printed on stdout is the result. Anything printed after
that is drained and echoed on the debug log, but never changes the outcome.
"""

import asyncio
import codecs
import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)
output_logger = logging.getLogger("dockhand.executor.output")

PS_SYS_NATIVE = r"c:\windows\sysnative\windowspowershell\v1.0\powershell.exe"
PS_SYS_32 = r"c:\windows\system32\windowspowershell\v1.0\powershell.exe"
PS_ON_PATH = ("pwsh", "powershell")

POLICY_ARGS = ("-ExecutionPolicy", "RemoteSigned", "-File")
SCRIPT_SUFFIX = ".ps1"

NO_DATA_REASON = "stream closed without data"
MALFORMED_REASON = "malformed executor output"

READ_CHUNK = 64 * 1024
NUMBER_CHARS = "0123456789.eE+-"


class ConfigurationError(Exception):
    """Raised at startup when the executor cannot be located."""

    pass


@dataclass(frozen=True)
class Success:
    """Executor produced a value (possibly None on a clean, silent exit)."""

    value: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Executor failed; reason is reported back to the controller."""

    reason: str

    @property
    def ok(self) -> bool:
        return False


ExecutionResult = Union[Success, Failure]


def resolve_executor(explicit: Optional[str] = None) -> str:
    """
    Locate the executor binary once at startup.

    Args:
        explicit: Configured path, used as-is if it exists

    Returns:
        Absolute path to the executor

    Raises:
        ConfigurationError: If no executor can be found
    """
    if explicit:
        if os.path.exists(explicit):
            return explicit
        found = shutil.which(explicit)
        if found:
            return found
        raise ConfigurationError(f"executor not found: {explicit}")

    for candidate in (PS_SYS_NATIVE, PS_SYS_32):
        if os.path.exists(candidate):
            return candidate

    for name in PS_ON_PATH:
        found = shutil.which(name)
        if found:
            return found

    raise ConfigurationError("powershell not found")


class JSONValueStream:
    """Incremental decoder for whitespace separated JSON values."""

    def __init__(self):
        self._decoder = json.JSONDecoder()
        self._buffer = ""

    def feed(self, text: str) -> List[Any]:
        """Add text and return every value that is now complete."""
        self._buffer += text
        return self._decode(final=False)

    def flush(self) -> List[Any]:
        """Release whatever the buffer holds at end of input."""
        return self._decode(final=True)

    def _decode(self, final: bool) -> List[Any]:
        values = []
        while True:
            stripped = self._buffer.lstrip()
            if not stripped:
                self._buffer = ""
                break
            try:
                value, end = self._decoder.raw_decode(stripped)
            except json.JSONDecodeError:
                # Incomplete value, wait for more text
                self._buffer = stripped
                break
            if not final and _may_continue(value, stripped[end:end + 1]):
                # A number at the end of the buffer may still be growing
                self._buffer = stripped
                break
            values.append(value)
            self._buffer = stripped[end:]
        return values

    @property
    def pending(self) -> bool:
        """True if undecoded, non-whitespace text is buffered."""
        return bool(self._buffer.strip())


def _may_continue(value: Any, following: str) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return following == "" or following in NUMBER_CHARS


class ScriptExecutor:
    """Spawns the executor binary and yields one ExecutionResult per run."""

    def __init__(
        self,
        executable: str,
        scripts_dir: Union[str, Path],
        policy_args: Sequence[str] = POLICY_ARGS,
    ):
        """
        Initialize the executor adapter.

        Args:
            executable: Path to the executor binary, resolved at startup
            scripts_dir: Directory holding the service action scripts
            policy_args: Arguments placed before the script path
        """
        self.executable = executable
        self.scripts_dir = Path(scripts_dir)
        self.policy_args = tuple(policy_args)
        self._watchers = set()

    def script_path(self, script: str) -> Path:
        return self.scripts_dir / f"{script}{SCRIPT_SUFFIX}"

    def build_args(self, script: str, options: Dict[str, Any]) -> List[str]:
        """Build argv: executor, policy flags, script, then -key value pairs."""
        args = [self.executable, *self.policy_args, str(self.script_path(script))]
        args.extend(render_options(options))
        return args

    async def run(self, script: str, options: Optional[Dict[str, Any]] = None) -> ExecutionResult:
        """
        Run a script and wait for its result.

        Args:
            script: Script name without suffix
            options: Named options rendered as -key value

        Returns:
            Success or Failure, exactly once
        """
        args = self.build_args(script, options or {})
        logger.debug(f"Spawning: {' '.join(args)}")

        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()

        def complete(result: ExecutionResult) -> None:
            if not done.done():
                done.set_result(result)

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to spawn {script}: {e}")
            complete(Failure(str(e)))
            return await done

        watcher = asyncio.create_task(self._watch(script, process, complete))
        self._watchers.add(watcher)
        watcher.add_done_callback(self._watchers.discard)

        return await done

    async def _watch(self, script: str, process, complete) -> None:
        """Drain the process output and report close, whichever comes last."""
        stream = JSONValueStream()
        decoded = False
        try:
            decoded, _ = await asyncio.gather(
                self._read_stdout(process.stdout, stream, complete),
                self._echo(process.stderr, f"{script} stderr"),
            )
            code = await process.wait()
        except Exception as e:
            logger.error(f"Executor {script} failed: {e}")
            complete(Failure(str(e)))
            return

        logger.debug(f"Executor {script} exited with {code}")
        if decoded:
            return
        if code:
            complete(Failure(NO_DATA_REASON))
        elif stream.pending:
            complete(Failure(MALFORMED_REASON))
        else:
            complete(Success())

    async def _read_stdout(self, reader, stream: JSONValueStream, complete) -> bool:
        """Decode stdout until the first value; keep draining after it."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        decoded = False
        while True:
            chunk = await reader.read(READ_CHUNK)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                output_logger.debug(text.rstrip())
            if not decoded:
                values = stream.feed(text)
                if not chunk:
                    values.extend(stream.flush())
                if values:
                    decoded = True
                    complete(Success(values[0]))
            if not chunk:
                return decoded

    async def _echo(self, reader, label: str) -> None:
        if reader is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await reader.read(READ_CHUNK)
            text = decoder.decode(chunk, final=not chunk).rstrip()
            if text:
                output_logger.debug(f"[{label}] {text}")
            if not chunk:
                return

    async def drain(self) -> None:
        """Wait for every background watcher (used on shutdown and in tests)."""
        if self._watchers:
            await asyncio.gather(*list(self._watchers), return_exceptions=True)


def render_options(options: Dict[str, Any]) -> Iterable[str]:
    """Render options as the -key value pairs the scripts expect."""
    for key, value in options.items():
        yield f"-{key}"
        yield str(value)
