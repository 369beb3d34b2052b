"""
Executor Module - Black Box Interface

Purpose: Run one service-action script per command on the local host
Interface: ScriptExecutor.run(script, options) -> Success | Failure
Hidden: Executor binary lookup, argv layout, stdout JSON decoding

Can be replaced with a different executor (bash, python) as long as it
prints a JSON value on stdout.
"""

from .script_executor import (
    ConfigurationError,
    ExecutionResult,
    Failure,
    ScriptExecutor,
    Success,
    resolve_executor,
)

__all__ = [
    "ConfigurationError",
    "ExecutionResult",
    "Failure",
    "ScriptExecutor",
    "Success",
    "resolve_executor",
]
