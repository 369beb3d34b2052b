"""
Dispatcher Module - Black Box Interface

Purpose: Map controller commands to local executor scripts
Interface: CommandDispatcher.attach(session)
Hidden: Command -> script table, option shaping, list/ps result coercion
"""

from .dispatcher import SCRIPTS, CommandDispatcher

__all__ = ["CommandDispatcher", "SCRIPTS"]
