"""
The Supervisor package.
Shell style process supervision and structured error handling.

This package contains the central Supervisor class and its helper modules,
which together handle signal translation, handler chains, try/catch blocks,
fatal error dispatch, process tree inspection and killing, and the capture,
timeout and retry combinators.
"""
from .supervisor import Supervisor
from .capture import Captured
from .errors import CommandFailed, SupervisorError, UnsupportedSignalError, UsageError

__all__ = [
    "Supervisor",
    "Captured",
    "CommandFailed",
    "SupervisorError",
    "UnsupportedSignalError",
    "UsageError",
]
