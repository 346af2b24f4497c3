"""Exception types raised by the supervisor package."""


class SupervisorError(Exception):
    pass


class UsageError(SupervisorError):
    """Malformed use of a supervisor construct, e.g. a try block without a catch."""


class UnsupportedSignalError(SupervisorError, ValueError):
    """A signal name or number that cannot be translated."""


class CommandFailed(SupervisorError):
    """A supervised command finished with a non-zero status."""

    def __init__(self, returncode: int, command=None) -> None:
        self.returncode = returncode
        self.command = command
        super().__init__(f"Command {command!r} failed with exit code {returncode}")
