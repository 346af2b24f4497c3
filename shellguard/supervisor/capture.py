import os
import sys
import logging
import tempfile
import functools
from typing import TYPE_CHECKING, Any, Dict, MutableMapping, NamedTuple, Optional, Tuple

from shellguard.supervisor.process_utils import Command, is_empty_command, redirect_stream, run_command

if TYPE_CHECKING:
    from .supervisor import Supervisor

log = logging.getLogger(__name__)


class Captured(NamedTuple):
    """Result of capture(). Unpack it: rc, out, err = capture(...)."""
    rc: int
    stdout: str
    stderr: str


def _read(path: Optional[str]) -> str:
    if not path or not os.path.exists(path):
        return ""
    with open(path, "r", errors="replace") as f:
        return f.read()


def _run_redirected(
    command: Command,
    args: Tuple[Any, ...],
    kwargs: Dict[str, Any],
    stdout_path: str,
    stderr_path: Optional[str],
) -> int:
    redirect_stream(1, stdout_path)
    if stderr_path:
        redirect_stream(2, stderr_path)
    return run_command(command, *args, **kwargs)


def _ignore_failure(rc: int) -> None:
    log.debug(f"Captured command failed with exit code {rc}")


def capture(
    manager: "Supervisor",
    command: Command,
    *args: Any,
    stdout: bool = False,
    stderr: bool = False,
    into: Optional[MutableMapping[str, Any]] = None,
    rc_var: str = "rc",
    stdout_var: str = "stdout",
    stderr_var: str = "stderr",
    **kwargs: Any,
) -> Captured:
    """
    Runs a command and captures its exit code, and optionally its output,
    without a failure of the command being fatal to the caller.

    The command runs inside a try block, so exceptions and die() calls of a
    callable command are contained. stdout is always buffered; if it was not
    requested it is written to the real stdout once the command is done.
    stderr is only captured when requested, otherwise it streams live.

    :param command: A callable, a shell command string or an argv list.
    :param stdout: Return the captured stdout instead of passing it through.
    :param stderr: Return the captured stderr.
    :param into: Optional mapping which receives the results under rc_var,
                 stdout_var and stderr_var. It is initialised (rc 1, empty
                 output) before the command runs.
    :return: Captured(rc, stdout, stderr); the output fields are empty unless requested.
    """
    if into is not None:
        into[rc_var] = 1
        into[stdout_var] = ""
        into[stderr_var] = ""

    if is_empty_command(command):
        log.debug("Nothing to capture, command is empty.")
        result = Captured(0, "", "")
    else:
        manager.debug_hook(command, args)
        with tempfile.TemporaryDirectory(prefix="shellguard-capture-") as tmp:
            stdout_path = os.path.join(tmp, "stdout")
            stderr_path = os.path.join(tmp, "stderr") if stderr else None

            body = functools.partial(_run_redirected, command, args, kwargs, stdout_path, stderr_path)
            rc = manager.try_catch(body, _ignore_failure)

            out = _read(stdout_path)
            err = _read(stderr_path)

        if not stdout and out:
            sys.stdout.write(out)
            sys.stdout.flush()
        result = Captured(rc, out if stdout else "", err)

    if into is not None:
        into[rc_var] = result.rc
        into[stdout_var] = result.stdout
        into[stderr_var] = result.stderr
    return result
