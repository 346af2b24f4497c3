import math
import signal
import time
import logging
import functools
from typing import TYPE_CHECKING, Any, List, Optional

from shellguard.supervisor.durations import Duration, parse_duration
from shellguard.supervisor.shutdown import kill_tree
from shellguard.supervisor.signals import SignalLike, signame
from shellguard.supervisor.process_utils import (
    Command,
    fork_context,
    is_alive,
    is_empty_command,
    process_tree,
    reset_signal_handlers,
    run_command,
    wait_for_exit,
)

if TYPE_CHECKING:
    from .supervisor import Supervisor

log = logging.getLogger(__name__)


def _sleep(seconds: float) -> None:
    if math.isinf(seconds):
        while True:
            time.sleep(3600)
    time.sleep(seconds)


def _watch(
    command_pid: int,
    seconds: float,
    sig: SignalLike,
    kill_after: Duration,
    exit_code: int,
    shielded: List[int],
) -> int:
    """
    Body of the watcher context: waits for the deadline, then kills whatever is
    left of the command's process tree.
    """
    _sleep(seconds)

    # The caller terminates the watcher as soon as the command is gone, which
    # is right after we kill it. The timeout code has to reach it anyway.
    reset_signal_handlers({signal.SIGTERM, *shielded}, signal.SIG_IGN)

    remaining = [pid for pid in process_tree(command_pid) if is_alive(pid)]
    if not remaining:
        return 0

    log.debug(f"Timeout of {seconds}s expired, killing {remaining} with {signame(sig, include_sig=True)}")
    kill_tree([command_pid], sig, kill_after=kill_after)
    return exit_code


def run_with_timeout(
    manager: "Supervisor",
    command: Command,
    timeout: Duration,
    *args: Any,
    sig: SignalLike = "TERM",
    kill_after: Optional[Duration] = None,
    **kwargs: Any,
) -> int:
    """
    Runs a command and kills its whole process tree if it is still running
    after the given duration.

    The command runs in a forked context next to a watcher context, which
    sleeps until the deadline. The watcher is independent of the command, so a
    command which ignores signals or spawns its own children is still cleaned up.

    :param command: A callable, a shell command string or an argv list.
    :param timeout: Seconds or a sleep(1) style duration ("500ms", "2m", "infinity").
    :param sig: The signal sent on timeout (default SIGTERM).
    :param kill_after: Escalate to SIGKILL after this long (default: KILL_ESCALATION_DELAY).
    :return: The command's exit code, or TIMEOUT_EXIT_CODE (124) if it timed out.
    """
    if is_empty_command(command):
        return 0

    seconds = parse_duration(timeout)
    if seconds is None:
        seconds = math.inf
    if kill_after is None:
        kill_after = manager.config.KILL_ESCALATION_DELAY
    timeout_code = manager.config.TIMEOUT_EXIT_CODE

    manager.debug_hook(command, args)
    command_pid = fork_context(
        manager,
        functools.partial(run_command, command, *args, **kwargs),
        role="timeout command",
    )
    watcher_pid = fork_context(
        manager,
        functools.partial(_watch, command_pid, seconds, sig, kill_after, timeout_code, manager.die_signals),
        role="timeout watcher",
        quiet=True,
        default_signals=True,
    )

    try:
        rc = wait_for_exit(command_pid)
    finally:
        # The watcher is no longer needed once the command is gone.
        kill_tree([watcher_pid], "TERM")
        watcher_rc = wait_for_exit(watcher_pid)

    if watcher_rc == timeout_code:
        log.warning(f"Command '{manager.current_command}' timed out after {timeout} (exit code {rc})")
        return timeout_code
    return rc
