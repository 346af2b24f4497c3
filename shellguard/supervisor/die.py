import os
import signal
import logging
import traceback
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from shellguard.log import DIAGNOSTIC_LOGGER
from shellguard.supervisor.shutdown import kill, kill_tree
from shellguard.supervisor.signals import SignalLike, sigexitcode, signame, signum

if TYPE_CHECKING:
    from .supervisor import Supervisor

log = logging.getLogger(__name__)
diag = logging.getLogger(DIAGNOSTIC_LOGGER)

DIE_MSG_KILLED = "[Killed]"
DIE_MSG_CAUGHT = "[ExceptionCaught pid={pid} cmd={cmd}]"
DIE_MSG_UNHERR = "[UnhandledError pid={pid} cmd={cmd}]"
DIE_MSG_SIGNAL = "[Caught {signal} pid={pid} cmd={cmd}]"


@dataclass
class DieState:
    """Per process state of the fatal error dispatcher."""
    in_progress: int = 0
    signal: Optional[int] = None
    frames: int = 3


def truncate(text: str, length: int = 60) -> str:
    """Shortens text to at most length characters, marking the cut with '...'."""
    text = " ".join(str(text).split())
    if len(text) <= length:
        return text
    return text[:max(length - 3, 0)] + "..."


def format_message(template: str, manager: "Supervisor", **extra: Any) -> str:
    return template.format(pid=os.getpid(), cmd=truncate(manager.current_command), **extra)


def _print_diagnostics(message: str, frames: int, exc: Optional[BaseException]) -> None:
    """Writes the message and a stack trace to the diagnostic stream (stderr)."""
    lines = ["", message]
    if exc is not None and exc.__traceback__ is not None:
        lines.extend(traceback.format_exception(type(exc), exc, exc.__traceback__))
    else:
        stack = traceback.format_stack()
        if frames > 0:
            stack = stack[:-frames]
        lines.append("Traceback (most recent call last):\n")
        lines.extend(stack)
    diag.error("\n".join(line.rstrip("\n") for line in lines))


def die(
    manager: "Supervisor",
    *message: Any,
    return_code: int = 1,
    signal: Optional[SignalLike] = None,
    frames: Optional[int] = None,
    exc: Optional[BaseException] = None,
) -> None:
    """
    Central fatal error handler, called on any unhandled error or fatal signal.

    Prints the message and a stack trace to stderr (unless inside a try block,
    where the catch block is expected to report), then:
    - in a forked context: SIGTERMs the parent (unless disabled for this
      context), kills all descendants and exits, re-raising TTY signals against
      itself so waiters see the signal death;
    - in the top level process: calls the die handler if one is set, else
      kills the remaining process tree and exits.

    Only returns when a die handler is set and returns itself.

    :param message: Parts of the message, joined by spaces.
    :param return_code: The code the process will eventually exit with.
    :param signal: The signal that caused this die to occur, if any.
    :param frames: Number of innermost stack frames to leave out of the trace.
    :param exc: The exception that caused this die, its traceback is printed.
    """
    pid = os.getpid()
    state = manager.die_state
    text = " ".join(str(part) for part in message) or DIE_MSG_KILLED

    if state.in_progress:
        manager.exit(state.in_progress)

    # Nothing may interrupt us while we report and clean up.
    manager.traps.disable(manager.die_signals)

    state.in_progress = return_code or 1
    if signal is not None and state.signal is None:
        state.signal = signum(signal)
    state.frames = manager.config.DIE_STACK_FRAMES if frames is None else frames

    try:
        if not manager.inside_try:
            _print_diagnostics(text, state.frames, exc)
    finally:
        manager.traps.enable()

    kill_after = manager.config.KILL_ESCALATION_DELAY

    if manager.is_forked():
        # Signal the parent so failures inside forked contexts fail the whole
        # pipeline instead of being silently ignored. Contexts like the body of
        # a try block opt out of this.
        if manager.die_parent_disabled_pid != pid:
            parent = os.getppid()
            log.debug(f"Sending SIGTERM to parent {parent} of {pid}")
            kill([parent], "TERM")

        log.debug(f"Killing children of {pid}")
        kill_tree([pid], "TERM", exclude=[pid], kill_after=kill_after)

        if state.signal is not None:
            if state.signal in manager.tty_signals:
                # Dying from a TTY signal: die from that same signal so
                # whoever waits on us sees it.
                log.debug(f"Re-raising {signame(state.signal, include_sig=True)} against {pid}")
                manager.traps.clear(state.signal)
                _reraise(state.signal)
            manager.exit(sigexitcode(state.signal))
        manager.exit(state.in_progress)

    if manager.die_handler is not None:
        manager.die_handler(state.in_progress, text)
        state.in_progress = 0
        return

    kill_tree([pid], "TERM", exclude=[pid], kill_after=kill_after)
    manager.exit(state.in_progress)


def _reraise(number: int) -> None:
    """Restores the default disposition of a signal and sends it to ourselves."""
    try:
        signal.signal(number, signal.SIG_DFL)
        os.kill(os.getpid(), number)
    except (OSError, ValueError) as e:
        log.debug(f"Could not re-raise signal {number}: {e}")
