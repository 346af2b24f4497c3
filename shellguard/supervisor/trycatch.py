"""
try/catch on top of forked contexts.

The body of a try block runs in its own forked process. Whatever goes wrong in
there, an exception, a die() or a fatal signal, ends that process and only its
exit status crosses back to the caller, which hands it to the catch block.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Tuple

from shellguard.supervisor.errors import UsageError
from shellguard.supervisor.process_utils import fork_context, wait_for_exit
from shellguard.supervisor.traps import ERR, Action

if TYPE_CHECKING:
    from .supervisor import Supervisor

log = logging.getLogger(__name__)


@dataclass
class TryFrame:
    """One entered try block: the ERR chain that was active before entry."""
    saved_err: List[Action] = field(default_factory=list)
    depth: int = 1


def _enter_try(manager: "Supervisor", body: Callable[..., Any], args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
    manager.inside_try = True
    manager.disable_die_parent()
    manager.die_on_abort()
    manager.traps.set(ERR, [manager.die_caught])
    return body(*args, **kwargs)


def try_catch(manager: "Supervisor", body: Callable[..., Any], catch: Callable[[int], Any], *args: Any, **kwargs: Any) -> int:
    """
    Runs body(*args, **kwargs) in a forked context and calls catch(rc) if it
    did not succeed.

    :param body: The try block.
    :param catch: The catch block, called with the exit status of the try block.
    :return: The exit status of the try block.
    :raises UsageError: if body or catch is not callable.
    """
    if not callable(catch):
        raise UsageError("A try block must be followed by a callable catch block.")
    if not callable(body):
        raise UsageError("The try block must be callable.")

    frame = TryFrame(saved_err=manager.traps.get(ERR), depth=len(manager.try_stack) + 1)
    manager.try_stack.append(frame)
    # The failure of the block belongs to the catch, not to our own error hook.
    manager.traps.clear(ERR)

    try:
        pid = fork_context(manager, _enter_try, manager, body, args, kwargs, role="try")
        rc = wait_for_exit(pid)
    finally:
        frame = manager.try_stack.pop()
        manager.traps.set(ERR, frame.saved_err)

    log.debug(f"Try block (depth {frame.depth}) in PID {pid} finished with exit code {rc}")
    if rc != 0:
        catch(rc)
    return rc


def throw(manager: "Supervisor", code: int = 1) -> None:
    """Leaves the current context (usually a try block) with the given exit code."""
    manager.exit(code)
