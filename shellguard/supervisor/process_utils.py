import os
import sys
import signal
import psutil
import logging
import subprocess
import setproctitle
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from shellguard.config import effective_settings as config
from shellguard.supervisor.errors import CommandFailed
from shellguard.supervisor.signals import SIGNAL_EXIT_BASE

if TYPE_CHECKING:
    from .supervisor import Supervisor

log = logging.getLogger(__name__)

Command = Union[Callable[..., Any], Sequence[str], str, None]


#* --- Process Table Inspection ---
def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def process_table() -> Dict[int, int]:
    """
    Takes one snapshot of the process table.

    :return: A mapping of pid to parent pid for every visible process.
    """
    table: Dict[int, int] = {}
    for proc in psutil.process_iter(["pid", "ppid"]):
        table[proc.info["pid"]] = proc.info["ppid"]
    return table

def _default_pids(pids: Sequence[int]) -> List[int]:
    return [int(p) for p in pids] if pids else [os.getpid()]

def process_children(*pids: int, table: Optional[Dict[int, int]] = None) -> List[int]:
    """
    Returns the direct children of the given pids (default: the calling process).
    Grandchildren are not included, see process_tree for that.
    """
    parents = set(_default_pids(pids))
    if table is None:
        table = process_table()
    return [pid for pid, ppid in table.items() if ppid in parents and pid != ppid]

def process_tree(*pids: int, table: Optional[Dict[int, int]] = None) -> List[int]:
    """
    Depth first, pre-order listing of each pid followed by all its descendants.
    Pids that no longer exist produce nothing.

    :param pids: Roots of the listing. Defaults to the calling process.
    :param table: Optional pre-taken snapshot from process_table().
    """
    if table is None:
        table = process_table()

    by_parent: Dict[int, List[int]] = {}
    for pid, ppid in table.items():
        if pid != ppid:
            by_parent.setdefault(ppid, []).append(pid)

    tree: List[int] = []
    seen = set()

    def _walk(pid: int) -> None:
        if pid in seen or pid not in table:
            return
        seen.add(pid)
        tree.append(pid)
        for child in sorted(by_parent.get(pid, [])):
            _walk(child)

    for root in _default_pids(pids):
        _walk(root)
    return tree

def process_parent(pid: Optional[int] = None) -> Optional[int]:
    """Returns the parent pid of the given process (default: caller), or None if it is gone."""
    pid = os.getpid() if pid is None else int(pid)
    try:
        return get_process_from_pid(pid).ppid()
    except psutil.NoSuchProcess:
        return None

def process_ancestors(pid: Optional[int] = None) -> List[int]:
    """
    Returns the ancestors of a process, nearest first, up to and including init (pid 1).
    The process itself is not part of the result.
    """
    pid = os.getpid() if pid is None else int(pid)
    table = process_table()

    ancestors: List[int] = []
    current = pid
    while current in table and current != 1:
        parent = table[current]
        if parent <= 0 or parent in ancestors:
            break
        ancestors.append(parent)
        current = parent
    return ancestors

def is_alive(pid: int) -> bool:
    """True if the pid exists and is not a zombie."""
    try:
        return get_process_from_pid(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True

def process_running(*pids: int) -> bool:
    """True if every given process is running. Zombies are counted as not running."""
    return all(is_alive(int(pid)) for pid in pids)

def process_not_running(*pids: int) -> bool:
    """True if none of the given processes is running."""
    return not any(is_alive(int(pid)) for pid in pids)


#* --- Exit Status Helpers ---
def exit_code_from_status(status: int) -> int:
    """Converts a raw waitpid() status into a shell style exit code (128+n for signal deaths)."""
    code = os.waitstatus_to_exitcode(status)
    return SIGNAL_EXIT_BASE - code if code < 0 else code

def exit_code_from_result(result: Any) -> int:
    """Maps the return value of a supervised callable onto an exit code."""
    if result is None or result is True:
        return 0
    if result is False:
        return 1
    if isinstance(result, int):
        return result & 0xFF
    return 0

def exit_code_for_exception(exc: BaseException) -> int:
    """Maps an exception onto the exit code a shell would have reported for it."""
    if isinstance(exc, SystemExit):
        if exc.code is None:
            return 0
        return exc.code & 0xFF if isinstance(exc.code, int) else 1
    if isinstance(exc, (CommandFailed, subprocess.CalledProcessError)):
        code = exc.returncode
        if code < 0:
            return SIGNAL_EXIT_BASE - code
        return code & 0xFF or 1
    if isinstance(exc, KeyboardInterrupt):
        return SIGNAL_EXIT_BASE + signal.SIGINT
    return 1


#* --- Process Creation ---
def describe_command(command: Command, args: Iterable[Any] = ()) -> str:
    """Returns a short printable form of a command for messages."""
    if command is None:
        return ""
    if callable(command):
        name = getattr(command, "__qualname__", None) or getattr(command, "__name__", None) or repr(command)
        return f"{name}({', '.join(repr(a) for a in args)})"
    if isinstance(command, str):
        return command
    return " ".join(str(part) for part in list(command) + list(args))

def is_empty_command(command: Command) -> bool:
    if command is None:
        return True
    if isinstance(command, str):
        return not command.strip()
    if callable(command):
        return False
    return len(command) == 0

def run_command(command: Command, *args: Any, **kwargs: Any) -> int:
    """
    Runs a command in the current process and returns its exit code.

    - callables are called with args/kwargs, their return value is mapped
      through exit_code_from_result();
    - strings are run through the shell;
    - sequences are run as an argv list, extra args appended.

    The command inherits the current stdin/stdout/stderr file descriptors.
    """
    if is_empty_command(command):
        return 0
    if callable(command):
        return exit_code_from_result(command(*args, **kwargs))

    if isinstance(command, str):
        completed = subprocess.run(command, shell=True, check=False)
    else:
        argv = [str(part) for part in list(command) + list(args)]
        completed = subprocess.run(argv, check=False)
    code = completed.returncode
    return SIGNAL_EXIT_BASE - code if code < 0 else code

def redirect_stream(fd: int, path: Optional[str]) -> None:
    """
    Points a standard file descriptor (1 or 2) at a file, or at /dev/null when
    path is None, and rebinds the matching sys stream to the new descriptor.
    """
    stream = sys.stdout if fd == 1 else sys.stderr
    try:
        stream.flush()
    except (OSError, ValueError):
        pass

    target = os.open(path or os.devnull, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    os.dup2(target, fd)
    os.close(target)

    new_stream = open(fd, "w", buffering=1, closefd=False)
    if fd == 1:
        sys.stdout = new_stream
    else:
        sys.stderr = new_stream

def reset_signal_handlers(signals: Iterable[int], handler: Any = signal.SIG_DFL) -> None:
    """Sets the disposition of the given signals in the current process, SIG_DFL by default."""
    for signum in signals:
        try:
            signal.signal(signum, handler)
        except (OSError, ValueError):
            continue

def set_process_title(role: str) -> None:
    """Names a forked context so it can be told apart in ps/top output."""
    try:
        setproctitle.setproctitle(f"{config.PROCESS_TITLE_PREFIX}: {role}")
    except Exception as e:
        log.debug(f"Could not set process title '{role}': {e}")

def fork_context(
    manager: "Supervisor",
    target: Callable[..., Any],
    *args: Any,
    role: str = "context",
    disable_die_parent: bool = True,
    quiet: bool = False,
    default_signals: bool = False,
    **kwargs: Any,
) -> int:
    """
    Forks a new execution context that runs target(*args, **kwargs) and exits.

    The child leaves through the supervisor's exit path (its own EXIT chain,
    then os._exit), so nothing registered by the parent with atexit runs twice.

    :param role: Name used for the process title and log messages.
    :param disable_die_parent: If True, a die() in the child will not SIGTERM this process.
    :param quiet: If True, the child's stdout/stderr point at /dev/null.
    :param default_signals: If True, the child restores default handlers for the die signals.
    :return: The pid of the child.
    """
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass

    pid = os.fork()
    if pid != 0:
        log.debug(f"Forked {role} context with PID: {pid}")
        return pid

    # Child process: never returns from here.
    code = 1
    try:
        set_process_title(role)
        if disable_die_parent:
            manager.disable_die_parent()
        if default_signals:
            reset_signal_handlers(manager.die_signals)
        if quiet:
            redirect_stream(1, None)
            redirect_stream(2, None)
        code = manager.run_forked(target, *args, **kwargs)
    finally:
        os._exit(code)

def wait_for_exit(pid: int) -> int:
    """Blocks until the given child exits and returns its shell style exit code."""
    try:
        _, status = os.waitpid(pid, 0)
    except ChildProcessError:
        log.debug(f"PID {pid} was already reaped.")
        return 0
    return exit_code_from_status(status)
