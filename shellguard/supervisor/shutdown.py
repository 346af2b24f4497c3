import os
import signal
import psutil
import logging
from typing import Iterable, List, Optional

from shellguard.supervisor.durations import Duration, parse_duration
from shellguard.supervisor.signals import SignalLike, signame, signum
from shellguard.supervisor.process_utils import (
    get_process_from_pid,
    is_alive,
    process_ancestors,
    process_table,
    process_tree,
    redirect_stream,
    reset_signal_handlers,
    set_process_title,
)

log = logging.getLogger(__name__)


def _resolve_processes(pids: Iterable[int]) -> List[psutil.Process]:
    """Resolves pids into psutil.Process handles, skipping the ones that are already gone."""
    processes = []
    for pid in pids:
        try:
            processes.append(get_process_from_pid(pid))
        except psutil.NoSuchProcess:
            log.debug(f"Process {pid} no longer exists, skipping.")
            continue
    return processes


def _send_signal(processes: Iterable[psutil.Process], sig: int) -> List[int]:
    """Sends a signal to each process. Failures are ignored, the process may have exited meanwhile."""
    signaled = []
    for proc in processes:
        try:
            proc.send_signal(sig)
            signaled.append(proc.pid)
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping {signame(sig, include_sig=True)}.")
            continue
        except psutil.AccessDenied:
            log.debug(f"Not allowed to send {signame(sig, include_sig=True)} to process {proc.pid}.")
            continue
    return signaled


def _escalation_helper(processes: List[psutil.Process], delay: float) -> None:
    """
    Body of the detached escalation helper: waits up to delay for the targets to
    exit and SIGKILLs whatever is left. psutil checks each target's start time
    before signaling, so a pid reused by an unrelated process is left alone.
    """
    set_process_title("kill escalation")
    reset_signal_handlers(range(1, signal.NSIG))
    redirect_stream(1, None)
    redirect_stream(2, None)

    _, alive = psutil.wait_procs(processes, timeout=delay)
    for proc in alive:
        try:
            proc.kill()
        except psutil.Error:
            continue


def schedule_escalation(processes: List[psutil.Process], delay: float) -> None:
    """
    Arranges for SIGKILL to be sent to the given processes after delay seconds.

    The work happens in a double forked helper which is re-parented away from
    the caller, so killing the caller's process tree cannot also kill it and the
    caller never has to wait for it.
    """
    if not processes:
        return

    pid = os.fork()
    if pid != 0:
        # Reap the intermediate child; the grandchild carries on alone.
        os.waitpid(pid, 0)
        log.debug(f"Scheduled SIGKILL in {delay}s for PIDs {[p.pid for p in processes]}")
        return

    try:
        os.setsid()
        if os.fork() == 0:
            _escalation_helper(processes, delay)
    finally:
        os._exit(0)


def kill(pids: Iterable[int], sig: SignalLike = signal.SIGTERM, kill_after: Duration = None) -> List[int]:
    """
    Sends a signal to every listed pid. This is best effort only: errors are
    ignored since processes can exit before we get a chance to signal them.
    Use process_not_running() afterwards if you need certainty.

    :param pids: The processes to signal. Init (pid 1) is never signaled unless we are init.
    :param sig: Signal name or number (default SIGTERM).
    :param kill_after: If set, escalate to SIGKILL after this duration for processes still alive.
    :return: The pids the signal was delivered to.
    """
    number = signum(sig)
    targets = [int(p) for p in pids]
    if os.getpid() != 1:
        targets = [p for p in targets if p != 1]
    if not targets:
        log.debug("Nothing besides init to kill.")
        return []

    processes = _resolve_processes(targets)
    log.debug(f"Killing PIDs {targets} with {signame(number, include_sig=True)} (kill_after={kill_after})")
    signaled = _send_signal(processes, number)

    delay = parse_duration(kill_after)
    if delay is not None and number != signal.SIGKILL:
        schedule_escalation(processes, delay)
    return signaled


def kill_tree(
    roots: Optional[Iterable[int]] = None,
    sig: SignalLike = signal.SIGTERM,
    exclude: Iterable[int] = (),
    kill_after: Duration = None,
) -> List[int]:
    """
    Kills the entire process tree below each root, roots included.

    The calling process and all of its ancestors are always excluded, as
    signaling them would stop this function from completing. Like kill(),
    this is best effort and never raises on a partial failure.

    :param roots: Pids whose trees should be killed (default: the calling process).
    :param sig: Signal name or number (default SIGTERM).
    :param exclude: Additional pids which must not be signaled.
    :param kill_after: If set, escalate to SIGKILL after this duration.
    :return: The pids the signal was sent to.
    """
    me = os.getpid()
    excluded = {me, *process_ancestors(me), *(int(p) for p in exclude)}

    roots = list(roots) if roots else [me]
    processes = [pid for pid in process_tree(*roots, table=process_table()) if pid not in excluded]

    log.debug(f"Killing tree {processes} with {signame(sig, include_sig=True)} (kill_after={kill_after}, excluded={sorted(excluded)})")
    if not processes:
        return []
    return kill(processes, sig, kill_after=kill_after)


def surviving(pids: Iterable[int]) -> List[int]:
    """Returns the pids which are still running, i.e. the processes a kill failed to stop."""
    return [int(pid) for pid in pids if is_alive(int(pid))]
