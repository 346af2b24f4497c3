import sys
import math
import time
import logging
import functools
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple, Union

from shellguard.supervisor.capture import Captured, capture
from shellguard.supervisor.durations import Duration, parse_duration
from shellguard.supervisor.process_utils import Command, describe_command, is_empty_command
from shellguard.supervisor.signals import SignalLike
from shellguard.supervisor.timeout import run_with_timeout

if TYPE_CHECKING:
    from .supervisor import Supervisor

log = logging.getLogger(__name__)


def _attempt(
    manager: "Supervisor",
    command: Command,
    args: Tuple[Any, ...],
    kwargs: Dict[str, Any],
    timeout: Duration,
    sig: SignalLike,
) -> Captured:
    """Runs a single attempt with its stdout buffered."""
    if timeout is None:
        return capture(manager, command, *args, stdout=True, **kwargs)
    body = functools.partial(run_with_timeout, manager, command, timeout, *args, sig=sig, **kwargs)
    return capture(manager, body, stdout=True)


def _retry_loop(
    manager: "Supervisor",
    command: Command,
    args: Tuple[Any, ...],
    kwargs: Dict[str, Any],
    retries: float,
    timeout: Duration,
    delay: float,
    terminal_codes: Iterable[int],
    sig: SignalLike,
    warn_every: Optional[float],
) -> int:
    description = describe_command(command, args)
    terminal = {int(code) for code in terminal_codes}
    codes: List[int] = []
    attempts = 0
    last_warning = time.monotonic()

    while True:
        attempts += 1
        result = _attempt(manager, command, args, kwargs, timeout, sig)
        codes.append(result.rc)
        log.debug(f"Attempt {attempts} of '{description}' finished with exit code {result.rc}")

        if result.rc in terminal or attempts > retries:
            break

        now = time.monotonic()
        if warn_every is not None and now - last_warning >= warn_every:
            log.warning(f"Still retrying '{description}' after {attempts} attempts (exit codes {codes})")
            last_warning = now

        if delay:
            time.sleep(delay)

    if result.rc != 0:
        log.warning(f"Command '{description}' failed after {attempts} attempts with exit codes {codes}")
    elif result.stdout:
        sys.stdout.write(result.stdout)
        sys.stdout.flush()
    return result.rc


def retry(
    manager: "Supervisor",
    command: Command,
    *args: Any,
    retries: Union[int, float, None] = None,
    timeout: Duration = None,
    delay: Duration = 0,
    terminal_codes: Iterable[int] = (0,),
    sig: SignalLike = "TERM",
    warn_every: Duration = None,
    overall_timeout: Duration = None,
    **kwargs: Any,
) -> int:
    """
    Runs a command until it succeeds, up to retries + 1 times.

    :param command: A callable, a shell command string or an argv list.
    :param retries: Number of retries after the first attempt. Defaults to
                    DEFAULT_RETRIES, or unbounded when overall_timeout is set.
    :param timeout: Time limit of each single attempt.
    :param delay: Pause between attempts.
    :param terminal_codes: Exit codes which stop the retrying (default: 0 only).
    :param sig: Signal sent to an attempt that timed out.
    :param warn_every: Log a warning at most this often while still retrying.
    :param overall_timeout: Time limit of the whole retry loop.
    :return: The exit code of the last attempt, or 124 if overall_timeout expired.
    """
    if is_empty_command(command):
        return 0

    if retries is None:
        retries = math.inf if overall_timeout is not None else manager.config.DEFAULT_RETRIES

    loop = functools.partial(
        _retry_loop,
        manager,
        command,
        args,
        kwargs,
        retries,
        timeout,
        parse_duration(delay) or 0,
        terminal_codes,
        sig,
        parse_duration(warn_every),
    )

    if overall_timeout is None:
        return loop()
    return run_with_timeout(manager, loop, overall_timeout, sig=sig)
