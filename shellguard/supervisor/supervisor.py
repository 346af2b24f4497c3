import os
import sys
import atexit
import logging
import traceback
from typing import Any, Callable, Iterable, List, Optional

from shellguard.config import effective_settings as config
from shellguard.supervisor import capture, die, retry, shutdown, timeout, trycatch
from shellguard.supervisor.durations import Duration
from shellguard.supervisor.process_utils import (
    Command,
    describe_command,
    exit_code_for_exception,
    exit_code_from_result,
)
from shellguard.supervisor.signals import SignalLike, signame, signum
from shellguard.supervisor.errors import UnsupportedSignalError
from shellguard.supervisor.traps import DEBUG, ERR, EXIT, Action, HandlerRegistry

log = logging.getLogger(__name__)


class Supervisor:
    """
    The supervising context of a process: owns the handler chain registry, the
    try/catch frame stack and the fatal dispatch state, and funnels every way
    out of the process through one controlled exit path.

    Forked contexts get a copy of this object through fork(); everything in it
    is process local.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Supervisor, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initializes the Supervisor state."""
        if getattr(self, '_initialized', False):
            return

        self.config = config
        self.top_pid = os.getpid()
        self.traps = HandlerRegistry(self)
        self.try_stack: List[trycatch.TryFrame] = []
        self.die_state = die.DieState(frames=config.DIE_STACK_FRAMES)
        self.die_handler: Optional[Callable[[int, str], Any]] = None
        self.die_parent_disabled_pid: Optional[int] = None
        self.inside_try = False

        self.exit_code: Optional[int] = None
        self.internal_exit = False
        self.last_error: Optional[BaseException] = None
        self.last_status = 0
        self.current_command = ""

        self._exiting = False
        self._atexit_pid: Optional[int] = None
        self._installed_pid: Optional[int] = None
        self._previous_excepthook = None
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Forgets the singleton instance. Only meant for tests."""
        cls._instance = None

    #* --- Context Information ---
    def _resolve_signals(self, names: Iterable[SignalLike]) -> List[int]:
        numbers: List[int] = []
        for name in names:
            try:
                number = signum(name)
            except UnsupportedSignalError:
                log.debug(f"Signal '{name}' is not available on this host, skipping.")
                continue
            if number not in numbers:
                numbers.append(number)
        return numbers

    @property
    def die_signals(self) -> List[int]:
        """The signals which call die() once die_on_abort() is active."""
        return self._resolve_signals(self.config.DIE_SIGNALS)

    @property
    def tty_signals(self) -> List[int]:
        return self._resolve_signals(self.config.TTY_SIGNALS)

    def is_forked(self) -> bool:
        """True when running in a forked context rather than the top level process."""
        return os.getpid() != self.top_pid

    #* --- Entry Point ---
    def install(self) -> None:
        """
        Makes this process fail loudly: unhandled errors and fatal signals call
        die(), and exits which bypass exit() are detected by the EXIT chain.
        """
        pid = os.getpid()
        if self._installed_pid == pid:
            return
        self._installed_pid = pid
        self.top_pid = pid

        self.die_on_error()
        self.die_on_abort()
        self._ensure_atexit()

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        log.debug(f"Supervisor installed in PID: {pid}")

    def main(self, body: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """
        Runs body as the supervised program and exits with its result.

        Return values map onto exit codes (None/True: 0, False: 1, int: itself),
        exceptions go through the ERR chain, i.e. die() once installed.
        """
        self.install()
        self.exit(self._run_body(body, args, kwargs))

    def run_forked(self, target: Callable[..., Any], *args: Any, **kwargs: Any) -> int:
        """Entry point of a forked context. Leaves through exit(), never returns."""
        self.traps.start_generation()
        self.try_stack = []
        self.die_state = die.DieState(frames=self.config.DIE_STACK_FRAMES)
        self.die_handler = None
        self.exit_code = None
        self.internal_exit = False
        self._exiting = False

        code = self._run_body(target, args, kwargs)
        self.exit(code)
        return code

    def _run_body(self, body: Callable[..., Any], args: Any, kwargs: Any) -> int:
        try:
            return exit_code_from_result(body(*args, **kwargs))
        except SystemExit as e:
            return exit_code_for_exception(e)
        except BaseException as exc:
            if not self.traps.get(ERR):
                # No error hook: report it the way the interpreter would.
                traceback.print_exception(type(exc), exc, exc.__traceback__)
                return exit_code_for_exception(exc)
            self.handle_error(exc)
            return self.last_status

    def handle_error(self, exc: BaseException) -> None:
        """Records an exception as the current error and runs the ERR chain."""
        self.last_error = exc
        self.last_status = exit_code_for_exception(exc) or 1
        self.current_command = f"{type(exc).__name__}: {exc}"
        log.debug(f"Handling error in PID {os.getpid()}: {self.current_command}")
        self.traps.fire(ERR)

    def debug_hook(self, command: Command, args: Iterable[Any] = ()) -> None:
        """Records the command about to run and fires the DEBUG chain."""
        self.current_command = describe_command(command, args)
        self.traps.fire(DEBUG)

    #* --- Exit Paths ---
    def exit(self, code: Any = 0) -> None:
        """Controlled exit of the current context with the given code."""
        self.internal_exit = True
        self._terminate(exit_code_from_result(code))

    def _terminate(self, code: int) -> None:
        if self.exit_code is None:
            self.exit_code = code

        if self._exiting or self.is_forked():
            if not self._exiting:
                self._exiting = True
                self.traps.fire_exit(code)
            for stream in (sys.stdout, sys.stderr):
                try:
                    stream.flush()
                except (OSError, ValueError):
                    pass
            os._exit(code)

        raise SystemExit(code)

    def _ensure_atexit(self) -> None:
        if self._atexit_pid == os.getpid():
            return
        self._atexit_pid = os.getpid()
        atexit.register(self._run_exit_chain)

    def _run_exit_chain(self) -> None:
        if os.getpid() != self._atexit_pid or self._exiting:
            return
        self._exiting = True
        self.traps.fire_exit(self.exit_code)

    def _excepthook(self, exc_type, exc, tb) -> None:
        # The interpreter is going down with an uncaught exception; the EXIT
        # chain picks up the non-zero code since exit() was never called.
        self.last_error = exc
        if self.exit_code is None:
            self.exit_code = exit_code_for_exception(exc) or 1
        hook = self._previous_excepthook or sys.__excepthook__
        hook(exc_type, exc, tb)

    #* --- Error Modes ---
    def die_on_error(self) -> None:
        """Unhandled errors call die()."""
        self.traps.set(ERR, [self._die_unhandled])

    def nodie_on_error(self) -> None:
        self.traps.clear(ERR)

    def die_on_abort(self) -> None:
        """Every die signal calls die() for that signal."""
        for number in self.die_signals:
            self.traps.set(number, [self._signal_action(number)])

    def nodie_on_abort(self, *signals: SignalLike) -> None:
        self.traps.clear(*(signals or self.die_signals))

    def disable_die_parent(self) -> None:
        """A die() in this context will not SIGTERM its parent."""
        self.die_parent_disabled_pid = os.getpid()

    def unhandled_message(self) -> str:
        return die.format_message(die.DIE_MSG_UNHERR, self)

    def caught_message(self) -> str:
        return die.format_message(die.DIE_MSG_CAUGHT, self)

    def _die_unhandled(self) -> None:
        self.die(self.unhandled_message(), return_code=self.last_status, exc=self.last_error)

    def die_caught(self) -> None:
        self.die(self.caught_message(), return_code=self.last_status, exc=self.last_error)

    def _signal_action(self, number: int) -> Callable[[], None]:
        def _die_by_signal() -> None:
            message = die.format_message(die.DIE_MSG_SIGNAL, self, signal=signame(number, include_sig=True))
            self.die(message, signal=number)
        return _die_by_signal

    #* --- Operations ---
    def trap_add(self, action: Action, *signals: SignalLike) -> None:
        """Composes action in front of the handler chains of the given signals (default: die signals + EXIT)."""
        if not signals or any(str(sig).upper() == EXIT for sig in signals):
            self._ensure_atexit()
        self.traps.add(action, *signals)

    def die(self, *message: Any, **kwargs: Any) -> None:
        die.die(self, *message, **kwargs)

    def try_catch(self, body: Callable[..., Any], catch: Callable[[int], Any], *args: Any, **kwargs: Any) -> int:
        return trycatch.try_catch(self, body, catch, *args, **kwargs)

    def throw(self, code: int = 1) -> None:
        trycatch.throw(self, code)

    def capture(self, command: Command, *args: Any, **kwargs: Any) -> capture.Captured:
        return capture.capture(self, command, *args, **kwargs)

    def run_with_timeout(self, command: Command, duration: Duration, *args: Any, **kwargs: Any) -> int:
        return timeout.run_with_timeout(self, command, duration, *args, **kwargs)

    def retry(self, command: Command, *args: Any, **kwargs: Any) -> int:
        return retry.retry(self, command, *args, **kwargs)

    def kill(self, pids: Iterable[int], sig: SignalLike = "TERM", kill_after: Duration = None) -> List[int]:
        return shutdown.kill(pids, sig, kill_after=kill_after)

    def kill_tree(
        self,
        roots: Optional[Iterable[int]] = None,
        sig: SignalLike = "TERM",
        exclude: Iterable[int] = (),
        kill_after: Duration = None,
    ) -> List[int]:
        return shutdown.kill_tree(roots, sig, exclude=exclude, kill_after=kill_after)
