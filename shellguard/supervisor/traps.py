"""
Handler chain registry.

Each signal (real or pseudo) owns an ordered chain of actions. An action is a
zero-argument callable or a shell command string. Chains belong to the forked
context generation that created them: a newly forked process starts with a
fresh generation that only inherits the ERR and DEBUG chains.
"""

import os
import signal
import logging
import subprocess
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Union

from shellguard.supervisor.signals import SignalLike, describe

if TYPE_CHECKING:
    from .supervisor import Supervisor

log = logging.getLogger(__name__)

Action = Union[Callable[[], Any], str]

EXIT = "EXIT"
ERR = "ERR"
DEBUG = "DEBUG"
INHERITED_CHAINS = (ERR, DEBUG)


def run_action(action: Action) -> None:
    """Runs a single handler action."""
    if callable(action):
        action()
    else:
        subprocess.run(action, shell=True, check=False)


class HandlerRegistry:
    """Per-signal chains of cleanup actions for one supervisor."""

    def __init__(self, manager: "Supervisor") -> None:
        self._manager = manager
        self._generation_pid = os.getpid()
        self._chains: Dict[str, List[Action]] = {}
        self._spent: List[Action] = []
        self._os_handlers: Dict[int, Any] = {}
        self._exit_code: Optional[int] = None
        self._saved_handlers: Dict[int, Any] = {}

    #* --- Generations ---
    def _current(self) -> Dict[str, List[Action]]:
        """Returns the chains of this process, starting a new generation after a fork."""
        if os.getpid() != self._generation_pid:
            self.start_generation()
        return self._chains

    def start_generation(self) -> None:
        """
        Starts the chains of a freshly forked context: only ERR and DEBUG are
        carried over, and signals hooked by the parent go back to their default
        disposition.
        """
        if os.getpid() == self._generation_pid:
            return
        hooked = list(self._os_handlers)
        self._chains = {name: list(chain) for name, chain in self._chains.items() if name in INHERITED_CHAINS}
        self._spent = []
        self._exit_code = None
        self._saved_handlers = {}
        self._os_handlers = {}
        self._generation_pid = os.getpid()
        for number in hooked:
            self._set_os_handler(number, signal.SIG_DFL)

    @property
    def generation(self) -> int:
        self._current()
        return self._generation_pid

    #* --- Registration ---
    def add(self, action: Action, *signals: SignalLike) -> None:
        """
        Composes an action in front of the existing chain of each signal.

        Without signals the action is registered for every die signal plus EXIT.
        Registering an action which is already part of a chain does nothing.
        """
        if not signals:
            signals = (*self._manager.die_signals, EXIT)

        chains = self._current()
        for sig in signals:
            descriptor = describe(sig)
            chain = chains.setdefault(descriptor.name, [])
            if action in chain:
                continue
            chain.insert(0, action)
            if not descriptor.is_pseudo:
                self._install_os_handler(descriptor.number)

    def get(self, sig: SignalLike) -> List[Action]:
        """Returns a copy of the chain registered for a signal in this generation."""
        return list(self._current().get(describe(sig).name, []))

    def set(self, sig: SignalLike, actions: Iterable[Action]) -> None:
        """Replaces the chain of a signal."""
        descriptor = describe(sig)
        actions = list(actions)
        chains = self._current()
        if actions:
            chains[descriptor.name] = actions
            if not descriptor.is_pseudo:
                self._install_os_handler(descriptor.number)
        else:
            self.clear(sig)

    def clear(self, *signals: SignalLike) -> None:
        """Removes the chains of the given signals and restores their OS default handlers."""
        chains = self._current()
        for sig in signals:
            descriptor = describe(sig)
            chains.pop(descriptor.name, None)
            if not descriptor.is_pseudo and descriptor.number in self._os_handlers:
                del self._os_handlers[descriptor.number]
                self._set_os_handler(descriptor.number, signal.SIG_DFL)

    def registered(self) -> List[str]:
        return sorted(self._current())

    #* --- OS Level Handlers ---
    def _set_os_handler(self, number: int, handler: Any) -> Any:
        if threading.current_thread() is not threading.main_thread():
            log.debug(f"Cannot change handler of signal {number} outside the main thread.")
            return None
        try:
            # Handlers installed outside Python come back as None.
            return signal.signal(number, handler) or signal.SIG_DFL
        except (OSError, ValueError) as e:
            log.debug(f"Cannot install handler for signal {number}: {e}")
            return None

    def _install_os_handler(self, number: int) -> None:
        if number in self._os_handlers:
            return
        self._os_handlers[number] = self._set_os_handler(number, self._dispatch)

    def _dispatch(self, signum: int, frame: Any) -> None:
        """OS signal handler: runs the chain of the delivered signal."""
        if not self._current().get(describe(signum).name):
            # Nothing registered in this generation, behave like the default disposition.
            self._set_os_handler(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)
            return
        self.fire(signum, spend=True)

    def disable(self, signals: Iterable[int]) -> None:
        """Ignores the given signals until enable() is called."""
        for number in signals:
            previous = self._set_os_handler(number, signal.SIG_IGN)
            if previous is not None and number not in self._saved_handlers:
                self._saved_handlers[number] = previous

    def enable(self) -> None:
        """Restores the handlers saved by disable()."""
        saved, self._saved_handlers = self._saved_handlers, {}
        for number, handler in saved.items():
            self._set_os_handler(number, handler)

    #* --- Firing ---
    def fire(self, sig: SignalLike, spend: bool = False) -> None:
        """
        Runs the chain of a signal in order.

        :param spend: Record the actions as run, so the EXIT chain of this
                      generation does not run them a second time.
        """
        descriptor = describe(sig)
        if descriptor.name == EXIT:
            self.fire_exit()
            return

        for action in self.get(descriptor.name):
            if spend:
                self._spent.append(action)
            run_action(action)

    def fire_exit(self, code: Optional[int] = None) -> None:
        """
        Runs the EXIT chain wrapped by its start and end bookkeeping steps.

        :param code: The exit code of the process, if known.
        """
        self._on_exit_start(code)
        try:
            for action in self.get(EXIT):
                if action in self._spent:
                    continue
                self._spent.append(action)
                run_action(action)
        finally:
            self._on_exit_end()

    def _on_exit_start(self, code: Optional[int]) -> None:
        # The exit code is frozen the first time the EXIT chain runs; it can be
        # re-entered while the process goes down.
        self._current()
        if self._exit_code is None:
            if code is None:
                code = self._manager.exit_code if self._manager.exit_code is not None else 0
            self._exit_code = code
            self.disable(self._manager.die_signals)

    def _on_exit_end(self) -> None:
        self.enable()
        # Exiting non-zero without going through Supervisor.exit() means the
        # interpreter went down on its own, e.g. an uncaught exception outside
        # main(). Make the failure visible.
        if not self._manager.internal_exit and self._exit_code not in (None, 0):
            self._manager.die(self._manager.unhandled_message(), return_code=self._exit_code)

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code
