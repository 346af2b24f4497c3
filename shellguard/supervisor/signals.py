"""
Translation between signal names, signal numbers and shell exit codes.

Besides the real signals of the host, three pseudo-signals are understood by
name: EXIT, ERR and DEBUG. They are hooks of the handler chain registry and
are never delivered by the kernel, so they have no number.
"""

import signal
from dataclasses import dataclass
from typing import Optional, Union

from .errors import UnsupportedSignalError

PSEUDO_SIGNALS = ("EXIT", "ERR", "DEBUG")
SIGNAL_EXIT_BASE = 128

SignalLike = Union[str, int, signal.Signals]


@dataclass(frozen=True)
class SignalDescriptor:
    name: str
    number: Optional[int]
    is_pseudo: bool

    @property
    def exit_code(self) -> Optional[int]:
        """The status a process reports when it is terminated by this signal."""
        if self.number is None:
            return None
        return SIGNAL_EXIT_BASE + self.number

    def display_name(self, include_sig: bool = False) -> str:
        if include_sig and not self.is_pseudo:
            return f"SIG{self.name}"
        return self.name


def _pseudo_name(text: str) -> Optional[str]:
    upper = text.upper()
    if upper.startswith("SIG"):
        upper = upper[3:]
    return upper if upper in PSEUDO_SIGNALS else None


def _from_number(number: int) -> SignalDescriptor:
    try:
        sig = signal.Signals(number)
    except ValueError:
        raise UnsupportedSignalError(f"Unknown signal number {number}") from None
    return SignalDescriptor(name=sig.name[3:], number=int(sig), is_pseudo=False)


def describe(sig: SignalLike) -> SignalDescriptor:
    """
    Resolves a signal name or number into a SignalDescriptor.

    Names are matched case-insensitively with or without the SIG prefix,
    aliases (e.g. IOT, POLL, CLD) resolve to the host's canonical name.

    :raises UnsupportedSignalError: for names or numbers the host does not know.
    """
    if isinstance(sig, signal.Signals):
        return _from_number(int(sig))
    if isinstance(sig, int):
        return _from_number(sig)

    text = str(sig).strip()
    if text.isdigit():
        return _from_number(int(text))

    pseudo = _pseudo_name(text)
    if pseudo:
        return SignalDescriptor(name=pseudo, number=None, is_pseudo=True)

    upper = text.upper()
    if not upper.startswith("SIG"):
        upper = f"SIG{upper}"
    number = getattr(signal, upper, None)
    if not isinstance(number, int) or upper.startswith("SIG_"):
        raise UnsupportedSignalError(f"Unknown signal name {sig!r}")
    return _from_number(int(number))


def is_pseudo(sig: SignalLike) -> bool:
    return describe(sig).is_pseudo


def signum(sig: SignalLike) -> int:
    """Returns the number of a signal. Pseudo-signals have no number and are rejected."""
    descriptor = describe(sig)
    if descriptor.is_pseudo:
        raise UnsupportedSignalError(f"Pseudo signal {descriptor.name} does not have a signal number.")
    return descriptor.number


def signame(sig: SignalLike, include_sig: bool = False) -> str:
    """
    Returns the canonical name of a signal, e.g. TERM, or SIGTERM with include_sig.
    Pseudo-signals never get the SIG prefix.
    """
    return describe(sig).display_name(include_sig)


def sigexitcode(sig: SignalLike) -> int:
    """Returns the exit code of a process killed by the given signal (128 + number)."""
    return SIGNAL_EXIT_BASE + signum(sig)


def signal_from_exit_code(code: int) -> Optional[int]:
    """Returns the signal number encoded in a shell exit code, or None if it is a plain exit."""
    if code is None or code <= SIGNAL_EXIT_BASE:
        return None
    try:
        return int(signal.Signals(code - SIGNAL_EXIT_BASE))
    except ValueError:
        return None
