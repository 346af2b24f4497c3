import signal

import pytest

from shellguard.supervisor.errors import UnsupportedSignalError
from shellguard.supervisor.signals import (
    describe,
    is_pseudo,
    sigexitcode,
    signal_from_exit_code,
    signame,
    signum,
)


@pytest.mark.parametrize("value", ["TERM", "term", "SIGTERM", "sigterm", 15, "15", signal.SIGTERM])
def test_signum_accepts_names_and_numbers(value):
    assert signum(value) == signal.SIGTERM


def test_signame():
    assert signame(signal.SIGKILL) == "KILL"
    assert signame("kill", include_sig=True) == "SIGKILL"
    assert signame("SIGINT") == "INT"


def test_signame_resolves_aliases_to_canonical_name():
    assert signame("IOT") == "ABRT"
    assert signame("CLD") == "CHLD"


@pytest.mark.parametrize("name", ["EXIT", "ERR", "DEBUG", "SIGEXIT", "sigerr"])
def test_pseudo_signals_have_names_but_no_numbers(name):
    assert is_pseudo(name)
    assert signame(name, include_sig=True) == name.upper().replace("SIG", "")
    with pytest.raises(UnsupportedSignalError):
        signum(name)


@pytest.mark.parametrize("value", ["NOTASIGNAL", "SIG_DFL", 999, ""])
def test_unknown_signals_are_rejected(value):
    with pytest.raises(UnsupportedSignalError):
        signum(value)


def test_unsupported_signal_error_is_a_value_error():
    with pytest.raises(ValueError):
        describe("BOGUS")


def test_sigexitcode():
    assert sigexitcode("INT") == 130
    assert sigexitcode(signal.SIGTERM) == 143
    assert sigexitcode("KILL") == 137
    assert describe("TERM").exit_code == 143
    assert describe("EXIT").exit_code is None


def test_signal_from_exit_code():
    assert signal_from_exit_code(143) == signal.SIGTERM
    assert signal_from_exit_code(130) == signal.SIGINT
    assert signal_from_exit_code(124) is None
    assert signal_from_exit_code(0) is None
