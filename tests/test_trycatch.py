import os
import sys
import signal

import pytest

from shellguard.supervisor.errors import CommandFailed, UsageError
from shellguard.supervisor.traps import ERR


@pytest.fixture
def caught():
    return []


def test_successful_block_skips_catch(supervisor, caught):
    assert supervisor.try_catch(lambda: None, caught.append) == 0
    assert caught == []


@pytest.mark.parametrize("body, expected", [
    (lambda: 3, 3),
    (lambda: False, 1),
    (lambda: sys.exit(4), 4),
])
def test_block_status_reaches_catch(supervisor, caught, body, expected):
    assert supervisor.try_catch(body, caught.append) == expected
    assert caught == [expected]


def test_exceptions_are_contained_without_diagnostics(supervisor, caught, capfd):
    def body():
        raise ValueError("boom")

    assert supervisor.try_catch(body, caught.append) == 1
    assert caught == [1]
    assert "ExceptionCaught" not in capfd.readouterr().err


def test_command_failed_keeps_its_code(supervisor, caught):
    def body():
        raise CommandFailed(7, "make")

    assert supervisor.try_catch(body, caught.append) == 7


def test_throw_ends_the_block(supervisor, caught):
    def body():
        supervisor.throw(5)
        return 0

    assert supervisor.try_catch(body, caught.append) == 5


def test_arguments_are_passed_to_the_block(supervisor, caught):
    assert supervisor.try_catch(lambda a, b=0: a + b, caught.append, 2, b=3) == 5


def test_nested_blocks(supervisor, caught):
    def outer():
        inner_rc = supervisor.try_catch(lambda: 3, lambda rc: None)
        return 10 + inner_rc

    assert supervisor.try_catch(outer, caught.append) == 13


def test_signals_end_the_block(supervisor, caught):
    assert supervisor.try_catch(lambda: os.kill(os.getpid(), signal.SIGKILL), caught.append) == 137
    assert supervisor.try_catch(lambda: os.kill(os.getpid(), signal.SIGTERM), caught.append) == 143
    assert caught == [137, 143]


def test_tty_signal_is_reraised_against_the_block(supervisor, caught):
    assert supervisor.try_catch(lambda: os.kill(os.getpid(), signal.SIGINT), caught.append) == 130


def test_err_chain_and_frames_are_restored(supervisor, caught):
    supervisor.die_on_error()
    before = supervisor.traps.get(ERR)

    supervisor.try_catch(lambda: 1, caught.append)

    assert supervisor.traps.get(ERR) == before
    assert supervisor.try_stack == []


def test_catch_is_mandatory(supervisor):
    with pytest.raises(UsageError):
        supervisor.try_catch(lambda: 0, None)
    with pytest.raises(UsageError):
        supervisor.try_catch(None, lambda rc: None)
    assert supervisor.try_stack == []
