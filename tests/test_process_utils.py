import os
import sys
import time
import signal
import subprocess

import psutil
import pytest

from shellguard.supervisor.errors import CommandFailed
from shellguard.supervisor.process_utils import (
    describe_command,
    exit_code_for_exception,
    exit_code_from_result,
    exit_code_from_status,
    is_empty_command,
    process_ancestors,
    process_children,
    process_not_running,
    process_parent,
    process_running,
    process_tree,
    run_command,
)

# Larger than the kernel's maximum pid, so it can never exist.
MISSING_PID = 4194304 + 4242


@pytest.fixture
def sleeper():
    proc = subprocess.Popen(["sleep", "30"])
    yield proc
    proc.kill()
    proc.wait()


def test_children_and_tree_include_spawned_process(sleeper):
    me = os.getpid()
    assert sleeper.pid in process_children()
    assert sleeper.pid in process_children(me)

    tree = process_tree(me)
    assert tree[0] == me
    assert sleeper.pid in tree


def test_tree_includes_grandchildren():
    proc = subprocess.Popen(["sh", "-c", "sleep 30 & echo $!; wait"], stdout=subprocess.PIPE, text=True)
    try:
        grandchild = int(proc.stdout.readline())
        tree = process_tree(proc.pid)
        assert tree == [proc.pid, grandchild]
        assert process_children(proc.pid) == [grandchild]
        assert grandchild in process_tree()
    finally:
        os.kill(grandchild, signal.SIGKILL)
        proc.kill()
        proc.wait()


def test_missing_pids_produce_nothing():
    assert process_tree(MISSING_PID) == []
    assert process_children(MISSING_PID) == []
    assert process_ancestors(MISSING_PID) == []
    assert process_parent(MISSING_PID) is None


def test_ancestors(sleeper):
    ancestors = process_ancestors(sleeper.pid)
    assert ancestors[0] == os.getpid()
    assert ancestors[1] == os.getppid()
    assert sleeper.pid not in ancestors
    assert process_parent(sleeper.pid) == os.getpid()


def test_running_and_not_running(sleeper):
    assert process_running(os.getpid(), sleeper.pid)
    assert not process_not_running(sleeper.pid)
    assert process_not_running(MISSING_PID)
    assert not process_running(os.getpid(), MISSING_PID)


def test_zombies_count_as_not_running():
    proc = subprocess.Popen(["true"])
    try:
        deadline = time.monotonic() + 5
        while psutil.Process(proc.pid).status() != psutil.STATUS_ZOMBIE:
            assert time.monotonic() < deadline
            time.sleep(0.05)
        assert process_not_running(proc.pid)
    finally:
        proc.wait()


def test_exit_code_from_status():
    pid = os.fork()
    if pid == 0:
        os._exit(3)
    _, status = os.waitpid(pid, 0)
    assert exit_code_from_status(status) == 3

    pid = os.fork()
    if pid == 0:
        try:
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
            os.kill(os.getpid(), signal.SIGTERM)
            time.sleep(5)
        finally:
            os._exit(1)
    _, status = os.waitpid(pid, 0)
    assert exit_code_from_status(status) == 143


@pytest.mark.parametrize("result, expected", [
    (None, 0), (True, 0), (False, 1), (0, 0), (3, 3), (256 + 7, 7), ("text", 0),
])
def test_exit_code_from_result(result, expected):
    assert exit_code_from_result(result) == expected


@pytest.mark.parametrize("exc, expected", [
    (SystemExit(), 0),
    (SystemExit(4), 4),
    (SystemExit("message"), 1),
    (CommandFailed(7), 7),
    (subprocess.CalledProcessError(2, "cmd"), 2),
    (subprocess.CalledProcessError(-15, "cmd"), 143),
    (KeyboardInterrupt(), 130),
    (ValueError("boom"), 1),
])
def test_exit_code_for_exception(exc, expected):
    assert exit_code_for_exception(exc) == expected


def test_run_command_kinds():
    assert run_command("exit 3") == 3
    assert run_command(["true"]) == 0
    assert run_command(["sh", "-c"], "exit 5") == 5
    assert run_command(lambda: False) == 1
    assert run_command(lambda value: value, 9) == 9
    assert run_command("") == 0
    assert run_command([sys.executable, "-c", "import os; os.kill(os.getpid(), 15)"]) == 143


def test_describe_and_empty_commands():
    assert describe_command("echo hi") == "echo hi"
    assert describe_command(["ls", "-l"], ["/tmp"]) == "ls -l /tmp"
    assert describe_command(None) == ""
    assert is_empty_command(None)
    assert is_empty_command("   ")
    assert is_empty_command([])
    assert not is_empty_command(print)
