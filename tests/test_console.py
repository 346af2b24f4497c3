import os
import sys
import subprocess

import pytest

from shellguard.console import execute_command, parse_options


def test_parse_options():
    options, rest = parse_options(["-s=KILL", "--kill-after=2", "--verbose-ish", "--", "sleep", "1"])
    assert options == {"signal": "KILL", "kill-after": "2", "verbose-ish": "1"}
    assert rest == ["sleep", "1"]


def test_parse_options_stops_at_first_argument():
    options, rest = parse_options(["-t=5", "echo", "-n", "hi"])
    assert options == {"timeout": "5"}
    assert rest == ["echo", "-n", "hi"]


@pytest.mark.parametrize("command, args, expected", [
    ("signum", ["TERM"], "15"),
    ("signame", ["9"], "KILL"),
    ("signame", ["-s", "9"], "SIGKILL"),
    ("sigexitcode", ["INT"], "130"),
])
def test_signal_commands(capsys, command, args, expected):
    assert execute_command(command, args) == 0
    assert capsys.readouterr().out.strip() == expected


def test_signal_command_errors(capsys):
    assert execute_command("signum", ["EXIT"]) == 1
    assert "ERROR" in capsys.readouterr().err
    assert execute_command("signum", []) == 2


def test_unknown_command():
    assert execute_command("frobnicate", []) == 2


def test_tree_command(capsys):
    child = subprocess.Popen(["sleep", "30"])
    try:
        assert execute_command("tree", [str(os.getpid())]) == 0
        pids = [int(pid) for pid in capsys.readouterr().out.split()]
        assert pids[0] == os.getpid()
        assert child.pid in pids
    finally:
        child.kill()
        child.wait()


def test_kill_command(capsys):
    child = subprocess.Popen(["sleep", "30"])
    assert execute_command("kill", ["-s=KILL", str(child.pid)]) == 0
    assert capsys.readouterr().out.split() == [str(child.pid)]
    assert child.wait(timeout=5) == -9


def test_timeout_command():
    assert execute_command("timeout", ["-t=500ms", "--", "sleep", "5"]) == 124
    assert execute_command("timeout", ["sleep", "5"]) == 2


def test_retry_command():
    assert execute_command("retry", ["-r=1", "--", "sh", "-c", "exit 3"]) == 3


def test_console_script_exit_status(script_env):
    result = subprocess.run(
        [sys.executable, "-m", "shellguard.main", "sigexitcode", "TERM"],
        capture_output=True, text=True, env=script_env, timeout=30,
    )
    assert result.returncode == 0, result.stderr
    assert result.stdout.strip() == "143"

    result = subprocess.run(
        [sys.executable, "-m", "shellguard.main", "timeout", "-t=300ms", "--", "sleep", "5"],
        capture_output=True, text=True, env=script_env, timeout=30,
    )
    assert result.returncode == 124
