from shellguard.supervisor import Captured


def test_captures_stdout(supervisor):
    rc, out, err = supervisor.capture("echo hello", stdout=True)
    assert rc == 0
    assert out == "hello\n"
    assert err == ""


def test_failure_is_not_fatal(supervisor):
    supervisor.die_on_error()
    assert supervisor.capture("false").rc == 1
    assert supervisor.capture(["sh", "-c", "exit 3"]).rc == 3


def test_captures_stderr_separately(supervisor):
    result = supervisor.capture(["sh", "-c", "echo out; echo err >&2; exit 2"], stdout=True, stderr=True)
    assert result == Captured(2, "out\n", "err\n")


def test_stdout_is_passed_through_when_not_requested(supervisor, capfd):
    result = supervisor.capture("echo passthrough")
    assert result.stdout == ""
    assert "passthrough" in capfd.readouterr().out


def test_callables_are_captured(supervisor):
    def noisy(word):
        print(word)
        return 4

    assert supervisor.capture(noisy, "from callable", stdout=True) == Captured(4, "from callable\n", "")


def test_exceptions_in_callables_are_contained(supervisor):
    def broken():
        raise RuntimeError("nope")

    assert supervisor.capture(broken).rc == 1


def test_results_are_bound_into_mapping(supervisor):
    results = {"rc": "stale"}
    supervisor.capture("echo bound; exit 6", stdout=True, into=results, rc_var="code", stdout_var="out")
    assert results["code"] == 6
    assert results["out"] == "bound\n"
    assert results["stderr"] == ""


def test_empty_command_is_not_run(supervisor):
    results = {}
    assert supervisor.capture("", into=results) == Captured(0, "", "")
    assert results == {"rc": 0, "stdout": "", "stderr": ""}
    assert supervisor.capture(None).rc == 0


def test_debug_hook_fires_before_command(supervisor):
    seen = []
    supervisor.traps.add(lambda: seen.append(supervisor.current_command), "DEBUG")
    supervisor.capture("true")
    assert seen == ["true"]


def test_uncaptured_failure_is_fatal(run_script):
    result = run_script("""
        import subprocess
        from shellguard.supervisor import Supervisor

        manager = Supervisor()

        def body():
            rc, _, _ = manager.capture("false")
            print(f"captured rc={rc}")
            subprocess.run(["false"], check=True)
            print("not reached")

        manager.main(body)
    """)
    assert result.returncode == 1
    assert result.stdout.split() == ["captured", "rc=1"]
    assert "[UnhandledError" in result.stderr
    assert "CalledProcessError" in result.stderr
