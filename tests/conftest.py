"""
Pytest fixtures for shellguard tests.
"""
import os
import sys
import textwrap
import subprocess

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Keep the tests independent of a user's overrides file.
os.environ.setdefault("SHELLGUARD_OVERRIDES", os.path.join(ROOT, "tests", "no-overrides.json"))

from shellguard.supervisor import Supervisor  # noqa: E402


@pytest.fixture
def supervisor():
    """A fresh, not installed Supervisor for in-process tests."""
    Supervisor.reset()
    manager = Supervisor()
    yield manager
    Supervisor.reset()


@pytest.fixture
def script_env(tmp_path):
    env = dict(os.environ)
    env["PYTHONPATH"] = ROOT + os.pathsep + env.get("PYTHONPATH", "")
    env["SHELLGUARD_OVERRIDES"] = str(tmp_path / "overrides.json")
    env["PYTHONUNBUFFERED"] = "1"
    return env


@pytest.fixture
def run_script(tmp_path, script_env):
    """Runs a supervised Python script in a fresh interpreter and returns the CompletedProcess."""
    def _run(source: str, timeout: float = 30) -> subprocess.CompletedProcess:
        script = tmp_path / "script.py"
        script.write_text(textwrap.dedent(source))
        return subprocess.run(
            [sys.executable, str(script)],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=script_env,
            cwd=str(tmp_path),
        )
    return _run
