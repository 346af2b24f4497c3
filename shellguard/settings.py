"""
This module contains the default configuration settings for shellguard.
It defines the fatal signal sets, timeout/retry defaults and logging settings.
Values can be overridden from the environment (or a .env file) and, for the
settings listed in MODIFIABLE_SETTINGS, from the overrides JSON file.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)


def _signal_list(env_name: str, default: str) -> list:
    """Splits a whitespace separated list of signal names from the environment."""
    return os.getenv(env_name, default).replace(",", " ").split()


#* --- Core Paths ---
CONFIG_DIR = pathlib.Path(os.getenv("SHELLGUARD_CONFIG_DIR", pathlib.Path.home() / ".config" / "shellguard"))
OVERRIDES_JSON_PATH = pathlib.Path(os.getenv("SHELLGUARD_OVERRIDES", CONFIG_DIR / "overrides.json"))

#* --- Signal Settings ---
# Signals which call die() once die_on_abort() is active. KILL and STOP cannot
# be caught; SEGV, BUS, ILL, FPE and PIPE are left to the interpreter.
DIE_SIGNALS = _signal_list(
    "SHELLGUARD_DIE_SIGNALS",
    "HUP INT QUIT ABRT ALRM TERM USR1 USR2 IO PROF SYS TRAP VTALRM XCPU XFSZ",
)

# Signals generated by the TTY (Ctrl-C, Ctrl-\, Ctrl-Z). A process dying from
# one of these re-raises it against itself instead of exiting.
TTY_SIGNALS = _signal_list("SHELLGUARD_TTY_SIGNALS", "INT QUIT TSTP")

#* --- Supervisor Settings ---
KILL_ESCALATION_DELAY = float(os.getenv("SHELLGUARD_KILL_AFTER", "2"))  # seconds before SIGKILL
TIMEOUT_EXIT_CODE = 124
DEFAULT_RETRIES = int(os.getenv("SHELLGUARD_RETRIES", "5"))
DIE_STACK_FRAMES = 3
PROCESS_TITLE_PREFIX = "shellguard"

#* --- Logging Settings ---
LOG_LEVEL = os.getenv("SHELLGUARD_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("SHELLGUARD_LOG_FILE", "")
LOG_FORMAT = "%(asctime)s - %(levelname)-8s - [%(name)s pid=%(process)d] - %(message)s"

#* --- MODIFIABLE SETTINGS (Changeable via the overrides file) ---
MODIFIABLE_SETTINGS = {
    "DIE_SIGNALS", "TTY_SIGNALS",
    "KILL_ESCALATION_DELAY", "DEFAULT_RETRIES", "DIE_STACK_FRAMES",
    "LOG_LEVEL", "LOG_FILE",
}
