import os
import sys
import logging
from typing import Dict, List, Optional, Tuple

from shellguard.log import set_console_level
from shellguard.supervisor import Supervisor
from shellguard.supervisor.errors import UnsupportedSignalError
from shellguard.supervisor.durations import parse_duration
from shellguard.supervisor.signals import sigexitcode, signame, signum
from shellguard.supervisor.process_utils import process_ancestors, process_children, process_tree

log = logging.getLogger(__name__)
supervisor = Supervisor()

# Long option names and the short forms they can be given as.
OPTION_ALIASES = {
    "s": "signal",
    "k": "kill-after",
    "x": "exclude",
    "t": "timeout",
    "r": "retries",
    "d": "delay",
    "e": "exit-codes",
    "w": "warn-every",
    "T": "overall-timeout",
    "p": "prefix",
}


class ConsoleUsageError(Exception):
    pass


def parse_options(args: List[str]) -> Tuple[Dict[str, str], List[str]]:
    """
    Splits '-x=value' / '--name=value' options off the front of args.

    Options end at '--' (which is dropped) or at the first argument which is
    not an option. Options without a value are stored as "1".

    :return: The options keyed by their long name, and the remaining arguments.
    """
    options: Dict[str, str] = {}
    rest = list(args)
    while rest:
        arg = rest[0]
        if arg == "--":
            rest.pop(0)
            break
        if not arg.startswith("-") or arg == "-" or arg.lstrip("-").isdigit():
            break
        rest.pop(0)
        name, _, value = arg.lstrip("-").partition("=")
        name = OPTION_ALIASES.get(name, name)
        options[name] = value if value else "1"
    return options, rest


def _pid_list(values: List[str]) -> List[int]:
    pids = []
    for value in values:
        for part in value.replace(",", " ").split():
            try:
                pids.append(int(part))
            except ValueError:
                raise ConsoleUsageError(f"Not a pid: '{part}'") from None
    return pids


def _exit_codes(value: Optional[str]) -> List[int]:
    if not value:
        return [0]
    try:
        return [int(code) for code in value.replace(",", " ").split()]
    except ValueError:
        raise ConsoleUsageError(f"Invalid exit codes: '{value}'") from None


#* --- Signal Commands ---
def handle_signal_command(command: str, args: List[str]) -> int:
    """
    Handles 'signame', 'signum' and 'sigexitcode'. Prints one result per argument.

    :return: 0 if every argument could be translated, 1 otherwise.
    """
    options, names = parse_options(args)
    if not names:
        raise ConsoleUsageError(f"Usage: {command} [-s] SIGNAL...")

    rc = 0
    for name in names:
        try:
            if command == "signame":
                print(signame(name, include_sig="signal" in options))
            elif command == "signum":
                print(signum(name))
            else:
                print(sigexitcode(name))
        except UnsupportedSignalError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            rc = 1
    return rc


#* --- Process Commands ---
def handle_process_command(command: str, args: List[str]) -> int:
    """
    Handles 'children', 'tree' and 'ancestors'. Without pids the calling shell
    (the parent of this process) is inspected.
    """
    _, rest = parse_options(args)
    pids = _pid_list(rest) or [os.getppid()]

    if command == "children":
        result = process_children(*pids)
    elif command == "tree":
        result = process_tree(*pids)
    else:
        result = []
        for pid in pids:
            result.extend(process_ancestors(pid))

    if result:
        print(" ".join(str(pid) for pid in result))
    return 0


def handle_kill_command(command: str, args: List[str]) -> int:
    """Handles 'kill' and 'killtree'. Prints the pids that were signaled."""
    options, rest = parse_options(args)
    pids = _pid_list(rest)
    if not pids:
        raise ConsoleUsageError(f"Usage: {command} [-s=SIGNAL] [-k=DURATION] [-x=PIDS] PID...")

    sig = options.get("signal", "TERM")
    kill_after = options.get("kill-after")
    if kill_after is not None:
        parse_duration(kill_after)

    if command == "kill":
        signaled = supervisor.kill(pids, sig, kill_after=kill_after)
    else:
        exclude = _pid_list([options.get("exclude", "")])
        signaled = supervisor.kill_tree(pids, sig, exclude=exclude, kill_after=kill_after)

    if signaled:
        print(" ".join(str(pid) for pid in signaled))
    return 0


#* --- Supervised Commands ---
def handle_timeout_command(args: List[str]) -> int:
    options, command = parse_options(args)
    duration = options.get("timeout")
    if duration is None or not command:
        raise ConsoleUsageError("Usage: timeout -t=DURATION [-s=SIGNAL] [-k=DURATION] -- COMMAND...")

    return supervisor.run_with_timeout(
        command,
        duration,
        sig=options.get("signal", "TERM"),
        kill_after=options.get("kill-after"),
    )


def handle_retry_command(args: List[str]) -> int:
    options, command = parse_options(args)
    if not command:
        raise ConsoleUsageError("Usage: retry [-r=N] [-t=DURATION] [-d=DURATION] [-e=CODES] [-w=DURATION] [-T=DURATION] -- COMMAND...")

    retries = options.get("retries")
    if retries is not None:
        retries = float(retries)
        if retries.is_integer():
            retries = int(retries)

    return supervisor.retry(
        command,
        retries=retries,
        timeout=options.get("timeout"),
        delay=options.get("delay", 0),
        terminal_codes=_exit_codes(options.get("exit-codes")),
        sig=options.get("signal", "TERM"),
        warn_every=options.get("warn-every"),
        overall_timeout=options.get("overall-timeout"),
    )


#* --- Misc ---
def toggle_verbose_logging(enabled: bool = True) -> None:
    """Switches the stderr console handler between DEBUG and INFO."""
    level = logging.DEBUG if enabled else logging.INFO
    if set_console_level(level):
        log.debug("Verbose console logging is now ON.")
    else:
        print("Could not find console handler to modify level.", file=sys.stderr)


def print_help() -> int:
    """Prints the help text for the console."""
    print("\nAvailable commands:")
    print("  signame [-s] SIGNAL...          - Print the name of each signal (-s adds the SIG prefix).")
    print("  signum SIGNAL...                - Print the number of each signal.")
    print("  sigexitcode SIGNAL...           - Print the exit code of a process killed by each signal.")
    print("  children [PID...]               - Print the direct children of the processes.")
    print("  tree [PID...]                   - Print the processes and all their descendants.")
    print("  ancestors [PID...]              - Print the parent chain of the processes up to init.")
    print("  kill [-s=SIG] [-k=DUR] PID...   - Signal processes, escalating to SIGKILL after -k.")
    print("  killtree [-s=SIG] [-k=DUR] [-x=PIDS] PID...")
    print("                                  - Signal whole process trees.")
    print("  timeout -t=DUR [-s=SIG] -- CMD  - Run CMD, kill its process tree after DUR (exit code 124).")
    print("  retry [-r=N] [-t=DUR] [-d=DUR] [-e=CODES] [-w=DUR] [-T=DUR] -- CMD")
    print("                                  - Run CMD until it succeeds, at most N+1 times.")
    print("  help                            - Show this help message.")
    print("  exit                            - Exit the interactive console.")
    print("\nAdd --verbose to any command for DEBUG output on stderr.")
    print()
    return 0
