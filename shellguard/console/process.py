import logging
from typing import List

from shellguard.supervisor.errors import SupervisorError
from shellguard.console.handler import (
    ConsoleUsageError,
    handle_kill_command,
    handle_process_command,
    handle_retry_command,
    handle_signal_command,
    handle_timeout_command,
    print_help,
)

log = logging.getLogger(__name__)


def execute_command(command: str, args: List[str]) -> int:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'tree', 'timeout').
    :param args: A list of arguments for the command.
    :return int: The exit code of the command.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "signame": lambda: handle_signal_command(command, args),
        "signum": lambda: handle_signal_command(command, args),
        "sigexitcode": lambda: handle_signal_command(command, args),
        "children": lambda: handle_process_command(command, args),
        "tree": lambda: handle_process_command(command, args),
        "ancestors": lambda: handle_process_command(command, args),
        "kill": lambda: handle_kill_command(command, args),
        "killtree": lambda: handle_kill_command(command, args),
        "timeout": lambda: handle_timeout_command(args),
        "retry": lambda: handle_retry_command(args),
        "help": print_help,
    }

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return 2

    try:
        return command_map[command]()
    except ConsoleUsageError as e:
        log.error(str(e))
        return 2
    except (SupervisorError, ValueError) as e:
        log.error(f"{command}: {e}")
        return 1
