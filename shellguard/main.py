import sys
import logging
from typing import List

import shellguard.console as console
from shellguard.log import setup_logging
from shellguard.supervisor import Supervisor
from shellguard.supervisor.process_utils import set_process_title

log = logging.getLogger("console")
supervisor = Supervisor()


def _interactive() -> int:
    """Reads commands from stdin until 'exit' or EOF. Returns the last exit code."""
    print("--- shellguard console ---")
    print("Type 'help' for a list of commands.")

    rc = 0
    while True:
        try:
            command_line_str = input("> ")
        except EOFError:
            break
        except KeyboardInterrupt:
            log.warning("\nExiting console due to KeyboardInterrupt.")
            break

        command_line = command_line_str.strip().split()
        if not command_line:
            continue
        command, args = command_line[0].lower(), command_line[1:]
        if command == "exit":
            break

        log.debug(f"Received command: {command}, args: {args}")
        rc = console.execute_command(command, args)
        if rc:
            print(f"[exit code {rc}]")
    return rc


def run(argv: List[str]) -> int:
    """Runs one command given on the command line, or the interactive console."""
    args = list(argv)
    if "--verbose" in args:
        args.remove("--verbose")
        console.toggle_verbose_logging(True)

    if not args:
        return _interactive()

    command, args = args[0].lower(), args[1:]
    return console.execute_command(command, args)


def main() -> None:
    """The main entry point for the console application."""
    setup_logging()
    set_process_title("console")
    supervisor.main(run, sys.argv[1:])


if __name__ == "__main__":
    main()
