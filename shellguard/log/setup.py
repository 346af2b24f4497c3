import logging
import sys

from shellguard.config import effective_settings as config

# Records on this logger are die() diagnostics: message and stack trace, printed as-is.
DIAGNOSTIC_LOGGER = "shellguard.diag"


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw diagnostic output."""

    def format(self, record):
        # Diagnostics from die() are already laid out, just return the raw message.
        if record.name.startswith(DIAGNOSTIC_LOGGER):
            return record.getMessage()

        # Otherwise, use the default formatting.
        # Temporarily change the format string for the superclass call.
        original_format = self._style._fmt
        self._style._fmt = config.LOG_FORMAT
        formatted_message = super().format(record)
        self._style._fmt = original_format
        return formatted_message


def setup_logging(console_level: int = None) -> None:
    """
    Configures the root logger for the application.
    This sets up the console handler on stderr and optionally a file handler,
    clearing any previously configured handlers to prevent duplication.

    stdout is never used: it belongs to the data output of supervised commands.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    if console_level is None:
        console_level = getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO)

    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- File Handler (conditional) ---
    if config.LOG_FILE:
        try:
            file_handler = logging.FileHandler(config.LOG_FILE, mode="a")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MainFormatter())
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize file logging handler for '{config.LOG_FILE}': {e}")


def set_console_level(level: int) -> bool:
    """Changes the level of the stderr console handler. Returns False if none is configured."""
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)
            return True
    return False
