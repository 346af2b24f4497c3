"""
Logging module for shellguard.
This module provides functionality to set up logging on stderr.
"""

from .setup import DIAGNOSTIC_LOGGER, setup_logging, set_console_level

__all__ = ["DIAGNOSTIC_LOGGER", "setup_logging", "set_console_level"]
