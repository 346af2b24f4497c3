"""
shellguard: supervision of forked execution contexts with structured error handling.
"""

from .supervisor import Supervisor

__all__ = ["Supervisor"]
