"""
Utility modules for the pipeline supervisor.
"""

from .logging_config import setup_logging

__all__ = [
    "setup_logging",
]
