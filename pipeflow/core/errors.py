"""
Error types raised by the pipeline supervisor.

Each error carries an ErrorCategory so callers can tell setup problems
from a pipeline that ran but could not be decoded.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categories of supervisor failures."""
    SETUP = "setup"
    TRANSPORT = "transport"
    NO_OUTPUT = "no_output"
    DECODE = "decode"
    EXIT_STATUS = "exit_status"
    PROGRESS_DECODE = "progress_decode"
    CONFIGURATION = "configuration"


class PipeflowError(Exception):
    category: ErrorCategory = ErrorCategory.SETUP


class ConfigurationError(PipeflowError):
    category = ErrorCategory.CONFIGURATION


class SetupError(PipeflowError):
    """Pipe, stdin or process start failure."""
    category = ErrorCategory.SETUP


class TransportError(PipeflowError):
    """Writing or closing the manifest stream failed."""
    category = ErrorCategory.TRANSPORT


class NoOutputError(PipeflowError):
    category = ErrorCategory.NO_OUTPUT


class ResultDecodeError(PipeflowError):
    """Captured stdout could not be decoded as a result object."""
    category = ErrorCategory.DECODE

    def __init__(self, message: str, raw_output: str):
        super().__init__(f"{message}\nthe raw output:\n{raw_output}")
        self.raw_output = raw_output


class RunError(PipeflowError):
    """The build tool exited unsuccessfully or could not be run."""
    category = ErrorCategory.EXIT_STATUS

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class ProgressDecodeError(PipeflowError):
    category = ErrorCategory.PROGRESS_DECODE
