"""
Core modules: progress model, progress monitor and process supervisor.
"""

from .configuration import SupervisorConfig, ConfigurationLoader
from .errors import (
    ErrorCategory,
    PipeflowError,
    ConfigurationError,
    SetupError,
    TransportError,
    NoOutputError,
    ResultDecodeError,
    RunError,
    ProgressDecodeError,
)
from .models import Progress, ProgressWrapper, ExecutionResult
from .progress import render_progress, render_wrapper
from .monitor import ProgressMonitor, split_records, decode_record
from .executor import Executor, run_pipeline, tool_version

__all__ = [
    "SupervisorConfig",
    "ConfigurationLoader",
    "ErrorCategory",
    "PipeflowError",
    "ConfigurationError",
    "SetupError",
    "TransportError",
    "NoOutputError",
    "ResultDecodeError",
    "RunError",
    "ProgressDecodeError",
    "Progress",
    "ProgressWrapper",
    "ExecutionResult",
    "render_progress",
    "render_wrapper",
    "ProgressMonitor",
    "split_records",
    "decode_record",
    "Executor",
    "run_pipeline",
    "tool_version",
]
