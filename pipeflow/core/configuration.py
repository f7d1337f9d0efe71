"""
Configuration for the pipeline supervisor.

Settings come from an optional YAML file (`supervisor:` section) and can be
overridden through environment variables:

- PIPEFLOW_EXECUTABLE: build tool to run (default: osbuild)
- PIPEFLOW_MONITOR: monitor name passed with --monitor (default: JSONSeqMonitor)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "osbuild"
DEFAULT_MONITOR = "JSONSeqMonitor"
RECORD_SEPARATOR = b"\x1e"


@dataclass
class SupervisorConfig:
    """Settings for launching the build tool and reading its progress."""
    executable: str = DEFAULT_EXECUTABLE
    monitor: str = DEFAULT_MONITOR
    version_prefix: Optional[str] = None
    progress_prefix: str = ""
    read_chunk_size: int = 4096

    def __post_init__(self) -> None:
        if not self.executable:
            raise ConfigurationError("executable must not be empty")
        try:
            chunk = int(self.read_chunk_size)
        except (TypeError, ValueError):
            chunk = 0
        if chunk <= 0:
            raise ConfigurationError(f"read_chunk_size must be a positive integer: {self.read_chunk_size!r}")
        self.read_chunk_size = chunk
        if self.version_prefix is None:
            # "<tool> --version" prints "<tool> VERSION"
            self.version_prefix = f"{Path(self.executable).name} "

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SupervisorConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"unknown supervisor settings: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_env(cls, base: Optional["SupervisorConfig"] = None) -> "SupervisorConfig":
        """Apply PIPEFLOW_* environment overrides on top of `base`."""
        values: Dict[str, Any] = {}
        if base is not None:
            values = {f.name: getattr(base, f.name) for f in fields(cls)}
        exe = os.environ.get("PIPEFLOW_EXECUTABLE")
        if exe:
            values["executable"] = exe
            # re-derive from the new executable unless explicitly configured
            if base is None or base.version_prefix == f"{Path(base.executable).name} ":
                values["version_prefix"] = None
        monitor = os.environ.get("PIPEFLOW_MONITOR")
        if monitor:
            values["monitor"] = monitor
        return cls(**values)


class ConfigurationLoader:
    """YAML configuration file loader."""

    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)

    def load_configuration(self) -> SupervisorConfig:
        logger.info(f"Loading configuration from {self.config_path}")
        try:
            with open(self.config_path, 'r') as f:
                raw_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"cannot read configuration {self.config_path}: {exc}") from exc

        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"configuration root must be a mapping: {self.config_path}")
        section = raw_config.get("supervisor", {})
        if not isinstance(section, dict):
            raise ConfigurationError("'supervisor' section must be a mapping")
        return SupervisorConfig.from_env(SupervisorConfig.from_dict(section))
