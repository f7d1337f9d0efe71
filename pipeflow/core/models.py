"""
Pydantic models for the side-channel progress records and the final result.
"""

from __future__ import annotations

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# counts are 64-bit on the wire
MAX_COUNT = 2**63 - 1


class Progress(BaseModel):
    """Snapshot of one level of task progress, optionally owning a nested level."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = ""
    total: int = Field(default=0, ge=0, le=MAX_COUNT)
    done: int = Field(default=0, ge=0, le=MAX_COUNT)
    sub_progress: Optional[Progress] = Field(default=None, alias="progress")

    def to_short_string(self) -> Tuple[str, float]:
        from .progress import render_progress
        return render_progress(self)


class ProgressWrapper(BaseModel):
    """One status update: free-text message plus a progress snapshot."""

    model_config = ConfigDict(frozen=True)

    message: Optional[str] = ""
    progress: Optional[Progress] = None

    def to_short_string(self) -> str:
        from .progress import render_wrapper
        return render_wrapper(self)


class ExecutionResult(BaseModel):
    """Decoded JSON object printed by the build tool with --json.

    Only `success` is interpreted here; everything else is kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    success: Optional[bool] = None


Progress.model_rebuild()
