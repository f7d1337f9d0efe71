"""
Rendering of progress snapshots into short status lines.

A nested progress counts as sub-progress within one unit of its parent, so
the parent fraction is `done/total + child_fraction/total`. This is an
approximation and downstream consumers rely on its exact values.
"""

from __future__ import annotations

from typing import Tuple

from .models import Progress, ProgressWrapper


def render_progress(progress: Progress) -> Tuple[str, float]:
    """Return (text, fraction) for a progress node and all of its children."""
    appendix = ""
    sub_fraction = 0.0
    if progress.sub_progress is not None:
        sub_text, sub_fraction = render_progress(progress.sub_progress)
        appendix = " -> " + sub_text

    text = f'"{progress.name}" ({progress.done}/{progress.total}){appendix}'
    fraction = 0.0
    if progress.total != 0:
        fraction = progress.done / progress.total
        fraction += sub_fraction / progress.total
    return text, fraction


def render_wrapper(wrapper: ProgressWrapper) -> str:
    if wrapper.progress is not None:
        text, fraction = render_progress(wrapper.progress)
    else:
        text, fraction = "", 0.0

    if wrapper.message:
        message = wrapper.message[:-1] if wrapper.message.endswith("\n") else wrapper.message
        quoted = f'"{message}"'
        text = f"{text} -> {quoted}" if text else quoted
    return f"{int(fraction * 100)}% {text}"
