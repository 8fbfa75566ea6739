"""
Progress reporting hook shared by the merge and lookup pipelines.

Progress is presentational only: nothing in the pipelines depends on
whether a callback is installed.
"""

from typing import Callable

ProgressCallback = Callable[[float, str], None]


def report_progress(callback: ProgressCallback | None, fraction: float, message: str) -> None:
    if callback is None:
        return
    callback(max(0.0, min(1.0, fraction)), message)
