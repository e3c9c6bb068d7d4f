"""Utility exports for concurrency helpers."""

from dataplane_config.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    gather_bounded,
    run_with_timeout,
    wait_for_wakeup,
)

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "gather_bounded",
    "run_with_timeout",
    "wait_for_wakeup",
]
