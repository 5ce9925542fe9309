"""ROASYNC — Run Context.

Carries a deadline and a cancellation flag through every paginated fetch loop
of a sync run, so a caller can bound worst-case execution time.
"""

import time
from typing import Optional

from roasync.config import settings


class RunContext:
    """Deadline + cancellation signal for one sync run."""

    def __init__(
        self,
        deadline_seconds: Optional[float] = None,
        max_pages: Optional[int] = None,
        run_id: Optional[int] = None,
    ):
        budget = (
            settings.sync_deadline_seconds
            if deadline_seconds is None
            else deadline_seconds
        )
        self.started_at = time.monotonic()
        self.deadline = self.started_at + budget
        self.max_pages = max_pages or settings.max_pages_per_run
        self.run_id = run_id
        self.truncated = False
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def expired(self) -> bool:
        """True once the run was cancelled or its deadline passed."""
        return self._cancelled or time.monotonic() >= self.deadline

    def remaining(self) -> float:
        return max(self.deadline - time.monotonic(), 0.0)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def mark_truncated(self) -> None:
        self.truncated = True
