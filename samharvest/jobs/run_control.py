"""Run control: call budget and stop conditions."""
import time
import logging
from typing import Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RunControl:
    """Tracks the call budget and why a run should stop."""

    max_calls: int

    # Internal state
    start_time: float = field(default_factory=time.time)
    calls_used: int = 0
    records_synced: int = 0
    windows_completed: int = 0
    rate_limited: bool = False
    failed: bool = False
    stop_requested: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return max(self.max_calls - self.calls_used, 0)

    def should_stop(self) -> tuple[bool, Optional[str]]:
        """Check if the run should stop before the next window. Returns (should_stop, reason)."""
        if self.stop_requested:
            return True, "Stop requested"
        if self.rate_limited:
            return True, "Rate limited by source"
        if self.failed:
            return True, f"Window failed: {self.errors[-1] if self.errors else 'unknown error'}"
        if self.remaining <= 0:
            return True, f"Call budget of {self.max_calls} exhausted"
        return False, None

    def record_calls(self, pages: int) -> None:
        """Record pages consumed by one fetch."""
        self.calls_used += pages

    def record_records(self, count: int) -> None:
        """Record records committed to the store."""
        self.records_synced += count

    def record_window(self) -> None:
        """Record a window fetched and committed in full."""
        self.windows_completed += 1

    def record_error(self, message: str, rate_limited: bool = False) -> None:
        """Record a window failure; the run stops before the next window."""
        self.errors.append(message)
        self.failed = True
        if rate_limited:
            self.rate_limited = True

    def request_stop(self) -> None:
        """Ask the run to stop at the next window boundary."""
        if not self.stop_requested:
            logger.warning("Stop requested, finishing current window")
        self.stop_requested = True

    @property
    def completed_normally(self) -> bool:
        return not (self.failed or self.stop_requested)

    def get_summary(self) -> dict:
        """Get summary statistics."""
        elapsed_minutes = (time.time() - self.start_time) / 60
        return {
            "elapsed_minutes": round(elapsed_minutes, 2),
            "calls_used": self.calls_used,
            "max_calls": self.max_calls,
            "records_synced": self.records_synced,
            "windows_completed": self.windows_completed,
            "rate_limited": self.rate_limited,
            "error_count": len(self.errors),
        }
