"""
Change-only logging for sync and bulk batches.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class StateChange:
    """One entity transition observed during a batch."""
    id: str
    display_id: str
    old_state: str
    new_state: str
    timestamp: Optional[datetime] = None


class SyncLogger:
    """
    Logs per-entity transitions and one summary line per batch.

    Batches that found nothing to do stay silent unless forced, so routine
    polling does not flood the log.
    """

    def __init__(self, service_name: str):
        self.service_name = service_name
        self._start_time = 0.0

    def start_batch(self):
        """Start timing a batch."""
        self._start_time = time.monotonic()

    def elapsed(self) -> float:
        if not self._start_time:
            return 0.0
        return time.monotonic() - self._start_time

    def log_state_change(self, change: StateChange):
        """Log one transition with its offset from the batch start."""
        logger.info(
            f"[{self.service_name}] state_changed id={change.display_id} "
            f"transition={change.old_state} → {change.new_state} offset={self.elapsed():.1f}s"
        )

    def log_batch_summary(self, service_name: str, result, force: bool = False) -> bool:
        """
        Log the batch summary.

        Skipped when nothing was updated or failed, unless force is set
        (manual operations always get a confirmation line).

        Args:
            service_name: Name reported in the summary
            result: Object exposing total_processed, updated, unchanged, failed
            force: Always log

        Returns:
            True if a line was logged
        """
        if not force and result.updated == 0 and result.failed == 0:
            return False

        logger.info(
            f"[{self.service_name}] batch_completed service={service_name} "
            f"processed={result.total_processed} updated={result.updated} "
            f"unchanged={result.unchanged} failed={result.failed} duration={self.elapsed():.2f}s"
        )
        return True

    @staticmethod
    def has_state_changed(old_state: str, new_state: str) -> bool:
        return old_state != new_state
