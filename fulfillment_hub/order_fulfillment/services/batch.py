"""
Fan-out/fan-in execution of per-order work.

Each order is processed independently: logical failures become per-item
results and never touch sibling orders. Infrastructure failures (database
errors, programming errors) abort the batch.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from django.core.exceptions import ObjectDoesNotExist
from django.db import DEFAULT_DB_ALIAS, connections

from ..exceptions import BusinessException
from .sync_logger import StateChange

logger = logging.getLogger(__name__)


class ItemOutcome:
    UPDATED = 'updated'
    UNCHANGED = 'unchanged'
    FAILED = 'failed'


@dataclass
class ItemResult:
    """Outcome of processing one order in a batch."""
    order_id: str
    outcome: str
    code: str = ""
    message: str = ""
    old_state: str = ""
    new_state: str = ""
    display_id: str = ""

    @classmethod
    def updated(cls, order, old_state: str, new_state: str) -> 'ItemResult':
        return cls(order_id=str(order.id), outcome=ItemOutcome.UPDATED, old_state=old_state,
                   new_state=new_state, display_id=order.display_id)

    @classmethod
    def unchanged(cls, order, state: str) -> 'ItemResult':
        return cls(order_id=str(order.id), outcome=ItemOutcome.UNCHANGED, old_state=state,
                   new_state=state, display_id=order.display_id)

    @classmethod
    def failed(cls, order_id, code: str, message: str) -> 'ItemResult':
        return cls(order_id=str(order_id), outcome=ItemOutcome.FAILED, code=code, message=message)

    def to_failure(self) -> Dict[str, str]:
        return {'order_id': self.order_id, 'code': self.code, 'message': self.message}


@dataclass
class BatchResult:
    """Tallies and per-item detail for one bulk or sync batch."""
    total_processed: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    failures: List[Dict[str, str]] = field(default_factory=list)
    items: List[ItemResult] = field(default_factory=list)
    cancelled: bool = False
    job_id: str = ""

    @classmethod
    def from_items(cls, items: List[ItemResult], job_id: str = "", cancelled: bool = False) -> 'BatchResult':
        result = cls(job_id=job_id, cancelled=cancelled, items=list(items))
        for item in items:
            result.total_processed += 1
            if item.outcome == ItemOutcome.UPDATED:
                result.updated += 1
            elif item.outcome == ItemOutcome.UNCHANGED:
                result.unchanged += 1
            else:
                result.failed += 1
                result.failures.append(item.to_failure())
        return result

    @property
    def state_changes(self) -> List[StateChange]:
        return [
            StateChange(id=item.order_id, display_id=item.display_id or item.order_id,
                        old_state=item.old_state, new_state=item.new_state)
            for item in self.items
            if item.outcome == ItemOutcome.UPDATED and item.old_state != item.new_state
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'job_id': self.job_id,
            'total_processed': self.total_processed,
            'updated': self.updated,
            'unchanged': self.unchanged,
            'failed': self.failed,
            'failures': list(self.failures),
            'cancelled': self.cancelled,
            'items': [
                {
                    'order_id': item.order_id,
                    'outcome': item.outcome,
                    'old_state': item.old_state,
                    'new_state': item.new_state,
                    'code': item.code,
                    'message': item.message,
                }
                for item in self.items
            ],
        }


def database_worker_limit(max_workers: int, using: str = DEFAULT_DB_ALIAS) -> int:
    """
    Cap batch concurrency at what the database can serialize per order.

    Backends without row locks (SQLite) allow one writer at a time, so their
    batches run inline.
    """
    if not connections[using].features.has_select_for_update:
        return 1
    return max(1, max_workers)


def _run_one(target, work: Callable[[Any], ItemResult], cancel_event: threading.Event) -> Optional[ItemResult]:
    # Cancellation is only checked before an order starts
    if cancel_event.is_set():
        return None
    try:
        return work(target)
    except BusinessException as e:
        logger.error(f"Order {target} failed: [{e.code}] {e.message}")
        return ItemResult.failed(target, e.code, e.message)
    except ObjectDoesNotExist:
        logger.error(f"Order {target} not found")
        return ItemResult.failed(target, 'NOT_FOUND', f"Order {target} not found")
    except Exception:
        cancel_event.set()
        raise


def _run_in_worker(target, work, cancel_event):
    try:
        return _run_one(target, work, cancel_event)
    finally:
        # Pool threads get their own DB connections
        connections.close_all()


def run_batch(targets: Iterable, work: Callable[[Any], ItemResult], max_workers: int = 1,
              cancel_event: Optional[threading.Event] = None) -> Tuple[List[ItemResult], bool]:
    """
    Run work(target) for every target with bounded concurrency.

    Args:
        targets: Order identifiers, processed in the supplied order
        work: Callable returning an ItemResult for one target
        max_workers: Concurrency limit; 1 runs inline in the calling thread
        cancel_event: Set to stop starting new orders

    Returns:
        Tuple of (item results in input order, cancelled flag). Orders
        skipped after cancellation have no result.

    Raises:
        Any non-business exception raised by work; remaining orders are not started
    """
    targets = list(targets)
    cancel_event = cancel_event or threading.Event()

    if max_workers <= 1:
        results = [_run_one(target, work, cancel_event) for target in targets]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(_run_in_worker, target, work, cancel_event) for target in targets]
        results = [future.result() for future in futures]

    items = [item for item in results if item is not None]
    return items, len(items) < len(targets)
