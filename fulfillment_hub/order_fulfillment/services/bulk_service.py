"""
Bulk hold, release and fulfill operations.

Best-effort and independent per order: one order's failure never rolls back
or blocks another, and the batch itself always completes with per-item
detail.
"""

import logging
import threading
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction

from ..models import FulfillmentOrder, FulfillmentState
from .batch import BatchResult, ItemResult, database_worker_limit, run_batch
from .hold_service import HoldReleaseController
from .job_identity import generate_job_id
from .sync_logger import SyncLogger
from .workflow import FulfillmentStateMachine, FulfillmentWorkflow

logger = logging.getLogger(__name__)


def default_max_workers() -> int:
    return getattr(settings, 'FULFILLMENT_SYNC', {}).get('MAX_WORKERS', 4)


class BulkOperationExecutor:
    """Applies one operation kind to a list of orders."""

    SERVICE_NAME = 'bulk-operations'

    def __init__(self, state_machine: Optional[FulfillmentStateMachine] = None,
                 hold_controller: Optional[HoldReleaseController] = None,
                 sync_logger: Optional[SyncLogger] = None,
                 max_workers: Optional[int] = None):
        self.state_machine = state_machine or FulfillmentStateMachine()
        self.hold_controller = hold_controller or HoldReleaseController(self.state_machine)
        self.sync_logger = sync_logger or SyncLogger(self.SERVICE_NAME)
        if max_workers is None:
            max_workers = default_max_workers()
        self.max_workers = database_worker_limit(max_workers)

    def bulk_hold(self, order_ids: Iterable, reason: str, actor, notes: str = "",
                  cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Hold every order in order_ids.

        Orders already held are reported as unchanged.
        """
        job_id = generate_job_id('bulk-hold')

        def work(order_id):
            outcome = self.hold_controller.hold(order_id, reason, actor, notes=notes, job_id=job_id)
            if not outcome.changed:
                return ItemResult.unchanged(outcome.order, outcome.old_state)
            return ItemResult.updated(outcome.order, outcome.old_state, outcome.new_state)

        return self._execute('bulk_hold', order_ids, work, job_id, cancel_event)

    def bulk_release(self, order_ids: Iterable, actor, system: bool = False,
                     cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Release every order in order_ids.

        Orders that are not held are reported as unchanged.
        """
        job_id = generate_job_id('bulk-release')

        def work(order_id):
            outcome = self.hold_controller.release(order_id, actor, system=system, job_id=job_id)
            if not outcome.changed:
                return ItemResult.unchanged(outcome.order, outcome.old_state)
            return ItemResult.updated(outcome.order, outcome.old_state, outcome.new_state)

        return self._execute('bulk_release', order_ids, work, job_id, cancel_event)

    def bulk_fulfill(self, order_ids: Iterable, actor, target_state: str = FulfillmentState.SHIPPED,
                     carrier: str = "", cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Move every order in order_ids to target_state.

        Orders already at or beyond target_state are reported as unchanged;
        held orders and illegal paths are reported as failures.

        Args:
            order_ids: FulfillmentOrder UUIDs
            actor: User or component performing the operation
            target_state: Desired FulfillmentState (default SHIPPED)
            carrier: Carrier recorded when target_state is shipping-capable
            cancel_event: Set to stop starting new orders
        """
        job_id = generate_job_id('bulk-fulfill')
        tracking = None
        if carrier and target_state in FulfillmentWorkflow.SHIPPING_CAPABLE_STATES:
            tracking = {'carrier': carrier}

        def work(order_id):
            with transaction.atomic():
                order = FulfillmentOrder.objects.select_for_update().get(id=order_id)
                current = self.state_machine.current_state(order)
                if FulfillmentWorkflow.is_at_or_beyond(current, target_state):
                    return ItemResult.unchanged(order, current)
                outcome = self.state_machine.apply_transition(
                    order, target_state, actor, job_id=job_id, tracking=tracking,
                    notes="Bulk fulfillment",
                )
            return ItemResult.updated(outcome.order, outcome.old_state, outcome.new_state)

        return self._execute('bulk_fulfill', order_ids, work, job_id, cancel_event)

    def _execute(self, operation: str, order_ids: Iterable, work, job_id: str,
                 cancel_event: Optional[threading.Event]) -> BatchResult:
        self.sync_logger.start_batch()
        items, cancelled = run_batch(order_ids, work, max_workers=self.max_workers, cancel_event=cancel_event)
        result = BatchResult.from_items(items, job_id=job_id, cancelled=cancelled)

        for change in result.state_changes:
            self.sync_logger.log_state_change(change)

        # Operator-initiated, always confirmed in the log
        self.sync_logger.log_batch_summary(f"{self.SERVICE_NAME}:{operation}", result, force=True)
        if cancelled:
            logger.warning(f"{operation} {job_id} cancelled after {result.total_processed} orders")
        return result
