"""
Reconciliation between local fulfillment orders and the fulfillment network.

Push sends each order's desired state to the provider; poll fetches the
provider's current state. Either way the provider's answer is reconciled back
into the local order through the state machine, under the order's row lock.
Provider calls never run while a row lock is held.
"""

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..adapters.fulfillment_network_adapter import (
    LOCAL_STATUS_MAP,
    DesiredRemoteState,
    FulfillmentNetworkAdapterInterface,
    ProviderResponse,
    get_fulfillment_adapter,
    remote_reference,
)
from ..exceptions import PermanentProviderError, TransientProviderError
from ..models import FulfillmentOrder, SyncJob, SyncScope
from .batch import BatchResult, ItemResult, database_worker_limit, run_batch
from .job_identity import generate_job_id
from .sync_logger import SyncLogger
from .workflow import FulfillmentStateMachine, FulfillmentWorkflow

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Bounded retries with exponential backoff and jitter, plus a per-attempt timeout."""
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    max_backoff_seconds: float = 30.0
    jitter_factor: float = 0.5
    timeout_seconds: float = 15.0

    @classmethod
    def from_settings(cls) -> 'RetryPolicy':
        config = getattr(settings, 'FULFILLMENT_SYNC', {})
        return cls(
            max_attempts=config.get('MAX_ATTEMPTS', 3),
            backoff_seconds=config.get('RETRY_BACKOFF_SECONDS', 0.5),
            timeout_seconds=config.get('CALL_TIMEOUT_SECONDS', 15),
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after `attempt` (1-based) failed."""
        delay = min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)
        jitter = delay * self.jitter_factor * random.random()
        return delay + jitter


class ExternalSyncCoordinator:
    """Pushes desired state to and polls state from the fulfillment network."""

    SERVICE_NAME = 'ffn-sync'

    def __init__(self, adapter: Optional[FulfillmentNetworkAdapterInterface] = None,
                 state_machine: Optional[FulfillmentStateMachine] = None,
                 sync_logger: Optional[SyncLogger] = None,
                 max_workers: Optional[int] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.adapter = adapter or get_fulfillment_adapter()
        self.state_machine = state_machine or FulfillmentStateMachine()
        self.sync_logger = sync_logger or SyncLogger(self.SERVICE_NAME)
        if max_workers is None:
            max_workers = getattr(settings, 'FULFILLMENT_SYNC', {}).get('MAX_WORKERS', 4)
        self.max_workers = database_worker_limit(max_workers)
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.sleep = sleep

    # -- batch entry points ---------------------------------------------------

    def push_orders(self, order_ids: Optional[Iterable] = None, scope: str = SyncScope.MANUAL_PUSH,
                    force: bool = False, limit: Optional[int] = None,
                    cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Push the desired state of each order and reconcile the acknowledgement.

        Args:
            order_ids: Orders to sync (defaults to every non-terminal order)
            scope: SyncScope recorded on the SyncJob
            force: Include terminal orders in the default selection and always log the summary
            limit: Maximum number of orders in the default selection
            cancel_event: Set to stop starting new orders

        Returns:
            BatchResult
        """
        job_id = generate_job_id('ffn-push')

        def work(order_id):
            order = FulfillmentOrder.objects.get(id=order_id)
            state = self.state_machine.current_state(order)
            desired = DesiredRemoteState.for_order(order, state)
            response = self._call_with_retry(self.adapter.push_desired_state, desired, order.display_id)
            return self._reconcile(order_id, response, job_id, remote_changed=not response.already_in_state)

        return self._run(scope, order_ids, work, job_id, force, limit, cancel_event)

    def poll_orders(self, order_ids: Optional[Iterable] = None, scope: str = SyncScope.INCREMENTAL_SYNC,
                    force: bool = False, limit: Optional[int] = None,
                    cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """
        Fetch each order's remote state and reconcile it locally.

        A remote state behind the local one is reported as unchanged; local
        orders never move backward.
        """
        job_id = generate_job_id('ffn-poll')

        def work(order_id):
            order = FulfillmentOrder.objects.get(id=order_id)
            response = self._call_with_retry(self.adapter.fetch_remote_state, remote_reference(order),
                                             order.display_id)
            return self._reconcile(order_id, response, job_id, remote_changed=False)

        return self._run(scope, order_ids, work, job_id, force, limit, cancel_event)

    # -- internals -------------------------------------------------------------

    def _run(self, scope, order_ids, work, job_id, force, limit, cancel_event) -> BatchResult:
        if order_ids is None:
            order_ids = self._default_selection(force, limit)

        started_at = timezone.now()
        self.sync_logger.start_batch()
        items, cancelled = run_batch(order_ids, work, max_workers=self.max_workers, cancel_event=cancel_event)
        result = BatchResult.from_items(items, job_id=job_id, cancelled=cancelled)

        for change in result.state_changes:
            self.sync_logger.log_state_change(change)
        self.sync_logger.log_batch_summary(
            self.SERVICE_NAME, result, force=force or scope != SyncScope.INCREMENTAL_SYNC
        )

        SyncJob.objects.create(
            job_id=job_id,
            scope=scope,
            provider=self.adapter.name,
            total_processed=result.total_processed,
            updated=result.updated,
            unchanged=result.unchanged,
            failed=result.failed,
            failures=result.failures,
            forced=force,
            cancelled=cancelled,
            started_at=started_at,
            finished_at=timezone.now(),
        )
        return result

    @staticmethod
    def _default_selection(force: bool, limit: Optional[int]):
        queryset = FulfillmentOrder.objects.order_by('created_at')
        if not force:
            queryset = queryset.exclude(fulfillment_state__in=FulfillmentWorkflow.TERMINAL_STATES)
        ids = queryset.values_list('id', flat=True)
        if limit:
            ids = ids[:limit]
        return list(ids)

    def _call_with_retry(self, call, argument, order_ref: str) -> ProviderResponse:
        """
        Call the provider with bounded retries.

        Raises:
            PermanentProviderError: Immediately, without retrying
            TransientProviderError: Once every attempt failed
        """
        policy = self.retry_policy
        last_error = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                response = self._call_with_timeout(call, argument)
                response.raise_for_failure()
                return response
            except PermanentProviderError:
                raise
            except TransientProviderError as e:
                last_error = e
                if attempt < policy.max_attempts:
                    delay = policy.delay_for(attempt)
                    logger.info(
                        f"Provider call for order {order_ref} failed (attempt {attempt}/{policy.max_attempts}): "
                        f"{e.message}; retrying in {delay:.2f}s"
                    )
                    self.sleep(delay)

        logger.warning(f"Provider call for order {order_ref} failed after {policy.max_attempts} attempts")
        raise TransientProviderError(
            f"Provider unavailable for order {order_ref} after {policy.max_attempts} attempts: {last_error.message}",
            {'attempts': policy.max_attempts, 'last_error': last_error.details.get('code', '')},
        )

    def _call_with_timeout(self, call, argument) -> ProviderResponse:
        timeout = self.retry_policy.timeout_seconds
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(call, argument, timeout)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError:
                raise TransientProviderError(f"Provider call timed out after {timeout}s", {'code': 'TIMEOUT'})
        finally:
            # A call that timed out keeps running in the background
            executor.shutdown(wait=False)

    def _reconcile(self, order_id, response: ProviderResponse, job_id: str, remote_changed: bool) -> ItemResult:
        """Fold a successful provider response into the local order."""
        with transaction.atomic():
            order = FulfillmentOrder.objects.select_for_update().get(id=order_id)
            local_state = self.state_machine.current_state(order)
            remote_state = response.remote_state
            if response.remote_status == LOCAL_STATUS_MAP.get(local_state):
                # Provider label of the local state, e.g. NEW for PENDING
                remote_state = local_state
            new_state = local_state
            local_changed = False

            tracking = response.tracking or None
            if remote_state != local_state and remote_state in FulfillmentWorkflow.reachable_from(local_state):
                if tracking and remote_state not in FulfillmentWorkflow.SHIPPING_CAPABLE_STATES:
                    tracking = None
                self.state_machine.apply_transition(
                    order, remote_state, self.adapter.name, job_id=job_id, tracking=tracking,
                    notes=f"Reconciled from provider status {response.remote_status}",
                )
                new_state = remote_state
                local_changed = True
            elif tracking and local_state in FulfillmentWorkflow.SHIPPING_CAPABLE_STATES:
                outcome = self.state_machine.apply_tracking(order, tracking, self.adapter.name, job_id=job_id)
                local_changed = outcome.changed

            update_fields = ['last_synced_at', 'updated_at']
            order.last_synced_at = timezone.now()
            if response.outbound_id and response.outbound_id != order.external_outbound_id:
                order.external_outbound_id = response.outbound_id
                update_fields.append('external_outbound_id')
            order.save(update_fields=update_fields)

        if local_changed or remote_changed:
            return ItemResult.updated(order, local_state, new_state)
        return ItemResult.unchanged(order, local_state)
