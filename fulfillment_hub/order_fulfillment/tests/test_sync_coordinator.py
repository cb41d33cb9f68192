"""
Tests for reconciliation with the fulfillment network.
"""

import threading
import time
from django.test import SimpleTestCase, TestCase

from ..adapters.fulfillment_network_adapter import (
    MockFulfillmentNetworkAdapter,
    ResponseKind,
    decode_provider_response,
    remote_reference,
)
from ..models import FulfillmentState, HoldReason, AuditAction, SyncJob, SyncScope
from ..services import ExternalSyncCoordinator, HoldReleaseController, RetryPolicy
from .helpers import create_order, create_user

UNAVAILABLE = {'ok': False, 'http_status': 503, 'error': {'code': 'UNAVAILABLE', 'message': 'Try again later'}}


class SlowAdapter(MockFulfillmentNetworkAdapter):
    """Mock adapter whose calls outlive the per-attempt timeout."""

    def fetch_remote_state(self, external_ref, timeout):
        time.sleep(0.5)
        return super().fetch_remote_state(external_ref, timeout)


class DecodeProviderResponseTest(SimpleTestCase):
    """Test decoding of raw provider payloads."""

    def test_success(self):
        response = decode_provider_response({
            'ok': True, 'status': 'shipped', 'outbound_id': 'OB-1',
            'tracking': {'tracking_number': 123, 'carrier': 'DHL', 'tracking_url': None},
        })

        self.assertEqual(response.kind, ResponseKind.SUCCESS)
        self.assertEqual(response.remote_state, FulfillmentState.SHIPPED)
        self.assertEqual(response.remote_status, 'SHIPPED')
        self.assertEqual(response.tracking, {'tracking_number': '123', 'carrier': 'DHL'})

    def test_cancelled_is_a_permanent_failure(self):
        response = decode_provider_response({'ok': True, 'status': 'CANCELLED'})

        self.assertEqual(response.kind, ResponseKind.PERMANENT_FAILURE)
        self.assertEqual(response.error_code, 'UNKNOWN_REMOTE_STATUS')
        self.assertIsNone(response.remote_state)

    def test_malformed_payload(self):
        for payload in (None, 'SHIPPED', [], {'status': 'SHIPPED'}):
            response = decode_provider_response(payload)
            self.assertEqual(response.kind, ResponseKind.PERMANENT_FAILURE)
            self.assertEqual(response.error_code, 'MALFORMED_RESPONSE')

    def test_failure_classification(self):
        self.assertEqual(decode_provider_response(UNAVAILABLE).kind, ResponseKind.TRANSIENT_FAILURE)
        self.assertEqual(
            decode_provider_response({'ok': False, 'http_status': 429}).kind, ResponseKind.TRANSIENT_FAILURE
        )
        rejected = decode_provider_response(
            {'ok': False, 'http_status': 400, 'error': {'code': 'invalid_address', 'message': 'Bad zip'}}
        )
        self.assertEqual(rejected.kind, ResponseKind.PERMANENT_FAILURE)
        self.assertEqual(rejected.error_code, 'INVALID_ADDRESS')


class RetryPolicyTest(SimpleTestCase):

    def test_backoff_grows_and_is_capped(self):
        policy = RetryPolicy(backoff_seconds=1, max_backoff_seconds=5, jitter_factor=0)

        self.assertEqual([policy.delay_for(n) for n in (1, 2, 3, 4)], [1, 2, 4, 5])

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(backoff_seconds=2, jitter_factor=0.5)

        for _ in range(20):
            self.assertTrue(2 <= policy.delay_for(1) <= 3)


class ExternalSyncCoordinatorTest(TestCase):
    """Test push/poll reconciliation against the mock adapter."""

    def setUp(self):
        """Set up test data."""
        self.adapter = MockFulfillmentNetworkAdapter()
        self.sleeps = []
        self.coordinator = self._coordinator(self.adapter)

    def _coordinator(self, adapter, **policy):
        policy.setdefault('max_attempts', 3)
        policy.setdefault('backoff_seconds', 0)
        policy.setdefault('timeout_seconds', 5)
        return ExternalSyncCoordinator(
            adapter=adapter,
            max_workers=1,
            retry_policy=RetryPolicy(**policy),
            sleep=self.sleeps.append,
        )

    def test_push_new_order(self):
        order = create_order(FulfillmentState.PREPARATION)

        result = self.coordinator.push_orders([order.id])

        self.assertEqual((result.updated, result.unchanged, result.failed), (1, 0, 0))
        order.refresh_from_db()
        self.assertEqual(order.external_outbound_id, 'OB-000001')
        self.assertIsNotNone(order.last_synced_at)
        self.assertEqual(order.fulfillment_state, FulfillmentState.PREPARATION)
        self.assertEqual(self.adapter.remote_orders[remote_reference(order)]['status'], 'NEW')

        job = SyncJob.objects.get(job_id=result.job_id)
        self.assertEqual(job.scope, SyncScope.MANUAL_PUSH)
        self.assertEqual(job.provider, 'mock-ffn')
        self.assertEqual(job.updated, 1)
        self.assertTrue(result.job_id.startswith('ffn-push-'))

    def test_repeated_push_is_unchanged(self):
        order = create_order(FulfillmentState.PENDING)

        self.coordinator.push_orders([order.id])
        result = self.coordinator.push_orders([order.id])

        self.assertEqual((result.updated, result.unchanged), (0, 1))
        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.PENDING)
        self.assertEqual(order.audit_trail.count(), 0)

    def test_push_sends_hold_and_priority(self):
        order = create_order(FulfillmentState.PICKPROCESS)
        HoldReleaseController().hold(order.id, HoldReason.INCORRECT_ADDRESS, 'ops')

        result = self.coordinator.push_orders([order.id])

        self.assertEqual(result.updated, 1)
        record = self.adapter.remote_orders[remote_reference(order)]
        self.assertTrue(record['on_hold'])
        self.assertEqual(record['priority'], -3)

    def test_push_does_not_regress_remote(self):
        """Test that a remote ahead of local pulls the local order forward."""
        order = create_order(FulfillmentState.LOCKED)
        self.adapter.set_remote_state(remote_reference(order), 'SHIPPED', tracking={'tracking_number': 'T1'})

        result = self.coordinator.push_orders([order.id])

        self.assertEqual(result.updated, 1)
        self.assertEqual(self.adapter.remote_orders[remote_reference(order)]['status'], 'SHIPPED')
        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.SHIPPED)
        self.assertEqual(order.tracking_number, 'T1')

    def test_poll_moves_local_forward(self):
        order = create_order(FulfillmentState.LOCKED)
        self.adapter.set_remote_state(
            remote_reference(order), 'SHIPPED', tracking={'tracking_number': '1Z999', 'carrier': 'UPS'},
            outbound_id='OB-777',
        )

        with self.assertLogs('order_fulfillment.services.sync_logger', level='INFO') as logs:
            result = self.coordinator.poll_orders([order.id], scope=SyncScope.MANUAL_POLL)

        self.assertEqual(result.updated, 1)
        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.SHIPPED)
        self.assertEqual((order.tracking_number, order.carrier), ('1Z999', 'UPS'))
        self.assertEqual(order.external_outbound_id, 'OB-777')

        entry = order.audit_trail.get(action=AuditAction.STATE_CHANGED)
        self.assertEqual(entry.actor, 'mock-ffn')
        self.assertEqual(entry.job_id, result.job_id)
        self.assertTrue(any('LOCKED → SHIPPED' in line for line in logs.output))

    def test_poll_remote_behind_local_is_unchanged(self):
        order = create_order(FulfillmentState.SHIPPED)
        self.adapter.set_remote_state(remote_reference(order), 'PACKED')

        result = self.coordinator.poll_orders([order.id])

        self.assertEqual((result.updated, result.unchanged), (0, 1))
        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.SHIPPED)
        self.assertIsNotNone(order.last_synced_at)

    def test_poll_adds_tracking_to_shipped_order(self):
        order = create_order(FulfillmentState.SHIPPED)
        self.adapter.set_remote_state(remote_reference(order), 'SHIPPED', tracking={'tracking_number': 'JJD1'})

        result = self.coordinator.poll_orders([order.id])

        self.assertEqual(result.updated, 1)
        self.assertEqual(order.audit_trail.get().action, AuditAction.TRACKING_UPDATED)

    def test_transient_failures_are_retried(self):
        order = create_order(FulfillmentState.PICKPROCESS)
        ref = remote_reference(order)
        self.adapter.set_remote_state(ref, 'PACKED')
        self.adapter.script_responses(ref, [UNAVAILABLE, UNAVAILABLE])

        result = self.coordinator.poll_orders([order.id])

        self.assertEqual(result.updated, 1)
        self.assertEqual(len(self.adapter.calls), 3)
        self.assertEqual(self.sleeps, [0, 0])
        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.LOCKED)

    def test_exhausted_retries_fail_the_item(self):
        order = create_order(FulfillmentState.PICKPROCESS)
        self.adapter.script_responses(remote_reference(order), [UNAVAILABLE] * 3)

        result = self.coordinator.poll_orders([order.id])

        self.assertEqual(result.failed, 1)
        self.assertEqual(result.failures[0]['code'], 'TRANSIENT_PROVIDER_ERROR')
        self.assertIn('after 3 attempts', result.failures[0]['message'])
        self.assertEqual(len(self.adapter.calls), 3)
        order.refresh_from_db()
        self.assertIsNone(order.last_synced_at)

    def test_permanent_failure_is_not_retried(self):
        order = create_order(FulfillmentState.PICKPROCESS)
        self.adapter.script_responses(remote_reference(order), [
            {'ok': False, 'http_status': 400, 'error': {'code': 'INVALID_ADDRESS', 'message': 'Bad zip'}}
        ])

        result = self.coordinator.push_orders([order.id])

        self.assertEqual(result.failures[0]['code'], 'PERMANENT_PROVIDER_ERROR')
        self.assertEqual(len(self.adapter.calls), 1)
        self.assertEqual(self.sleeps, [])

    def test_unknown_remote_status_leaves_order_untouched(self):
        order = create_order(FulfillmentState.LOCKED)
        self.adapter.set_remote_state(remote_reference(order), 'CANCELLED')

        result = self.coordinator.poll_orders([order.id])

        self.assertEqual(result.failures[0]['code'], 'PERMANENT_PROVIDER_ERROR')
        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.LOCKED)
        self.assertEqual(order.audit_trail.count(), 0)

    def test_missing_remote_order_is_a_failure(self):
        order = create_order(FulfillmentState.LOCKED)

        result = self.coordinator.poll_orders([order.id])

        self.assertEqual(result.failed, 1)
        self.assertEqual(len(self.adapter.calls), 1)

    def test_held_order_is_not_moved_by_remote(self):
        order = create_order(FulfillmentState.LOCKED)
        HoldReleaseController().hold(order.id, HoldReason.HIGH_RISK_OF_FRAUD, 'ops')
        self.adapter.set_remote_state(remote_reference(order), 'SHIPPED')

        result = self.coordinator.poll_orders([order.id])

        self.assertEqual(result.failures[0]['code'], 'ORDER_ON_HOLD')
        order.refresh_from_db()
        self.assertEqual(order.fulfillment_state, FulfillmentState.LOCKED)
        self.assertIsNone(order.last_synced_at)

    def test_call_timeout_is_transient(self):
        order = create_order(FulfillmentState.LOCKED)
        adapter = SlowAdapter()
        adapter.set_remote_state(remote_reference(order), 'PACKED')
        coordinator = self._coordinator(adapter, max_attempts=1, timeout_seconds=0.05)

        result = coordinator.poll_orders([order.id])

        self.assertEqual(result.failures[0]['code'], 'TRANSIENT_PROVIDER_ERROR')
        self.assertIn('timed out', result.failures[0]['message'])

    def test_default_selection_skips_terminal_orders(self):
        active = create_order(FulfillmentState.PICKPROCESS)
        create_order(FulfillmentState.DELIVERED)

        result = self.coordinator.push_orders()

        self.assertEqual(result.total_processed, 1)
        self.assertEqual(result.items[0].order_id, str(active.id))

        forced = self.coordinator.push_orders(force=True)
        self.assertEqual(forced.total_processed, 2)
        self.assertTrue(SyncJob.objects.get(job_id=forced.job_id).forced)

    def test_cancelled_sync_is_recorded(self):
        orders = [create_order(FulfillmentState.PICKPROCESS) for _ in range(2)]
        cancel = threading.Event()
        cancel.set()

        result = self.coordinator.push_orders([o.id for o in orders], cancel_event=cancel)

        self.assertTrue(result.cancelled)
        self.assertEqual(self.adapter.calls, [])
        self.assertTrue(SyncJob.objects.get(job_id=result.job_id).cancelled)
