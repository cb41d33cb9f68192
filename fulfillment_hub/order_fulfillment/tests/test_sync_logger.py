"""
Tests for change-only sync logging and job identifiers.
"""

from django.test import SimpleTestCase
from django.utils import timezone

from ..services import SyncLogger, StateChange, BatchResult, generate_job_id

LOGGER_NAME = 'order_fulfillment.services.sync_logger'


class SyncLoggerTest(SimpleTestCase):
    """Test batch summary suppression."""

    def setUp(self):
        self.sync_logger = SyncLogger('ffn-sync')
        self.sync_logger.start_batch()

    def test_quiet_batch_is_suppressed(self):
        result = BatchResult(total_processed=12, unchanged=12)

        with self.assertNoLogs(LOGGER_NAME, level='INFO'):
            logged = self.sync_logger.log_batch_summary('ffn-poll', result)

        self.assertFalse(logged)

    def test_forced_quiet_batch_logs_one_line(self):
        result = BatchResult(total_processed=12, unchanged=12)

        with self.assertLogs(LOGGER_NAME, level='INFO') as logs:
            logged = self.sync_logger.log_batch_summary('ffn-poll', result, force=True)

        self.assertTrue(logged)
        self.assertEqual(len(logs.output), 1)
        self.assertIn('service=ffn-poll processed=12 updated=0 unchanged=12 failed=0', logs.output[0])

    def test_failures_are_always_logged(self):
        result = BatchResult(total_processed=3, unchanged=2, failed=1)

        with self.assertLogs(LOGGER_NAME, level='INFO') as logs:
            self.sync_logger.log_batch_summary('ffn-poll', result)

        self.assertEqual(len(logs.output), 1)

    def test_state_change_line(self):
        change = StateChange(id='abc', display_id='#5339', old_state='LOCKED', new_state='SHIPPED')

        with self.assertLogs(LOGGER_NAME, level='INFO') as logs:
            self.sync_logger.log_state_change(change)

        self.assertIn('[ffn-sync] state_changed id=#5339 transition=LOCKED → SHIPPED offset=', logs.output[0])

    def test_has_state_changed(self):
        self.assertTrue(SyncLogger.has_state_changed('LOCKED', 'SHIPPED'))
        self.assertFalse(SyncLogger.has_state_changed('SHIPPED', 'SHIPPED'))


class JobIdentityTest(SimpleTestCase):
    """Test job identifier format."""

    def test_format(self):
        job_id = generate_job_id('ffn-poll')

        self.assertRegex(job_id, r'^ffn-poll-\d{8}-[0-9a-f]{8}$')
        self.assertEqual(job_id.split('-')[2], timezone.now().strftime('%Y%m%d'))

    def test_suffix_varies(self):
        ids = {generate_job_id('bulk-hold') for _ in range(50)}
        self.assertEqual(len(ids), 50)

    def test_prefix_required(self):
        with self.assertRaises(ValueError):
            generate_job_id('')
