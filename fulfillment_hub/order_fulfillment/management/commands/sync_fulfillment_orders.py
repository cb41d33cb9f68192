"""
Run one sync batch against the fulfillment network.
"""

from django.core.management.base import BaseCommand

from order_fulfillment.models import SyncScope
from order_fulfillment.services import ExternalSyncCoordinator


class Command(BaseCommand):
    help = "Push local fulfillment state to, or poll remote state from, the fulfillment network."

    def add_arguments(self, parser):
        parser.add_argument('--mode', choices=['push', 'poll'], default='poll')
        parser.add_argument('--force', action='store_true',
                            help="Include terminal orders and always log the batch summary")
        parser.add_argument('--limit', type=int, default=None, help="Maximum number of orders")

    def handle(self, *args, **options):
        coordinator = ExternalSyncCoordinator()

        if options['mode'] == 'push':
            result = coordinator.push_orders(scope=SyncScope.MANUAL_PUSH, force=options['force'],
                                             limit=options['limit'])
        else:
            scope = SyncScope.MANUAL_POLL if options['force'] else SyncScope.INCREMENTAL_SYNC
            result = coordinator.poll_orders(scope=scope, force=options['force'], limit=options['limit'])

        self.stdout.write(
            f"Job {result.job_id}: processed={result.total_processed} updated={result.updated} "
            f"unchanged={result.unchanged} failed={result.failed}"
        )
        for failure in result.failures:
            self.stderr.write(self.style.ERROR(f"  {failure['order_id']}: [{failure['code']}] {failure['message']}"))
