"""
Migrate legacy fulfillment state labels onto the canonical state set.
"""

from django.core.management.base import BaseCommand

from order_fulfillment.services import StateMigrationService, generate_job_id


class Command(BaseCommand):
    help = "Map legacy fulfillment state labels to canonical states; unknown labels are reported and left untouched."

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help="Report what would change without writing")

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        job_id = generate_job_id('state-migration')
        report = StateMigrationService().migrate_orders(job_id=job_id, dry_run=dry_run)

        prefix = "[dry run] " if dry_run else ""
        self.stdout.write(f"{prefix}Job {job_id}: {report.migrated} migrated, {report.unchanged} already canonical")
        for transition, count in sorted(report.breakdown.items()):
            self.stdout.write(f"  {transition}: {count}")

        if report.unmigratable:
            self.stderr.write(self.style.WARNING(
                f"{len(report.unmigratable)} orders carry unknown labels and need manual intervention:"
            ))
            for entry in report.unmigratable:
                self.stderr.write(f"  {entry['order']} ({entry['order_id']}): {entry['label']}")
        else:
            self.stdout.write(self.style.SUCCESS("No unmigratable labels found"))
