from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='FulfillmentOrder',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('channel', models.CharField(choices=[('SHOPIFY', 'Shopify'), ('WOOCOMMERCE', 'WooCommerce'), ('MANUAL', 'Manual')], default='MANUAL', help_text='Sales channel the order was ingested from', max_length=20)),
                ('external_order_id', models.CharField(help_text='Order reference assigned by the sales channel', max_length=100)),
                ('order_number', models.CharField(blank=True, help_text='Human-readable order number (e.g. #5339)', max_length=50)),
                ('fulfillment_state', models.CharField(choices=[('PENDING', 'Pending'), ('PREPARATION', 'Preparation'), ('ACKNOWLEDGED', 'Acknowledged'), ('PICKPROCESS', 'Pick Process'), ('LOCKED', 'Locked'), ('SHIPPED', 'Shipped'), ('IN_TRANSIT', 'In Transit'), ('DELIVERED', 'Delivered'), ('FAILED_DELIVERY', 'Failed Delivery'), ('RETURNED_TO_SENDER', 'Returned to Sender')], default='PENDING', help_text='Current state in the fulfillment lifecycle', max_length=30)),
                ('is_on_hold', models.BooleanField(default=False)),
                ('hold_reason', models.CharField(blank=True, choices=[('AWAITING_PAYMENT', 'Awaiting Payment'), ('HIGH_RISK_OF_FRAUD', 'High Risk of Fraud'), ('INCORRECT_ADDRESS', 'Incorrect Address'), ('INVENTORY_OUT_OF_STOCK', 'Inventory Out of Stock'), ('OTHER', 'Other')], help_text='Why the order is held', max_length=30)),
                ('hold_notes', models.TextField(blank=True)),
                ('hold_placed_at', models.DateTimeField(blank=True, null=True)),
                ('hold_placed_by', models.CharField(blank=True, max_length=150)),
                ('hold_released_at', models.DateTimeField(blank=True, null=True)),
                ('hold_released_by', models.CharField(blank=True, max_length=150)),
                ('priority_level', models.IntegerField(default=0, help_text='Priority pushed to the fulfillment network (negative while held)')),
                ('tracking_number', models.CharField(blank=True, max_length=100)),
                ('carrier', models.CharField(blank=True, max_length=100)),
                ('tracking_url', models.URLField(blank=True, max_length=500)),
                ('shipped_at', models.DateTimeField(blank=True, null=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('external_outbound_id', models.CharField(blank=True, help_text='Outbound identifier assigned by the fulfillment network', max_length=100)),
                ('last_synced_at', models.DateTimeField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict, help_text='Additional flexible metadata')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['fulfillment_state', 'is_on_hold'], name='ffo_state_hold_idx'),
                    models.Index(fields=['channel', 'external_order_id'], name='ffo_channel_ref_idx'),
                    models.Index(fields=['created_at'], name='ffo_created_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('channel', 'external_order_id'), name='unique_channel_external_order'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SyncJob',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('job_id', models.CharField(db_index=True, max_length=100)),
                ('scope', models.CharField(choices=[('incremental_sync', 'Incremental Sync'), ('manual_poll', 'Manual Poll'), ('manual_push', 'Manual Push')], max_length=30)),
                ('provider', models.CharField(blank=True, max_length=100)),
                ('total_processed', models.PositiveIntegerField(default=0)),
                ('updated', models.PositiveIntegerField(default=0)),
                ('unchanged', models.PositiveIntegerField(default=0)),
                ('failed', models.PositiveIntegerField(default=0)),
                ('failures', models.JSONField(blank=True, default=list)),
                ('forced', models.BooleanField(default=False)),
                ('cancelled', models.BooleanField(default=False)),
                ('started_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['-started_at'],
                'indexes': [
                    models.Index(fields=['scope', '-started_at'], name='syncjob_scope_started_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(choices=[('created', 'Created'), ('state_changed', 'State Changed'), ('hold_placed', 'Hold Placed'), ('hold_released', 'Hold Released'), ('tracking_updated', 'Tracking Updated'), ('state_migrated', 'State Migrated')], help_text='Action performed', max_length=30)),
                ('actor', models.CharField(help_text='Username, system component or sync job that performed the action', max_length=150)),
                ('job_id', models.CharField(blank=True, db_index=True, help_text='Sync or bulk job the action was part of', max_length=100)),
                ('old_state', models.CharField(blank=True, max_length=30)),
                ('new_state', models.CharField(blank=True, max_length=30)),
                ('field_changes', models.JSONField(blank=True, default=dict, help_text='Specific fields that were changed')),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now)),
                ('notes', models.TextField(blank=True)),
                ('metadata', models.JSONField(blank=True, default=dict, help_text='Additional audit metadata')),
                ('order', models.ForeignKey(help_text='Order this entry belongs to', on_delete=django.db.models.deletion.PROTECT, related_name='audit_trail', to='order_fulfillment.fulfillmentorder')),
                ('user', models.ForeignKey(blank=True, help_text='User who performed the action, when performed by a person', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='fulfillment_audit_logs', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['timestamp'],
                'indexes': [
                    models.Index(fields=['order', 'timestamp'], name='audit_order_ts_idx'),
                    models.Index(fields=['action', '-timestamp'], name='audit_action_ts_idx'),
                    models.Index(fields=['timestamp'], name='audit_ts_idx'),
                ],
            },
        ),
    ]
