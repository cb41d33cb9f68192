"""
Django admin configuration for the Fulfillment Order lifecycle.
"""

from django.contrib import admin
from .models import FulfillmentOrder, AuditLog, SyncJob


class AuditLogInline(admin.TabularInline):
    model = AuditLog
    extra = 0
    can_delete = False
    fields = ['timestamp', 'action', 'actor', 'old_state', 'new_state', 'job_id', 'notes']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(FulfillmentOrder)
class FulfillmentOrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'channel', 'fulfillment_state', 'is_on_hold', 'hold_reason',
                    'priority_level', 'tracking_number', 'created_at']
    list_filter = ['fulfillment_state', 'is_on_hold', 'hold_reason', 'channel', 'created_at']
    search_fields = ['order_number', 'external_order_id', 'tracking_number', 'external_outbound_id']
    # State and hold flags only change through the services, which write the audit trail
    readonly_fields = ['id', 'fulfillment_state', 'is_on_hold', 'hold_reason', 'hold_placed_at',
                       'hold_placed_by', 'hold_released_at', 'hold_released_by', 'priority_level',
                       'shipped_at', 'delivered_at', 'last_synced_at', 'created_at', 'updated_at']
    inlines = [AuditLogInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['order', 'action', 'actor', 'old_state', 'new_state', 'job_id', 'timestamp']
    list_filter = ['action', 'timestamp']
    search_fields = ['order__order_number', 'actor', 'job_id']
    readonly_fields = ['id', 'order', 'action', 'actor', 'user', 'job_id', 'old_state', 'new_state',
                       'field_changes', 'timestamp', 'notes', 'metadata']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SyncJob)
class SyncJobAdmin(admin.ModelAdmin):
    list_display = ['job_id', 'scope', 'provider', 'total_processed', 'updated', 'unchanged',
                    'failed', 'cancelled', 'started_at']
    list_filter = ['scope', 'provider', 'cancelled', 'started_at']
    search_fields = ['job_id']
    readonly_fields = ['id', 'job_id', 'scope', 'provider', 'total_processed', 'updated', 'unchanged',
                       'failed', 'failures', 'forced', 'cancelled', 'started_at', 'finished_at']
