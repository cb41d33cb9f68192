"""
Order views for the Fulfillment Order lifecycle.
"""

import logging

from django.core.exceptions import ObjectDoesNotExist
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response

from ..adapters.fulfillment_network_adapter import get_fulfillment_adapter
from ..exceptions import BusinessException
from ..models import FulfillmentOrder, SyncScope
from ..services import (
    FulfillmentStateMachine, HoldReleaseController, BulkOperationExecutor,
    ExternalSyncCoordinator, OrderService,
)
from ..serializers.order_serializers import (
    FulfillmentOrderListSerializer, FulfillmentOrderDetailSerializer, OrderIngestSerializer,
    HoldSerializer, TransitionSerializer, TrackingSerializer,
)
from ..serializers.bulk_serializers import (
    BulkHoldSerializer, BulkReleaseSerializer, BulkFulfillSerializer,
    SyncRequestSerializer, BatchResultSerializer,
)
from ..permissions import IsWarehouseStaff, CanRunBulkOperations

logger = logging.getLogger(__name__)


# HTTP status per business error code; anything else is a 400
ERROR_STATUS = {
    'INVALID_TRANSITION': status.HTTP_409_CONFLICT,
    'ORDER_ON_HOLD': status.HTTP_409_CONFLICT,
    'HOLD_NOT_ALLOWED': status.HTTP_409_CONFLICT,
    'TRACKING_NOT_ALLOWED': status.HTTP_409_CONFLICT,
    'UNMIGRATABLE_STATE': status.HTTP_409_CONFLICT,
    'HOLD_NOT_RELEASABLE': status.HTTP_403_FORBIDDEN,
    'TRANSIENT_PROVIDER_ERROR': status.HTTP_503_SERVICE_UNAVAILABLE,
    'PERMANENT_PROVIDER_ERROR': status.HTTP_502_BAD_GATEWAY,
}


def error_response(exc: BusinessException) -> Response:
    return Response({
        'success': False,
        'error': {
            'code': exc.code,
            'message': exc.message,
            'details': exc.details,
        }
    }, status=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST))


def not_found_response(pk) -> Response:
    return Response({
        'success': False,
        'error': {
            'code': 'NOT_FOUND',
            'message': f"Order {pk} not found",
        }
    }, status=status.HTTP_404_NOT_FOUND)


class FulfillmentOrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for fulfillment orders.

    Provides listing, ingestion, lifecycle actions and bulk operations.
    """

    queryset = FulfillmentOrder.objects.all()
    lookup_value_regex = '[0-9a-fA-F-]{36}'
    permission_classes = [IsWarehouseStaff]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['fulfillment_state', 'is_on_hold', 'hold_reason', 'channel']
    search_fields = ['order_number', 'external_order_id', 'tracking_number']
    ordering_fields = ['created_at', 'updated_at', 'priority_level']
    ordering = ['-created_at']

    def get_serializer_class(self):
        """Return appropriate serializer based on action."""
        if self.action == 'list':
            return FulfillmentOrderListSerializer
        return FulfillmentOrderDetailSerializer

    # Collaborators are built per request

    def get_state_machine(self):
        return FulfillmentStateMachine()

    def get_hold_controller(self):
        return HoldReleaseController(self.get_state_machine())

    def get_bulk_executor(self):
        state_machine = self.get_state_machine()
        return BulkOperationExecutor(state_machine, HoldReleaseController(state_machine))

    def get_sync_coordinator(self):
        return ExternalSyncCoordinator(adapter=get_fulfillment_adapter(), state_machine=self.get_state_machine())

    def _order_response(self, order, status_code=status.HTTP_200_OK, changed=True):
        serializer = FulfillmentOrderDetailSerializer(order)
        return Response({
            'success': True,
            'changed': changed,
            'data': serializer.data
        }, status=status_code)

    def create(self, request):
        """Ingest a sales-channel order; repeated ingestion returns the existing order."""
        serializer = OrderIngestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        try:
            order, created = OrderService.ingest_order(
                data.pop('channel'), data.pop('external_order_id'), data, request.user
            )
        except BusinessException as e:
            return error_response(e)

        return self._order_response(
            order,
            status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
            changed=created,
        )

    @action(detail=True, methods=['post'])
    def hold(self, request, pk=None):
        """Put an order on hold."""
        serializer = HoldSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            outcome = self.get_hold_controller().hold(
                pk, serializer.validated_data['reason'], request.user,
                notes=serializer.validated_data['notes'],
            )
        except ObjectDoesNotExist:
            return not_found_response(pk)
        except BusinessException as e:
            return error_response(e)

        return self._order_response(outcome.order, changed=outcome.changed)

    @action(detail=True, methods=['post'])
    def release(self, request, pk=None):
        """Release an order from hold."""
        try:
            outcome = self.get_hold_controller().release(pk, request.user)
        except ObjectDoesNotExist:
            return not_found_response(pk)
        except BusinessException as e:
            return error_response(e)

        return self._order_response(outcome.order, changed=outcome.changed)

    @action(detail=True, methods=['post'])
    def transition(self, request, pk=None):
        """Move an order to a later fulfillment state."""
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            outcome = self.get_state_machine().transition(
                pk, data['target_state'], request.user,
                tracking=TransitionSerializer.get_tracking(data),
                notes=data['notes'],
            )
        except ObjectDoesNotExist:
            return not_found_response(pk)
        except BusinessException as e:
            return error_response(e)

        return self._order_response(outcome.order)

    @action(detail=True, methods=['post'])
    def tracking(self, request, pk=None):
        """Set tracking information on a shipped order."""
        serializer = TrackingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            outcome = self.get_state_machine().update_tracking(
                pk, data['tracking_number'], data['carrier'], request.user,
                tracking_url=data['tracking_url'],
            )
        except ObjectDoesNotExist:
            return not_found_response(pk)
        except BusinessException as e:
            return error_response(e)

        return self._order_response(outcome.order, changed=outcome.changed)

    @action(detail=True, methods=['get'])
    def audit(self, request, pk=None):
        """Get the order's audit trail in chronological order."""
        order = self.get_object()
        entries = OrderService.get_order_audit(order.id)
        return Response({
            'success': True,
            'data': entries
        })

    @action(detail=True, methods=['post'], permission_classes=[CanRunBulkOperations])
    def sync(self, request, pk=None):
        """Push (or poll) this order to the fulfillment network."""
        order = self.get_object()
        serializer = SyncRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        coordinator = self.get_sync_coordinator()
        if serializer.validated_data['mode'] == SyncRequestSerializer.MODE_POLL:
            result = coordinator.poll_orders([order.id], scope=SyncScope.MANUAL_POLL,
                                          force=serializer.validated_data['force'])
        else:
            result = coordinator.push_orders([order.id], scope=SyncScope.MANUAL_PUSH,
                                          force=serializer.validated_data['force'])

        return Response({
            'success': True,
            'data': BatchResultSerializer(result).data
        })

    @action(detail=False, methods=['post'], url_path='bulk-hold', permission_classes=[CanRunBulkOperations])
    def bulk_hold(self, request):
        """Hold several orders; per-order failures are reported, never escalated."""
        serializer = BulkHoldSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self.get_bulk_executor().bulk_hold(
            data['order_ids'], data['reason'], request.user, notes=data['notes']
        )
        return Response({
            'success': True,
            'data': BatchResultSerializer(result).data
        })

    @action(detail=False, methods=['post'], url_path='bulk-release', permission_classes=[CanRunBulkOperations])
    def bulk_release(self, request):
        """Release several orders from hold."""
        serializer = BulkReleaseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.get_bulk_executor().bulk_release(serializer.validated_data['order_ids'], request.user)
        return Response({
            'success': True,
            'data': BatchResultSerializer(result).data
        })

    @action(detail=False, methods=['post'], url_path='bulk-fulfill', permission_classes=[CanRunBulkOperations])
    def bulk_fulfill(self, request):
        """Move several orders to a target state (SHIPPED by default)."""
        serializer = BulkFulfillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = self.get_bulk_executor().bulk_fulfill(
            data['order_ids'], request.user, target_state=data['target_state'], carrier=data['carrier']
        )
        return Response({
            'success': True,
            'data': BatchResultSerializer(result).data
        })

    @action(detail=False, methods=['get'], url_path='dashboard-stats')
    def dashboard_stats(self, request):
        """Get fulfillment dashboard counters."""
        return Response({
            'success': True,
            'data': OrderService.get_dashboard_stats()
        })
