"""
Fulfillment Network Adapter.

Provides the interface to the external fulfillment network (warehouse
provider) with a deterministic mock implementation. Raw provider payloads are
decoded into a ProviderResponse at this boundary; nothing past the adapter
inspects provider-specific shapes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.utils.module_loading import import_string

from ..exceptions import PermanentProviderError, TransientProviderError
from ..models import FulfillmentState, HOLD_PRIORITY, HoldReason


# Provider status labels -> canonical states
REMOTE_STATUS_MAP = {
    'NEW': FulfillmentState.PREPARATION,
    'OPEN': FulfillmentState.ACKNOWLEDGED,
    'IN_PICK': FulfillmentState.PICKPROCESS,
    'PICKED': FulfillmentState.PICKPROCESS,
    'PACKING': FulfillmentState.PICKPROCESS,
    'PACKED': FulfillmentState.LOCKED,
    'SHIPPED': FulfillmentState.SHIPPED,
    'IN_TRANSIT': FulfillmentState.IN_TRANSIT,
    'DELIVERED': FulfillmentState.DELIVERED,
    'FAILED': FulfillmentState.FAILED_DELIVERY,
    'RETURNED': FulfillmentState.RETURNED_TO_SENDER,
}

# Canonical states -> provider status labels used when pushing
LOCAL_STATUS_MAP = {
    FulfillmentState.PENDING: 'NEW',
    FulfillmentState.PREPARATION: 'NEW',
    FulfillmentState.ACKNOWLEDGED: 'OPEN',
    FulfillmentState.PICKPROCESS: 'IN_PICK',
    FulfillmentState.LOCKED: 'PACKED',
    FulfillmentState.SHIPPED: 'SHIPPED',
    FulfillmentState.IN_TRANSIT: 'IN_TRANSIT',
    FulfillmentState.DELIVERED: 'DELIVERED',
    FulfillmentState.FAILED_DELIVERY: 'FAILED',
    FulfillmentState.RETURNED_TO_SENDER: 'RETURNED',
}

TRANSIENT_HTTP_STATUSES = frozenset([408, 429, 500, 502, 503, 504])
TRANSIENT_ERROR_CODES = frozenset(['TIMEOUT', 'NETWORK', 'THROTTLED', 'UNAVAILABLE'])


class ResponseKind:
    SUCCESS = 'success'
    TRANSIENT_FAILURE = 'transient_failure'
    PERMANENT_FAILURE = 'permanent_failure'


@dataclass
class DesiredRemoteState:
    """What the provider should hold for one order."""
    external_ref: str
    order_ref: str
    status: str
    on_hold: bool = False
    priority: int = 0
    tracking: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_order(cls, order, state: str) -> 'DesiredRemoteState':
        priority = 0
        if order.is_on_hold and order.hold_reason:
            priority = HOLD_PRIORITY.get(HoldReason(order.hold_reason), 0)
        tracking = {}
        if order.tracking_number:
            tracking = {
                'tracking_number': order.tracking_number,
                'carrier': order.carrier,
                'tracking_url': order.tracking_url,
            }
        return cls(
            external_ref=remote_reference(order),
            order_ref=order.display_id,
            status=LOCAL_STATUS_MAP[state],
            on_hold=order.is_on_hold,
            priority=priority,
            tracking=tracking,
        )


@dataclass
class ProviderResponse:
    """
    Normalized provider answer.

    Exactly one of: SUCCESS (with remote_state), TRANSIENT_FAILURE or
    PERMANENT_FAILURE (with error_code/error_message).
    """
    kind: str
    remote_state: Optional[str] = None
    remote_status: str = ""
    already_in_state: bool = False
    outbound_id: str = ""
    tracking: Dict[str, str] = field(default_factory=dict)
    error_code: str = ""
    error_message: str = ""

    def raise_for_failure(self):
        """Raise the typed provider error for failure responses."""
        details = {'code': self.error_code}
        if self.kind == ResponseKind.TRANSIENT_FAILURE:
            raise TransientProviderError(self.error_message or "Transient provider failure", details)
        if self.kind == ResponseKind.PERMANENT_FAILURE:
            raise PermanentProviderError(self.error_message or "Provider rejected the request", details)


def remote_reference(order) -> str:
    """Merchant reference the provider knows the order by."""
    return f"{order.channel}:{order.external_order_id}"


def decode_provider_response(payload: Any) -> ProviderResponse:
    """
    Decode a raw provider payload.

    Expected shapes:
        {"ok": true, "status": "SHIPPED", "already_in_state": false,
         "outbound_id": "...", "tracking": {...}}
        {"ok": false, "http_status": 503, "error": {"code": "...", "message": "..."}}

    Unknown statuses (including CANCELLED) and malformed payloads decode to a
    permanent failure; they are never mapped to a guessed state.
    """
    if not isinstance(payload, dict) or 'ok' not in payload:
        return ProviderResponse(
            kind=ResponseKind.PERMANENT_FAILURE,
            error_code='MALFORMED_RESPONSE',
            error_message=f"Malformed provider response: {payload!r}",
        )

    if not payload['ok']:
        error = payload.get('error') or {}
        code = str(error.get('code', '') or '').upper()
        message = error.get('message', '') or 'Provider request failed'
        http_status = payload.get('http_status')
        if http_status in TRANSIENT_HTTP_STATUSES or code in TRANSIENT_ERROR_CODES:
            kind = ResponseKind.TRANSIENT_FAILURE
        else:
            kind = ResponseKind.PERMANENT_FAILURE
        return ProviderResponse(kind=kind, error_code=code or f"HTTP_{http_status}", error_message=message)

    status = str(payload.get('status', '') or '').upper()
    if status not in REMOTE_STATUS_MAP:
        return ProviderResponse(
            kind=ResponseKind.PERMANENT_FAILURE,
            remote_status=status,
            error_code='UNKNOWN_REMOTE_STATUS',
            error_message=f"Provider reported unsupported status '{status or None}'",
        )

    tracking = payload.get('tracking') or {}
    if not isinstance(tracking, dict):
        tracking = {}

    return ProviderResponse(
        kind=ResponseKind.SUCCESS,
        remote_state=REMOTE_STATUS_MAP[status],
        remote_status=status,
        already_in_state=bool(payload.get('already_in_state', False)),
        outbound_id=str(payload.get('outbound_id', '') or ''),
        tracking={key: str(value) for key, value in tracking.items() if value},
    )


class FulfillmentNetworkAdapterInterface(ABC):
    """
    Interface for fulfillment network integration.

    Implementations return ProviderResponse objects; they may raise
    TransientProviderError for transport failures they detect themselves.
    """

    name = 'fulfillment-network'

    @abstractmethod
    def push_desired_state(self, desired: DesiredRemoteState, timeout: float) -> ProviderResponse:
        """
        Push the desired state of one order to the provider.

        Args:
            desired: Desired remote state
            timeout: Seconds allowed for this attempt

        Returns:
            ProviderResponse; already_in_state is set when nothing had to change
        """
        pass

    @abstractmethod
    def fetch_remote_state(self, external_ref: str, timeout: float) -> ProviderResponse:
        """
        Fetch the provider's current state of one order.

        Args:
            external_ref: Merchant reference of the order
            timeout: Seconds allowed for this attempt

        Returns:
            ProviderResponse
        """
        pass


class MockFulfillmentNetworkAdapter(FulfillmentNetworkAdapterInterface):
    """
    Deterministic mock implementation for testing and development.

    Keeps remote orders in memory. Failures can be scripted per reference;
    each call consumes one scripted payload before normal behaviour resumes.
    """

    name = 'mock-ffn'

    def __init__(self):
        # external_ref -> {"status", "on_hold", "priority", "outbound_id", "tracking"}
        self.remote_orders: Dict[str, Dict[str, Any]] = {}
        self.scripted: Dict[str, List[Any]] = {}
        self.calls: List[Dict[str, Any]] = []

    def set_remote_state(self, external_ref: str, status: str, tracking: Optional[Dict[str, str]] = None,
                         outbound_id: str = ""):
        """Seed the provider side of one order."""
        record = self.remote_orders.setdefault(external_ref, self._new_record())
        record['status'] = status
        if tracking:
            record['tracking'] = dict(tracking)
        if outbound_id:
            record['outbound_id'] = outbound_id

    def script_responses(self, external_ref: str, payloads: List[Any]):
        """Queue raw payloads returned by the next calls for external_ref."""
        self.scripted.setdefault(external_ref, []).extend(payloads)

    def push_desired_state(self, desired: DesiredRemoteState, timeout: float) -> ProviderResponse:
        self.calls.append({'op': 'push', 'ref': desired.external_ref, 'status': desired.status})
        scripted = self._next_scripted(desired.external_ref)
        if scripted is not None:
            return decode_provider_response(scripted)

        record = self.remote_orders.get(desired.external_ref)
        if record is None:
            record = self.remote_orders[desired.external_ref] = self._new_record()
            record.update(status=desired.status, on_hold=desired.on_hold, priority=desired.priority,
                          tracking=dict(desired.tracking))
            return decode_provider_response(self._payload(record))

        if (record['status'] == desired.status and record['on_hold'] == desired.on_hold
                and record['priority'] == desired.priority):
            return decode_provider_response(self._payload(record, already_in_state=True))

        # The provider never moves an order backward
        if not self._is_ahead(record['status'], desired.status):
            record['status'] = desired.status
        record['on_hold'] = desired.on_hold
        record['priority'] = desired.priority
        if desired.tracking and not record['tracking']:
            record['tracking'] = dict(desired.tracking)
        return decode_provider_response(self._payload(record))

    def fetch_remote_state(self, external_ref: str, timeout: float) -> ProviderResponse:
        self.calls.append({'op': 'fetch', 'ref': external_ref})
        scripted = self._next_scripted(external_ref)
        if scripted is not None:
            return decode_provider_response(scripted)

        record = self.remote_orders.get(external_ref)
        if record is None:
            return decode_provider_response({
                'ok': False,
                'http_status': 404,
                'error': {'code': 'NOT_FOUND', 'message': f"Outbound {external_ref} not found"},
            })
        return decode_provider_response(self._payload(record))

    def _next_scripted(self, external_ref: str):
        queue = self.scripted.get(external_ref)
        if queue:
            return queue.pop(0)
        return None

    def _new_record(self) -> Dict[str, Any]:
        return {
            'status': 'NEW',
            'on_hold': False,
            'priority': 0,
            'outbound_id': f"OB-{len(self.remote_orders) + 1:06d}",
            'tracking': {},
        }

    @staticmethod
    def _payload(record: Dict[str, Any], already_in_state: bool = False) -> Dict[str, Any]:
        return {
            'ok': True,
            'status': record['status'],
            'already_in_state': already_in_state,
            'outbound_id': record['outbound_id'],
            'tracking': dict(record['tracking']),
        }

    @staticmethod
    def _is_ahead(remote_status: str, desired_status: str) -> bool:
        from ..services.workflow import FulfillmentWorkflow

        remote = REMOTE_STATUS_MAP.get(remote_status)
        desired = REMOTE_STATUS_MAP.get(desired_status)
        if remote is None or desired is None:
            return False
        return remote != desired and FulfillmentWorkflow.is_at_or_beyond(remote, desired)


def get_fulfillment_adapter() -> FulfillmentNetworkAdapterInterface:
    """Build a new adapter instance from FULFILLMENT_SYNC['ADAPTER']."""
    path = getattr(settings, 'FULFILLMENT_SYNC', {}).get(
        'ADAPTER',
        'order_fulfillment.adapters.fulfillment_network_adapter.MockFulfillmentNetworkAdapter',
    )
    return import_string(path)()
