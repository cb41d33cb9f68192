"""
Custom exceptions for the Fulfillment Order lifecycle module.
"""

from typing import Dict, Any


class BusinessException(Exception):
    """Base exception for business logic errors."""

    def __init__(self, message: str, code: str = "BUSINESS_ERROR", details: Dict[str, Any] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class InvalidTransitionException(BusinessException):
    """Raised when a requested state is not reachable from the current state."""

    def __init__(self, current_state: str, requested_state: str, order_ref: str = ""):
        target = f" for order {order_ref}" if order_ref else ""
        message = f"Invalid transition{target}: cannot move from {current_state} to {requested_state}"
        super().__init__(message, "INVALID_TRANSITION", {
            "current_state": current_state,
            "requested_state": requested_state,
            "order": order_ref,
        })


class OrderOnHoldException(BusinessException):
    """Raised when a forward transition is attempted on a held order."""

    def __init__(self, order_ref: str, hold_reason: str = ""):
        message = f"Order {order_ref} is on hold ({hold_reason or 'no reason'}) and cannot progress"
        super().__init__(message, "ORDER_ON_HOLD", {
            "order": order_ref,
            "hold_reason": hold_reason,
        })


class UnmigratableStateException(BusinessException):
    """Raised when a legacy state label has no canonical counterpart."""

    def __init__(self, label: str, order_ref: str = ""):
        message = f"Unknown fulfillment state label '{label}' cannot be migrated"
        if order_ref:
            message = f"{message} (order {order_ref})"
        super().__init__(message, "UNMIGRATABLE_STATE", {
            "label": label,
            "order": order_ref,
        })


class HoldNotAllowedException(BusinessException):
    """Raised when a hold is requested for an order that can no longer progress."""

    def __init__(self, order_ref: str, current_state: str):
        message = f"Order {order_ref} in terminal state {current_state} cannot be put on hold"
        super().__init__(message, "HOLD_NOT_ALLOWED", {
            "order": order_ref,
            "current_state": current_state,
        })


class HoldNotReleasableException(BusinessException):
    """Raised when an operator tries to release a system-managed hold."""

    def __init__(self, order_ref: str, hold_reason: str):
        message = (
            f"Hold {hold_reason} on order {order_ref} is system-managed and is released "
            f"automatically once payment is confirmed"
        )
        super().__init__(message, "HOLD_NOT_RELEASABLE", {
            "order": order_ref,
            "hold_reason": hold_reason,
        })


class TrackingNotAllowedException(BusinessException):
    """Raised when tracking is set before the order reached a shipping-capable state."""

    def __init__(self, order_ref: str, current_state: str):
        message = f"Tracking cannot be set for order {order_ref} in state {current_state}"
        super().__init__(message, "TRACKING_NOT_ALLOWED", {
            "order": order_ref,
            "current_state": current_state,
        })


class InventoryUnavailableException(BusinessException):
    """Raised when stock cannot be reserved."""

    def __init__(self, sku: str, requested_qty: int, available_qty: int = 0):
        message = f"Insufficient inventory for SKU {sku}: requested {requested_qty}, available {available_qty}"
        super().__init__(message, "INVENTORY_UNAVAILABLE", {
            "sku": sku,
            "requested_quantity": requested_qty,
            "available_quantity": available_qty
        })


class ValidationException(BusinessException):
    """Raised when data validation fails."""

    def __init__(self, message: str, field_errors: Dict[str, Any] = None):
        super().__init__(message, "VALIDATION_ERROR", field_errors or {})


class ProviderException(BusinessException):
    """Base class for failures reported by the external fulfillment network."""

    def __init__(self, message: str, code: str = "PROVIDER_ERROR", details: Dict[str, Any] = None):
        super().__init__(message, code, details)


class TransientProviderError(ProviderException):
    """Network failure, timeout or throttling; safe to retry."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message, "TRANSIENT_PROVIDER_ERROR", details)


class PermanentProviderError(ProviderException):
    """The provider rejected the request; retrying will not help."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message, "PERMANENT_PROVIDER_ERROR", details)
