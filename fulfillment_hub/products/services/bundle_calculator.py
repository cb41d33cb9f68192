"""
Bundle availability.

The number of bundles that can be assembled is bounded by the scarcest
component. It is always computed from current stock and never stored.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from order_fulfillment.exceptions import ValidationException

logger = logging.getLogger(__name__)


@dataclass
class BundleComponent:
    """A component requirement: `quantity` units per bundle, `available` in stock."""
    sku: str
    quantity: Any
    available: Any


ComponentLike = Union[BundleComponent, Mapping[str, Any]]

REQUIRED_FIELDS = ("quantity", "available")


def _read_fields(component: ComponentLike):
    if isinstance(component, BundleComponent):
        return component.quantity, component.available

    if not isinstance(component, Mapping):
        raise ValidationException(
            f"Bundle component must be a mapping, got {type(component).__name__}",
            {"component": repr(component)},
        )

    missing = [field for field in REQUIRED_FIELDS if field not in component]
    if missing:
        raise ValidationException(
            f"Bundle component is missing {', '.join(missing)}",
            {"missing": missing, "sku": component.get("sku", "")},
        )
    return component["quantity"], component["available"]


def _to_decimal(value) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def _candidate(quantity, available) -> int:
    """Bundles a single component allows; malformed values allow none."""
    quantity = _to_decimal(quantity)
    available = _to_decimal(available)
    if quantity is None or available is None or not quantity.is_finite() or not available.is_finite():
        return 0
    if quantity <= 0 or available <= 0:
        return 0
    return int(available // quantity)


def calculate_possible_quantity(components: Iterable[ComponentLike]) -> int:
    """
    Calculate how many bundles can be assembled from component stock.

    Args:
        components: BundleComponent instances or mappings with
            "quantity" (units per bundle) and "available" (units in stock)

    Returns:
        Non-negative integer; 0 for an empty component list

    Raises:
        ValidationException: If a component lacks "quantity" or "available"
    """
    candidates = []
    for component in components:
        quantity, available = _read_fields(component)
        candidates.append(_candidate(quantity, available))

    if not candidates:
        return 0
    return min(candidates)


def components_for(product) -> List[BundleComponent]:
    """Read a bundle's components with their current stock."""
    return [
        BundleComponent(sku=item.component.sku, quantity=item.quantity, available=item.component.available)
        for item in product.bundle_items.all()
    ]


def enrich_product_with_possible_quantity(product) -> Dict[str, Any]:
    """
    Build an availability view of a product.

    Returns:
        {"sku", "is_bundle", "available", "possible_quantity", "components"};
        possible_quantity is None for non-bundles
    """
    if not product.is_bundle:
        return {
            "sku": product.sku,
            "is_bundle": False,
            "available": product.available,
            "possible_quantity": None,
            "components": [],
        }

    components = components_for(product)
    possible_quantity = calculate_possible_quantity(components)
    logger.debug(f"Bundle {product.sku} can be assembled {possible_quantity} times")

    return {
        "sku": product.sku,
        "is_bundle": True,
        "available": possible_quantity,
        "possible_quantity": possible_quantity,
        "components": [
            {"sku": c.sku, "quantity": c.quantity, "available": c.available}
            for c in components
        ],
    }
