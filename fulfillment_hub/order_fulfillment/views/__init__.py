"""
Fulfillment Order lifecycle views
"""

from .order_views import FulfillmentOrderViewSet

__all__ = [
    'FulfillmentOrderViewSet',
]
