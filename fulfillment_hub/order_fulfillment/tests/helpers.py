"""
Shared builders for fulfillment order tests.
"""

import itertools

from django.contrib.auth import get_user_model

from ..models import FulfillmentOrder, FulfillmentState, SalesChannel

_sequence = itertools.count(5000)


def create_order(state=FulfillmentState.PENDING, channel=SalesChannel.SHOPIFY, **kwargs):
    """Create an order directly, bypassing ingestion (no audit entry)."""
    number = next(_sequence)
    kwargs.setdefault('external_order_id', str(number))
    return FulfillmentOrder.objects.create(channel=channel, fulfillment_state=state, **kwargs)


def create_user(username='testuser', is_staff=False):
    return get_user_model().objects.create_user(
        username=username,
        email=f'{username}@example.com',
        password='testpass123',
        is_staff=is_staff,
    )
