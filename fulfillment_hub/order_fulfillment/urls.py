"""
URL configuration for the Fulfillment Order lifecycle.

Provides API endpoints for fulfillment orders, holds, transitions and bulk
operations.
"""

from rest_framework.routers import DefaultRouter

from .views import FulfillmentOrderViewSet

router = DefaultRouter()
router.register(r'orders', FulfillmentOrderViewSet, basename='fulfillment-order')

urlpatterns = router.urls
