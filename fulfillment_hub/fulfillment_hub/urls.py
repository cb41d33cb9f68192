"""
URL configuration for fulfillment_hub project.
"""
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include
from django.views.decorators.http import require_http_methods
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView


@require_http_methods(["GET"])
def api_root(request):
    """API root view with available endpoints."""
    return JsonResponse({
        'message': 'Fulfillment Hub API',
        'version': '1.0.0',
        'endpoints': {
            'authentication': {
                'token': '/api/auth/token/',
                'token_refresh': '/api/auth/token/refresh/',
            },
            'fulfillment': {
                'orders': '/api/fulfillment/orders/',
                'bulk_hold': '/api/fulfillment/orders/bulk-hold/',
                'bulk_release': '/api/fulfillment/orders/bulk-release/',
                'bulk_fulfill': '/api/fulfillment/orders/bulk-fulfill/',
                'dashboard_stats': '/api/fulfillment/orders/dashboard-stats/',
            },
            'products': {
                'products': '/api/products/',
            },
        }
    })


urlpatterns = [
    path("admin/", admin.site.urls),

    # API endpoints
    path('api/', api_root, name='api-root'),
    path('api/auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/fulfillment/', include('order_fulfillment.urls')),
    path('api/', include('products.urls')),

    path('api/docs/', include('rest_framework.urls')),
]
