"""
URL configuration for the StorefrontAPI project.

All settlement endpoints live under ``/api/``; the two processor webhooks
are public, everything else requires an authenticated user.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView


def api_root(request):
    """Root API endpoint showing available endpoints"""
    return JsonResponse({
        'message': 'Welcome to the Storefront API',
        'version': '1.0.0',
        'endpoints': {
            'docs': '/api/docs/',
            'schema': '/api/schema/',
            'admin': '/admin/',
            'orders': '/api/orders',
            'invoices': '/api/invoices',
            'payments': '/api/payments',
            'receipts': '/api/receipts',
            'packaging_options': '/api/packaging-options',
        },
    })


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema')),
    path('api/', include('ecommerce.order.urls')),
    path('api/', include('finance.invoicing.urls')),
    path('api/', include('finance.payment.urls')),
    path('api/', include('ecommerce.packaging.urls')),
]
