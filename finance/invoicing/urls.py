from django.urls import path

from .views import InvoiceCreateView, InvoiceDetailView

urlpatterns = [
    path('invoices', InvoiceCreateView.as_view(), name='invoice-create'),
    path('invoices/<int:pk>', InvoiceDetailView.as_view(), name='invoice-detail'),
]
