"""
URL routing for payments and receipts.
"""
from django.urls import path

from .views import (
    CashCollectedView,
    InvoiceMpesaStatusView,
    MpesaStatusView,
    MpesaWebhookView,
    PayInvoiceView,
    PaymentDetailView,
    PaystackWebhookView,
    ReceiptCreateView,
    ReceiptDetailView,
    ReceiptPDFView,
)

urlpatterns = [
    path('payments/pay-invoice', PayInvoiceView.as_view(), name='pay-invoice'),
    path('payments/initiate', PayInvoiceView.as_view(), name='payment-initiate'),
    path('payments/webhooks/mpesa', MpesaWebhookView.as_view(), name='mpesa-webhook'),
    path('payments/webhooks/paystack', PaystackWebhookView.as_view(), name='paystack-webhook'),
    path('payments/invoice/<int:invoice_id>/mpesa-status', InvoiceMpesaStatusView.as_view(),
         name='invoice-mpesa-status'),
    path('payments/<int:pk>', PaymentDetailView.as_view(), name='payment-detail'),
    path('payments/<int:pk>/cash', CashCollectedView.as_view(), name='payment-cash'),
    path('payments/<int:pk>/mpesa-status', MpesaStatusView.as_view(), name='mpesa-status'),

    path('receipts', ReceiptCreateView.as_view(), name='receipt-create'),
    path('receipts/<int:pk>', ReceiptDetailView.as_view(), name='receipt-detail'),
    path('receipts/<int:pk>/pdf', ReceiptPDFView.as_view(), name='receipt-pdf'),
]
