from django.contrib import admin
from .models import Payment, Receipt

@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['id', 'invoice', 'method', 'amount', 'status', 'created_at']
    list_filter = ['method', 'status', 'created_at']
    search_fields = ['daraja_checkout_request_id', 'paystack_reference', 'mpesa_receipt_number',
                     'invoice__invoice_number']
    readonly_fields = ['raw_payload', 'created_at', 'updated_at']

@admin.register(Receipt)
class ReceiptAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'order', 'invoice', 'amount_paid', 'payment_method', 'issued_at']
    list_filter = ['payment_method', 'issued_at']
    search_fields = ['receipt_number', 'order__order_number', 'invoice__invoice_number']
