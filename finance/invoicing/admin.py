from django.contrib import admin
from .models import Invoice

@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'order', 'total', 'balance_due', 'payment_status', 'created_at']
    list_filter = ['payment_status', 'created_at']
    search_fields = ['invoice_number', 'order__order_number']
    readonly_fields = ['line_items', 'created_at', 'updated_at']
