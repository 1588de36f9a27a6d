from django.contrib import admin
from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['product', 'sku', 'title', 'quantity', 'unit_price', 'line_total']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'customer', 'fulfillment_type', 'total', 'status', 'payment_status', 'created_at']
    list_filter = ['status', 'payment_status', 'fulfillment_type', 'location']
    search_fields = ['order_number', 'customer__username', 'customer__email']
    inlines = [OrderItemInline]
