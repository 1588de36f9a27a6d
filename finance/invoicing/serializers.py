from rest_framework import serializers
from .models import Invoice


class InvoiceSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'invoice_number', 'order', 'order_number', 'line_items',
            'subtotal', 'discounts', 'fees', 'tax', 'total', 'balance_due',
            'payment_status', 'paid_at', 'metadata', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class InvoiceCreateSerializer(serializers.Serializer):
    orderId = serializers.IntegerField(source='order_id')
