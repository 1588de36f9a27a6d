from rest_framework import serializers

from addresses.models import AddressBook
from finance.invoicing.serializers import InvoiceSerializer
from finance.payment.serializers import ReceiptSerializer
from .models import Order, OrderItem


class AddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = AddressBook
        fields = ['id', 'address_label', 'first_name', 'last_name', 'phone', 'county', 'town',
                  'street_name', 'building_name', 'full_address']


class OrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'sku', 'title', 'variant_options', 'quantity', 'unit_price', 'line_total']


class OrderSerializer(serializers.ModelSerializer):
    """Order with its items, invoice, receipt and delivery address."""
    items = OrderItemSerializer(many=True, read_only=True)
    pricing = serializers.SerializerMethodField()
    timing = serializers.SerializerMethodField()
    payment_preference = serializers.SerializerMethodField()
    invoice = serializers.SerializerMethodField()
    receipt = ReceiptSerializer(read_only=True)
    address = AddressSerializer(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'customer', 'created_by', 'location', 'fulfillment_type',
            'items', 'pricing', 'timing', 'address', 'payment_preference', 'status',
            'payment_status', 'invoice', 'receipt', 'metadata', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_pricing(self, obj):
        return {key: str(value) for key, value in obj.fee_breakdown().items()}

    def get_timing(self, obj):
        return {'is_scheduled': obj.is_scheduled, 'scheduled_at': obj.scheduled_at}

    def get_payment_preference(self, obj):
        return {'mode': obj.payment_mode, 'method': obj.payment_method}

    def get_invoice(self, obj):
        invoice = obj.invoice_or_none
        return InvoiceSerializer(invoice).data if invoice else None


class OrderListSerializer(serializers.ModelSerializer):
    invoice_id = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'customer', 'fulfillment_type', 'location', 'total',
                  'status', 'payment_status', 'invoice_id', 'receipt', 'created_at']
        read_only_fields = fields

    def get_invoice_id(self, obj):
        invoice = obj.invoice_or_none
        return invoice.pk if invoice else None


class TimingSerializer(serializers.Serializer):
    isScheduled = serializers.BooleanField(source='is_scheduled', required=False, default=False)
    scheduledAt = serializers.DateTimeField(source='scheduled_at', required=False, allow_null=True, default=None)

    def validate(self, attrs):
        if attrs.get('is_scheduled') and not attrs.get('scheduled_at'):
            raise serializers.ValidationError({'scheduledAt': 'scheduledAt is required for scheduled orders'})
        return attrs


class PaymentPreferenceSerializer(serializers.Serializer):
    mode = serializers.ChoiceField(choices=Order.PAYMENT_MODE_CHOICES)
    method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES, required=False, allow_null=True, default=None)


class OrderCreateSerializer(serializers.Serializer):
    customerId = serializers.IntegerField(source='customer_id', required=False, allow_null=True)
    location = serializers.ChoiceField(choices=Order.LOCATION_CHOICES, required=False, default='away')
    type = serializers.ChoiceField(choices=Order.TYPE_CHOICES)
    timing = TimingSerializer(required=False)
    addressId = serializers.IntegerField(source='address_id', required=False, allow_null=True)
    paymentPreference = PaymentPreferenceSerializer(source='payment_preference')
    packagingOptionId = serializers.IntegerField(source='packaging_option_id', required=False, allow_null=True)
    couponCode = serializers.CharField(source='coupon_code', required=False, allow_blank=True, allow_null=True)
    cartId = serializers.IntegerField(source='cart_id', required=False, allow_null=True)


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
