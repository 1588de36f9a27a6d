from rest_framework import serializers
from .models import Payment, Receipt


class PaymentSerializer(serializers.ModelSerializer):
    processor_refs = serializers.ReadOnlyField()

    class Meta:
        model = Payment
        fields = [
            'id', 'invoice', 'method', 'amount', 'currency', 'status',
            'processor_refs', 'mpesa_receipt_number', 'authorization_url',
            'payer_phone', 'payer_email', 'failure_reason', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ReceiptSerializer(serializers.ModelSerializer):
    class Meta:
        model = Receipt
        fields = [
            'id', 'receipt_number', 'order', 'invoice', 'payment', 'amount_paid',
            'payment_method', 'issued_at', 'pdf_url', 'metadata',
        ]
        read_only_fields = fields


class PayInvoiceSerializer(serializers.Serializer):
    invoiceId = serializers.IntegerField(source='invoice_id')
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True)
    payerPhone = serializers.CharField(source='payer_phone', required=False, allow_blank=True, allow_null=True)
    payerEmail = serializers.CharField(source='payer_email', required=False, allow_blank=True, allow_null=True)
    callbackUrl = serializers.URLField(source='callback_url', required=False, allow_blank=True, allow_null=True)


class CashCollectedSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False, allow_null=True, min_value=0)


class ReceiptCreateSerializer(serializers.Serializer):
    invoiceId = serializers.IntegerField(source='invoice_id')
