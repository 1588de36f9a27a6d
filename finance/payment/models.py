from decimal import Decimal
import secrets

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.core.validators import MinValueValidator
from django.contrib.auth import get_user_model

from core.models import BaseModel
from ecommerce.order.models import Order
from finance.invoicing.models import Invoice

User = get_user_model()


def default_currency():
    return getattr(settings, 'PAYMENT_CURRENCY', 'KES')


class Payment(BaseModel):
    """
    One attempt to collect money against an invoice.

    Offline methods are recorded as SUCCESS straight away; online methods
    start INITIATED, become PENDING once the processor accepts the request
    and later settle exactly once to SUCCESS or FAILED.
    """
    METHOD_MPESA_STK = 'mpesa_stk'
    METHOD_PAYSTACK_CARD = 'paystack_card'
    METHOD_CASH = 'cash'
    METHOD_POST_TO_BILL = 'post_to_bill'
    METHOD_COD = 'cod'
    METHOD_CHOICES = (
        (METHOD_MPESA_STK, 'M-Pesa STK'),
        (METHOD_PAYSTACK_CARD, 'Card (Paystack)'),
        (METHOD_CASH, 'Cash'),
        (METHOD_POST_TO_BILL, 'Post to bill'),
        (METHOD_COD, 'Cash on delivery'),
    )
    OFFLINE_METHODS = (METHOD_CASH, METHOD_POST_TO_BILL, METHOD_COD)
    ONLINE_METHODS = (METHOD_MPESA_STK, METHOD_PAYSTACK_CARD)

    STATUS_INITIATED = 'INITIATED'
    STATUS_PENDING = 'PENDING'
    STATUS_SUCCESS = 'SUCCESS'
    STATUS_FAILED = 'FAILED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = (
        (STATUS_INITIATED, 'Initiated'),
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
    )

    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments')
    method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    amount = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    currency = models.CharField(max_length=3, default=default_currency)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)

    # processor correlation ids
    daraja_merchant_request_id = models.CharField(max_length=100, blank=True, null=True)
    daraja_checkout_request_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    mpesa_receipt_number = models.CharField(max_length=50, blank=True, null=True)
    paystack_reference = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    authorization_url = models.URLField(max_length=500, blank=True, null=True)

    payer_phone = models.CharField(max_length=15, blank=True, null=True)
    payer_email = models.EmailField(blank=True, null=True)
    failure_reason = models.CharField(max_length=255, blank=True, null=True)
    raw_payload = models.JSONField(null=True, blank=True, help_text="Last callback received, kept for audit")
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments_created')

    class Meta:
        db_table = 'payments'
        verbose_name = 'Payment'
        verbose_name_plural = 'Payments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['invoice', 'created_at'], name='idx_payment_invoice_created'),
            models.Index(fields=['status', 'method'], name='idx_payment_status_method'),
        ]

    def __str__(self):
        return f"{self.method} {self.amount} {self.currency} ({self.status})"

    @classmethod
    def initial_status_for(cls, method):
        return cls.STATUS_SUCCESS if method in cls.OFFLINE_METHODS else cls.STATUS_INITIATED

    @property
    def processor_refs(self):
        return {
            'daraja': {
                'merchant_request_id': self.daraja_merchant_request_id,
                'checkout_request_id': self.daraja_checkout_request_id,
            },
            'paystack': {
                'reference': self.paystack_reference,
            },
        }


class Receipt(BaseModel):
    """Immutable proof of a settled invoice. One per invoice."""
    METHOD_CHOICES = (
        (Payment.METHOD_MPESA_STK, 'M-Pesa STK'),
        (Payment.METHOD_PAYSTACK_CARD, 'Card (Paystack)'),
        (Payment.METHOD_CASH, 'Cash'),
    )

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='receipts')
    invoice = models.OneToOneField(Invoice, on_delete=models.PROTECT, related_name='receipt')
    payment = models.ForeignKey(Payment, on_delete=models.SET_NULL, null=True, blank=True, related_name='receipts')
    receipt_number = models.CharField(max_length=50, unique=True, editable=False)
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    payment_method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    issued_at = models.DateTimeField(default=timezone.now)
    pdf_url = models.CharField(max_length=500, blank=True, null=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'receipts'
        verbose_name = 'Receipt'
        verbose_name_plural = 'Receipts'
        ordering = ['-issued_at']

    def save(self, *args, **kwargs):
        if not self.receipt_number:
            self.receipt_number = self.generate_receipt_number()
        super().save(*args, **kwargs)

    @classmethod
    def generate_receipt_number(cls):
        year = timezone.now().year
        while True:
            number = f"RCP-{year}-{secrets.randbelow(10 ** 6):06d}"
            if not cls.objects.filter(receipt_number=number).exists():
                return number

    def __str__(self):
        return self.receipt_number
