from decimal import Decimal
import secrets

from django.db import models
from django.utils import timezone
from django.core.validators import MinValueValidator

from core.models import BaseModel
from ecommerce.order.models import Order

non_negative = [MinValueValidator(Decimal('0'))]


class Invoice(BaseModel):
    """
    Billable snapshot of an order. ``balance_due`` equals ``total`` until the
    invoice is paid, then drops to zero.
    """
    STATUS_PENDING = 'PENDING'
    STATUS_PAID = 'PAID'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_PAID, 'Paid'),
        (STATUS_CANCELLED, 'Cancelled'),
    )

    order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name='invoice')
    invoice_number = models.CharField(max_length=50, unique=True, editable=False)
    line_items = models.JSONField(default=list, help_text="[{label, amount}]")
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, validators=non_negative)
    discounts = models.DecimalField(max_digits=14, decimal_places=2, default=0, validators=non_negative)
    fees = models.DecimalField(max_digits=14, decimal_places=2, default=0, validators=non_negative)
    tax = models.DecimalField(max_digits=14, decimal_places=2, default=0, validators=non_negative)
    total = models.DecimalField(max_digits=14, decimal_places=2, validators=non_negative)
    balance_due = models.DecimalField(max_digits=14, decimal_places=2, validators=non_negative)
    payment_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    paid_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'invoices'
        verbose_name = 'Invoice'
        verbose_name_plural = 'Invoices'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['payment_status'], name='idx_invoice_payment_status'),
        ]

    def save(self, *args, **kwargs):
        if not self.invoice_number:
            self.invoice_number = self.generate_invoice_number()
        if self.balance_due is None:
            self.balance_due = self.total
        super().save(*args, **kwargs)

    @classmethod
    def generate_invoice_number(cls):
        year = timezone.now().year
        while True:
            number = f"INV-{year}-{secrets.randbelow(10 ** 6):06d}"
            if not cls.objects.filter(invoice_number=number).exists():
                return number

    @property
    def is_paid(self):
        return self.payment_status == self.STATUS_PAID

    @property
    def amount_due(self):
        """Amount a new payment should default to."""
        return self.balance_due if self.balance_due is not None else self.total

    def __str__(self):
        return f"{self.invoice_number} ({self.payment_status})"
