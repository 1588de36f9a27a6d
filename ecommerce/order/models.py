from decimal import Decimal
import uuid

from django.db import models
from django.utils import timezone
from django.core.validators import MinValueValidator
from django.contrib.auth import get_user_model

from core.models import BaseModel
from addresses.models import AddressBook
from ecommerce.product.models import Products, ProductSku

User = get_user_model()

non_negative = [MinValueValidator(Decimal('0'))]


class Order(BaseModel):
    """
    E-commerce order placed from a cart, by the customer or by staff on their behalf.
    """
    LOCATION_CHOICES = (
        ('in_shop', 'In shop'),
        ('away', 'Away'),
    )
    TYPE_CHOICES = (
        ('pickup', 'Pickup'),
        ('delivery', 'Delivery'),
    )
    PAYMENT_MODE_CHOICES = (
        ('post_to_bill', 'Post to bill'),
        ('pay_now', 'Pay now'),
        ('cash', 'Cash'),
        ('cod', 'Cash on delivery'),
    )
    PAYMENT_METHOD_CHOICES = (
        ('mpesa_stk', 'M-Pesa STK'),
        ('paystack_card', 'Card (Paystack)'),
    )

    STATUS_PLACED = 'PLACED'
    STATUS_CONFIRMED = 'CONFIRMED'
    STATUS_CHOICES = (
        ('PLACED', 'Placed'),
        ('CONFIRMED', 'Confirmed'),
        ('PACKED', 'Packed'),
        ('SHIPPED', 'Shipped'),
        ('OUT_FOR_DELIVERY', 'Out for delivery'),
        ('DELIVERED', 'Delivered'),
        ('CANCELLED', 'Cancelled'),
        ('REFUNDED', 'Refunded'),
    )

    PAYMENT_UNPAID = 'UNPAID'
    PAYMENT_PENDING = 'PENDING'
    PAYMENT_PAID = 'PAID'
    PAYMENT_STATUS_CHOICES = (
        ('UNPAID', 'Unpaid'),
        ('PENDING', 'Pending'),
        ('PAID', 'Paid'),
        ('PARTIALLY_REFUNDED', 'Partially refunded'),
        ('REFUNDED', 'Refunded'),
    )

    order_number = models.CharField(max_length=50, unique=True, editable=False)
    customer = models.ForeignKey(User, on_delete=models.PROTECT, related_name='orders')
    created_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='created_orders')
    location = models.CharField(max_length=20, choices=LOCATION_CHOICES, default='away')
    fulfillment_type = models.CharField(max_length=20, choices=TYPE_CHOICES)

    # pricing
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, validators=non_negative)
    discounts = models.DecimalField(max_digits=14, decimal_places=2, default=0, validators=non_negative)
    packaging_fee = models.DecimalField(max_digits=14, decimal_places=2, default=0, validators=non_negative)
    scheduling_fee = models.DecimalField(max_digits=14, decimal_places=2, default=0, validators=non_negative)
    delivery_fee = models.DecimalField(max_digits=14, decimal_places=2, default=0, validators=non_negative)
    tax = models.DecimalField(max_digits=14, decimal_places=2, default=0, validators=non_negative)
    total = models.DecimalField(max_digits=14, decimal_places=2, validators=non_negative)

    # timing
    is_scheduled = models.BooleanField(default=False)
    scheduled_at = models.DateTimeField(null=True, blank=True)

    address = models.ForeignKey(AddressBook, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    payment_mode = models.CharField(max_length=20, choices=PAYMENT_MODE_CHOICES)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PLACED)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_UNPAID)
    receipt = models.OneToOneField('payment.Receipt', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    metadata = models.JSONField(default=dict, blank=True, help_text="Coupon and packaging snapshots")

    class Meta:
        db_table = 'ecommerce_orders'
        verbose_name = 'E-commerce Order'
        verbose_name_plural = 'E-commerce Orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['customer', 'created_at'], name='idx_order_customer_created'),
            models.Index(fields=['status', 'created_at'], name='idx_order_status_created'),
        ]

    def save(self, *args, **kwargs):
        if not self.order_number:
            self.order_number = self.generate_order_number()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_order_number():
        return f"ORD-{timezone.now().year}-{uuid.uuid4().hex[:8].upper()}"

    def __str__(self):
        return self.order_number

    @property
    def invoice_or_none(self):
        return getattr(self, 'invoice', None)

    def fee_breakdown(self):
        return {
            'subtotal': self.subtotal,
            'discounts': self.discounts,
            'packaging_fee': self.packaging_fee,
            'scheduling_fee': self.scheduling_fee,
            'delivery_fee': self.delivery_fee,
            'tax': self.tax,
            'total': self.total,
        }


class OrderItem(models.Model):
    """A cart line frozen into the order at the price the customer saw."""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Products, on_delete=models.SET_NULL, null=True, related_name='order_items')
    sku = models.ForeignKey(ProductSku, on_delete=models.SET_NULL, null=True, related_name='order_items')
    title = models.CharField(max_length=500)
    variant_options = models.JSONField(default=dict, blank=True)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=14, decimal_places=2, validators=non_negative)

    class Meta:
        db_table = 'ecommerce_order_items'

    @property
    def line_total(self):
        return self.unit_price * self.quantity

    def __str__(self):
        return f"{self.title} x {self.quantity}"
