from decimal import Decimal
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone
from django.contrib.auth import get_user_model

from core.validators import money

User = get_user_model()


class Coupon(models.Model):
    """Coupon model for order-wide discounts during checkout"""
    DISCOUNT_TYPES = [
        ('percentage', 'Percentage'),
        ('fixed', 'Fixed Amount'),
    ]

    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPES)
    discount_value = models.DecimalField(max_digits=10, decimal_places=2)
    minimum_order_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    maximum_discount_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    has_expiry = models.BooleanField(default=False)
    expiry_date = models.DateTimeField(null=True, blank=True)
    has_usage_limit = models.BooleanField(default=False)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    is_first_time_only = models.BooleanField(default=False, help_text="Can be used only once per customer")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.code} ({self.get_discount_type_display()})"

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)

    def is_valid(self, order_amount=None, user=None):
        """Check if the coupon can be applied. Returns (is_valid, message)."""
        if not self.is_active:
            return False, "This coupon is no longer active"

        if self.has_expiry and self.expiry_date and self.expiry_date < timezone.now():
            return False, "This coupon has expired"

        if self.has_usage_limit and self.usage_limit is not None and self.used_count >= self.usage_limit:
            return False, "This coupon has reached its usage limit"

        if order_amount is not None and Decimal(str(order_amount)) < self.minimum_order_amount:
            return False, f"You need to spend at least {self.minimum_order_amount} to use this coupon"

        if user and self.is_first_time_only:
            if self.usages.filter(user=user).exists():
                return False, "You have already used this coupon"

        return True, "Coupon is valid"

    def calculate_discount(self, order_amount):
        """
        Discount for ``order_amount``: percentage or fixed, capped by the
        maximum discount and never more than the amount itself.
        """
        order_amount = Decimal(str(order_amount))
        if self.discount_type == 'percentage':
            discount = order_amount * self.discount_value / 100
        else:
            discount = self.discount_value

        if self.maximum_discount_amount is not None and discount > self.maximum_discount_amount:
            discount = self.maximum_discount_amount

        return money(min(discount, order_amount))

    @transaction.atomic
    def increment_usage(self, user, discount_amount=0):
        Coupon.objects.filter(pk=self.pk).update(used_count=F('used_count') + 1)
        CouponUsage.objects.create(coupon=self, user=user, discount_amount=discount_amount)
        self.refresh_from_db(fields=['used_count'])

    class Meta:
        db_table = 'coupons'
        verbose_name = 'Coupon'
        verbose_name_plural = 'Coupons'


class CouponUsage(models.Model):
    """Tracks usage of coupons by users"""
    coupon = models.ForeignKey(Coupon, on_delete=models.CASCADE, related_name='usages')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='coupon_usages')
    used_at = models.DateTimeField(auto_now_add=True)
    discount_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    def __str__(self):
        return f"{self.coupon.code} used by {self.user}"

    class Meta:
        db_table = 'coupon_usages'
        verbose_name = 'Coupon Usage'
        verbose_name_plural = 'Coupon Usages'
