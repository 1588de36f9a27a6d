from django.db import models
from django.utils import timezone
from django.contrib.auth import get_user_model

from ecommerce.product.models import Products, ProductSku

User = get_user_model()


class Cart(models.Model):
    """A customer's shopping cart. Exactly one should be active per owner at a time."""
    STATUS_ACTIVE = 'active'
    STATUS_CONVERTED = 'converted'
    STATUS_ABANDONED = 'abandoned'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_CONVERTED, 'Converted'),
        (STATUS_ABANDONED, 'Abandoned'),
    )

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='carts')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cart {self.pk} for {self.user} ({self.status})"

    def save(self, *args, **kwargs):
        # Set expiration to 30 days from now if not set
        if not self.expires_at:
            self.expires_at = timezone.now() + timezone.timedelta(days=30)
        super().save(*args, **kwargs)

    def get_total_items(self):
        return sum(item.quantity for item in self.items.all())

    def get_subtotal(self):
        return sum((item.get_subtotal() for item in self.items.all()), 0)

    def mark_converted(self):
        self.status = self.STATUS_CONVERTED
        self.save(update_fields=['status', 'updated_at'])

    class Meta:
        db_table = 'carts'
        verbose_name = 'Cart'
        verbose_name_plural = 'Carts'
        indexes = [
            models.Index(fields=['user', 'status'], name='idx_cart_user_status'),
        ]


class CartItem(models.Model):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Products, on_delete=models.CASCADE, related_name='cart_items')
    sku = models.ForeignKey(ProductSku, on_delete=models.CASCADE, related_name='cart_items')
    quantity = models.PositiveIntegerField(default=1)
    selling_price = models.DecimalField(max_digits=14, decimal_places=2, help_text="Price at time of adding to cart")
    variant_options = models.JSONField(default=dict, blank=True)
    added_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def get_subtotal(self):
        return self.selling_price * self.quantity

    def __str__(self):
        return f"{self.sku.sku} x {self.quantity} in cart {self.cart_id}"

    class Meta:
        db_table = 'cart_items'
        verbose_name = 'Cart Item'
        verbose_name_plural = 'Cart Items'


from .coupons import Coupon, CouponUsage  # noqa: E402,F401
