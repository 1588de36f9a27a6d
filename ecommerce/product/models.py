from django.db import models
from django.db.models import F
from django.db.models.functions import Greatest


class Products(models.Model):
    """Catalog entry. Only the parts order assembly reads live here."""
    title = models.CharField(max_length=500)
    description = models.TextField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=(('active', 'Active'), ('inactive', 'Inactive')), default='active')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'products'
        verbose_name = 'Products'
        verbose_name_plural = 'Products'
        indexes = [
            models.Index(fields=['title'], name='idx_product_title'),
        ]


class ProductSku(models.Model):
    """A sellable variant of a product with its own price and stock."""
    product = models.ForeignKey(Products, on_delete=models.CASCADE, related_name='skus')
    sku = models.CharField(max_length=100, unique=True)
    variant_options = models.JSONField(default=dict, blank=True)
    price = models.DecimalField(max_digits=14, decimal_places=2)
    stock_level = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'product_skus'
        verbose_name = 'Product SKU'
        verbose_name_plural = 'Product SKUs'

    def __str__(self):
        return f"{self.sku} (qty {self.stock_level})"

    @classmethod
    def decrement_stock(cls, sku_id, quantity):
        """Reduce stock without going below zero. Returns the number of rows updated."""
        return cls.objects.filter(pk=sku_id).update(
            stock_level=Greatest(F('stock_level') - quantity, 0)
        )
