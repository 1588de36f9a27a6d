from django.db import models
from django.db.models import Q
from django.db.models.functions import Lower

from core.models import BaseModel


class PackagingOption(BaseModel):
    """
    Priced packaging add-on offered at checkout.

    At most one option is the default, and the default is always active.
    """
    name = models.CharField(max_length=120)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    is_active = models.BooleanField(default=True)
    is_default = models.BooleanField(default=False)

    class Meta:
        db_table = 'packaging_options'
        verbose_name = 'Packaging Option'
        verbose_name_plural = 'Packaging Options'
        ordering = ['price', 'name']
        constraints = [
            models.UniqueConstraint(Lower('name'), name='uniq_packaging_name_ci'),
            models.UniqueConstraint(fields=['is_default'], condition=Q(is_default=True), name='uniq_default_packaging'),
        ]
        indexes = [
            models.Index(fields=['is_active', 'is_default'], name='idx_packaging_active_default'),
        ]

    def __str__(self):
        return f"{self.name} ({self.price})"

    def snapshot(self):
        return {'id': self.pk, 'name': self.name, 'price': str(self.price)}
