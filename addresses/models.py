from django.db import models
from django.contrib.auth import get_user_model

User = get_user_model()


class AddressBook(models.Model):
    """Customer delivery addresses referenced by delivery orders."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='addresses')
    address_label = models.CharField(max_length=255, default='My Address')
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default='')
    phone = models.CharField(max_length=15)
    county = models.CharField(max_length=100)
    town = models.CharField(max_length=100, blank=True, default='')
    street_name = models.CharField(max_length=255)
    building_name = models.CharField(max_length=255, blank=True, null=True)
    is_default_shipping = models.BooleanField(default=False, verbose_name="Default Shipping Address")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs):
        # Ensure only one default shipping address per user
        if self.is_default_shipping:
            AddressBook.objects.filter(user=self.user, is_default_shipping=True).exclude(pk=self.pk).update(is_default_shipping=False)
        super().save(*args, **kwargs)

    class Meta:
        db_table = "address_book"
        verbose_name = "Address"
        verbose_name_plural = "Address Book"
        indexes = [
            models.Index(fields=['user'], name='idx_address_user'),
        ]

    def __str__(self):
        return f"{self.address_label} - {self.street_name}, {self.county}"

    @property
    def full_address(self):
        parts = [self.building_name, self.street_name, self.town, f"{self.county} County" if self.county else None]
        return ", ".join(p for p in parts if p)

    @property
    def contact_name(self):
        return f"{self.first_name} {self.last_name}".strip()
