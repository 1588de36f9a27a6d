from django.apps import AppConfig


class PackagingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'ecommerce.packaging'
    label = 'packaging'
