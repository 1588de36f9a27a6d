from django.contrib import admin
from .models import PackagingOption

@admin.register(PackagingOption)
class PackagingOptionAdmin(admin.ModelAdmin):
    list_display = ['name', 'price', 'is_active', 'is_default']
    list_filter = ['is_active', 'is_default']
    search_fields = ['name']
