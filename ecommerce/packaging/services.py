"""
Packaging option management.

Keeps the default-flag rules in one place:
- setting a default unsets every other default and forces the option active
- deactivating an option clears its default flag
- deleting the default promotes the cheapest remaining active option
"""
import logging
from django.db import IntegrityError, transaction

from core.exceptions import ConflictError, NotFoundError, ValidationError
from .models import PackagingOption

logger = logging.getLogger(__name__)


class PackagingService:

    @staticmethod
    def get(option_id):
        try:
            return PackagingOption.objects.get(pk=option_id)
        except (PackagingOption.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Packaging option not found')

    @staticmethod
    def _ensure_unique_name(name, exclude_id=None):
        clash = PackagingOption.objects.filter(name__iexact=name)
        if exclude_id is not None:
            clash = clash.exclude(pk=exclude_id)
        if clash.exists():
            raise ConflictError('A packaging option with that name already exists')

    @staticmethod
    def _clear_other_defaults(keep_id=None):
        others = PackagingOption.objects.filter(is_default=True)
        if keep_id is not None:
            others = others.exclude(pk=keep_id)
        others.update(is_default=False)

    @classmethod
    @transaction.atomic
    def create(cls, name, price, is_active=True, is_default=False):
        name = name.strip()
        cls._ensure_unique_name(name)
        is_default = bool(is_default)
        if is_default:
            # the default option is always offered
            is_active = True
            cls._clear_other_defaults()
        try:
            option = PackagingOption.objects.create(
                name=name, price=price, is_active=is_active, is_default=is_default
            )
        except IntegrityError:
            raise ConflictError('A packaging option with that name already exists')
        logger.info(f"Packaging option {option.pk} '{option.name}' created")
        return option

    @classmethod
    @transaction.atomic
    def update(cls, option_id, **changes):
        option = cls.get(option_id)

        if changes.get('name') is not None:
            name = changes['name'].strip()
            cls._ensure_unique_name(name, exclude_id=option.pk)
            option.name = name
        if changes.get('price') is not None:
            option.price = changes['price']
        if changes.get('is_active') is not None:
            option.is_active = changes['is_active']
        if changes.get('is_default') is not None:
            option.is_default = changes['is_default']

        if changes.get('is_default') is True:
            cls._clear_other_defaults(keep_id=option.pk)
            option.is_active = True

        if option.is_active is False:
            option.is_default = False

        try:
            option.save()
        except IntegrityError:
            raise ConflictError('A packaging option with that name already exists')
        return option

    @classmethod
    @transaction.atomic
    def set_default(cls, option_id):
        option = cls.get(option_id)
        if not option.is_active:
            raise ValidationError('Cannot set an inactive option as default')
        cls._clear_other_defaults(keep_id=option.pk)
        option.is_default = True
        option.save(update_fields=['is_default', 'updated_at'])
        return option

    @classmethod
    @transaction.atomic
    def delete(cls, option_id):
        option = cls.get(option_id)
        was_default = option.is_default
        option.delete()

        replacement = None
        if was_default:
            replacement = PackagingOption.objects.filter(is_active=True).order_by('price', 'name').first()
            if replacement:
                replacement.is_default = True
                replacement.save(update_fields=['is_default', 'updated_at'])
                logger.info(f"Packaging option {replacement.pk} promoted to default")
        return replacement

    @staticmethod
    def active_options():
        return PackagingOption.objects.filter(is_active=True).order_by('-is_default', 'price', 'name')

    @staticmethod
    def default_option():
        return PackagingOption.objects.filter(is_active=True, is_default=True).first()

    @classmethod
    def resolve_for_order(cls, option_id=None):
        """Explicit option when it is active, otherwise the active default, otherwise None."""
        if option_id:
            try:
                option = PackagingOption.objects.filter(pk=option_id, is_active=True).first()
            except (ValueError, TypeError):
                option = None
            if option:
                return option
        return cls.default_option()
