from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from core.tests.factories import make_user
from ecommerce.cart.models import Coupon, CouponUsage


class CouponDiscountTests(TestCase):

    def _coupon(self, **overrides):
        values = {
            'code': 'save10',
            'name': 'Ten off',
            'discount_type': 'percentage',
            'discount_value': Decimal('10'),
        }
        values.update(overrides)
        return Coupon.objects.create(**values)

    def test_code_is_stored_uppercase(self):
        self.assertEqual(self._coupon().code, 'SAVE10')

    def test_percentage_is_rounded_to_cents(self):
        coupon = self._coupon(discount_value=Decimal('12.5'))
        self.assertEqual(coupon.calculate_discount(Decimal('99.99')), Decimal('12.50'))

    def test_percentage_is_capped_at_maximum(self):
        coupon = self._coupon(discount_value=Decimal('50'), maximum_discount_amount=Decimal('300'))
        self.assertEqual(coupon.calculate_discount(Decimal('2000')), Decimal('300.00'))

    def test_fixed_discount_never_exceeds_order_amount(self):
        coupon = self._coupon(discount_type='fixed', discount_value=Decimal('500'))
        self.assertEqual(coupon.calculate_discount(Decimal('2000')), Decimal('500.00'))
        self.assertEqual(coupon.calculate_discount(Decimal('350')), Decimal('350.00'))

    def test_expired_coupon_is_invalid(self):
        coupon = self._coupon(has_expiry=True, expiry_date=timezone.now() - timedelta(days=1))
        is_valid, message = coupon.is_valid(Decimal('1000'))
        self.assertFalse(is_valid)
        self.assertIn('expired', message)

    def test_minimum_order_amount(self):
        coupon = self._coupon(minimum_order_amount=Decimal('1500'))
        self.assertFalse(coupon.is_valid(Decimal('1000'))[0])
        self.assertTrue(coupon.is_valid(Decimal('1500'))[0])

    def test_usage_limit_and_first_time_only(self):
        user = make_user()
        coupon = self._coupon(has_usage_limit=True, usage_limit=2, is_first_time_only=True)

        coupon.increment_usage(user, Decimal('100'))

        self.assertEqual(coupon.used_count, 1)
        self.assertEqual(CouponUsage.objects.filter(coupon=coupon, user=user).count(), 1)
        self.assertFalse(coupon.is_valid(Decimal('1000'), user)[0])
        self.assertTrue(coupon.is_valid(Decimal('1000'), make_user('other'))[0])

        coupon.increment_usage(make_user('third'))
        self.assertFalse(coupon.is_valid(Decimal('1000'))[0])
