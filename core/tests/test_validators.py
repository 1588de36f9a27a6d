from decimal import Decimal

from django.test import SimpleTestCase

from core.exceptions import ValidationError
from core.validators import money, normalize_mpesa_phone


class NormalizeMpesaPhoneTests(SimpleTestCase):

    def test_local_number_gets_country_code(self):
        self.assertEqual(normalize_mpesa_phone('0712345678'), '254712345678')

    def test_plus_prefix_is_stripped(self):
        self.assertEqual(normalize_mpesa_phone('+254712345678'), '254712345678')

    def test_spaces_and_dashes_are_ignored(self):
        self.assertEqual(normalize_mpesa_phone('0722 000-000'), '254722000000')

    def test_safaricom_01_prefix(self):
        self.assertEqual(normalize_mpesa_phone('0110123456'), '254110123456')

    def test_number_without_prefix_is_rejected(self):
        with self.assertRaises(ValidationError):
            normalize_mpesa_phone('712345678')

    def test_too_long_number_is_rejected(self):
        with self.assertRaises(ValidationError):
            normalize_mpesa_phone('2547123456789')

    def test_empty_value_is_rejected(self):
        with self.assertRaises(ValidationError):
            normalize_mpesa_phone(None)


class MoneyTests(SimpleTestCase):

    def test_rounds_half_up_to_cents(self):
        self.assertEqual(money('10.005'), Decimal('10.01'))
        self.assertEqual(money(Decimal('3')), Decimal('3.00'))
