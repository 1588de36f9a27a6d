from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from rest_framework import serializers
import re

from .exceptions import ValidationError


def validate_non_negative_decimal(value, field_name: str):
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise serializers.ValidationError({field_name: "Invalid decimal value"})

    if not decimal_value.is_finite():
        raise serializers.ValidationError({field_name: "Invalid decimal value"})

    if decimal_value < 0:
        raise serializers.ValidationError({field_name: f"{field_name} cannot be negative"})

    return decimal_value


def validate_required_fields(data: dict, required: list[str]):
    missing = [f for f in required if data.get(f) in (None, "", [])]
    if missing:
        raise serializers.ValidationError({f: "This field is required." for f in missing})


_MPESA_PHONE_RE = re.compile(r"^254\d{9}$")


def normalize_mpesa_phone(value) -> str:
    """
    Normalize a Kenyan mobile number to the 254XXXXXXXXX form Daraja expects.

    Accepts local 07XXXXXXXX / 01XXXXXXXX numbers and 254 or +254 prefixed
    numbers. Anything else is rejected.
    """
    digits = re.sub(r"\D", "", str(value or ""))
    if digits.startswith("0"):
        digits = f"254{digits[1:]}"
    if not _MPESA_PHONE_RE.match(digits):
        raise ValidationError("Invalid phone number. Use 07XXXXXXXX or 2547XXXXXXXX.")
    return digits


def money(value) -> Decimal:
    """Quantize to two decimal places."""
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
