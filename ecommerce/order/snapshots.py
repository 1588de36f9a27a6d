"""Typed snapshots stored in order and invoice metadata."""
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class PackagingSnapshot:
    id: int
    name: str
    price: Decimal

    @classmethod
    def from_option(cls, option):
        return cls(id=option.pk, name=option.name, price=option.price)

    def as_dict(self):
        data = asdict(self)
        data['price'] = str(self.price)
        return data


@dataclass(frozen=True)
class CouponSnapshot:
    id: int
    code: str
    name: str
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal

    @classmethod
    def from_coupon(cls, coupon, discount_amount):
        return cls(
            id=coupon.pk,
            code=coupon.code,
            name=coupon.name,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            discount_amount=discount_amount,
        )

    def as_dict(self):
        data = asdict(self)
        data['discount_value'] = str(self.discount_value)
        data['discount_amount'] = str(self.discount_amount)
        return data


def order_metadata(packaging: Optional[PackagingSnapshot], coupon: Optional[CouponSnapshot]):
    return {
        'packaging': packaging.as_dict() if packaging else None,
        'coupon': coupon.as_dict() if coupon else None,
    }
