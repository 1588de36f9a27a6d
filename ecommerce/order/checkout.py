from decimal import Decimal
import logging

from django.contrib.auth import get_user_model
from django.db import transaction

from addresses.models import AddressBook
from core.events import get_event_publisher
from core.exceptions import EmptyCartError, NotFoundError, PermissionDeniedError
from core.validators import money
from ecommerce.cart.models import Cart, Coupon
from ecommerce.packaging.services import PackagingService
from finance.invoicing.services import InvoiceService
from .models import Order, OrderItem
from .snapshots import CouponSnapshot, PackagingSnapshot, order_metadata

User = get_user_model()
logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Turns a customer's active cart into an Order and its Invoice.

    Features:
    - Staff can place orders on behalf of a customer
    - Cart prices are frozen into the order (price at add-to-cart)
    - Packaging option resolution (explicit choice or store default)
    - Coupon discounts; an unusable coupon is skipped, never fatal
    - Invoice issued right after the order, cart marked converted
    """

    def __init__(self, user, event_publisher=None):
        self.user = user
        self.events = event_publisher or get_event_publisher()

    # fee hooks; scheduling, delivery and tax pricing are not configured yet
    @staticmethod
    def calculate_scheduling_fee(is_scheduled, scheduled_at=None):
        return Decimal('0.00')

    @staticmethod
    def calculate_delivery_fee(fulfillment_type, address=None):
        return Decimal('0.00')

    @staticmethod
    def calculate_tax(taxable_amount):
        return Decimal('0.00')

    def resolve_owner(self, customer_id=None):
        if not customer_id or str(customer_id) == str(self.user.pk):
            return self.user
        if not self.user.is_staff:
            raise PermissionDeniedError('Only staff can place orders for another customer')
        try:
            return User.objects.get(pk=customer_id)
        except (User.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Customer not found')

    @staticmethod
    def resolve_cart(owner, cart_id=None):
        carts = Cart.objects.filter(user=owner, status=Cart.STATUS_ACTIVE)
        try:
            cart = carts.filter(pk=cart_id).first() if cart_id else carts.order_by('-updated_at').first()
        except (ValueError, TypeError):
            cart = None
        if not cart or not cart.items.exists():
            raise EmptyCartError('Cart is empty')
        return cart

    @staticmethod
    def resolve_address(owner, fulfillment_type, address_id=None):
        if fulfillment_type != 'delivery' or not address_id:
            return None
        try:
            return AddressBook.objects.get(pk=address_id, user=owner)
        except (AddressBook.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Address not found')

    @staticmethod
    def snapshot_items(cart):
        """Cart lines as unsaved order items, titled from the product catalog."""
        items = []
        for cart_item in cart.items.select_related('product', 'sku'):
            items.append(OrderItem(
                product=cart_item.product,
                sku=cart_item.sku,
                title=cart_item.product.title if cart_item.product_id else 'Unknown product',
                variant_options=cart_item.variant_options or {},
                quantity=cart_item.quantity,
                unit_price=cart_item.selling_price,
            ))
        return items

    @staticmethod
    def apply_coupon(code, owner, subtotal):
        """
        Returns (coupon, discount). A missing or invalid coupon yields
        (None, 0) and the order goes ahead without a discount.
        """
        if not code:
            return None, Decimal('0.00')
        coupon = Coupon.objects.filter(code__iexact=str(code).strip()).first()
        if not coupon:
            logger.warning(f"Coupon {code} not found; order placed without discount")
            return None, Decimal('0.00')
        is_valid, message = coupon.is_valid(subtotal, owner)
        if not is_valid:
            logger.warning(f"Coupon {coupon.code} ignored for user {owner.pk}: {message}")
            return None, Decimal('0.00')
        return coupon, coupon.calculate_discount(subtotal)

    def create_order(self, data):
        """
        Create an order (and its invoice) from the owner's active cart.

        ``data`` is the validated checkout payload: type, location, timing,
        address_id, payment_preference, packaging_option_id, coupon_code,
        cart_id and customer_id.
        """
        owner = self.resolve_owner(data.get('customer_id'))
        cart = self.resolve_cart(owner, data.get('cart_id'))
        fulfillment_type = data['type']
        address = self.resolve_address(owner, fulfillment_type, data.get('address_id'))

        items = self.snapshot_items(cart)
        subtotal = money(sum((item.line_total for item in items), Decimal('0')))

        packaging = PackagingService.resolve_for_order(data.get('packaging_option_id'))
        packaging_fee = money(packaging.price) if packaging else Decimal('0.00')

        coupon, discounts = self.apply_coupon(data.get('coupon_code'), owner, subtotal)

        timing = data.get('timing') or {}
        is_scheduled = bool(timing.get('is_scheduled'))
        scheduled_at = timing.get('scheduled_at') if is_scheduled else None
        scheduling_fee = money(self.calculate_scheduling_fee(is_scheduled, scheduled_at))
        delivery_fee = money(self.calculate_delivery_fee(fulfillment_type, address))
        tax = money(self.calculate_tax(subtotal - discounts))
        total = subtotal - discounts + packaging_fee + scheduling_fee + delivery_fee + tax

        preference = data.get('payment_preference') or {}
        mode = preference.get('mode')

        packaging_snapshot = PackagingSnapshot.from_option(packaging) if packaging else None
        coupon_snapshot = CouponSnapshot.from_coupon(coupon, discounts) if coupon else None

        with transaction.atomic():
            order = Order.objects.create(
                customer=owner,
                created_by=self.user,
                location=data.get('location') or 'away',
                fulfillment_type=fulfillment_type,
                subtotal=subtotal,
                discounts=discounts,
                packaging_fee=packaging_fee,
                scheduling_fee=scheduling_fee,
                delivery_fee=delivery_fee,
                tax=tax,
                total=total,
                is_scheduled=is_scheduled,
                scheduled_at=scheduled_at,
                address=address,
                payment_mode=mode,
                payment_method=preference.get('method'),
                status=Order.STATUS_PLACED,
                payment_status=Order.PAYMENT_PENDING if mode == 'pay_now' else Order.PAYMENT_UNPAID,
                metadata=order_metadata(packaging_snapshot, coupon_snapshot),
            )
            for item in items:
                item.order = order
            OrderItem.objects.bulk_create(items)

        logger.info(f"Order {order.order_number} placed for user {owner.pk}: total {total}")

        try:
            InvoiceService(event_publisher=self.events).create_for_order(order)
        except Exception as e:
            # Order stands on its own; the invoice can be issued later via POST /invoices
            logger.error(f"Invoice creation failed for order {order.order_number}: {e}", exc_info=True)

        if coupon:
            try:
                coupon.increment_usage(owner, discounts)
            except Exception as e:
                logger.warning(f"Failed to record usage of coupon {coupon.code} on order {order.order_number}: {e}")

        cart.mark_converted()

        self.events.publish('order.created', {'orderId': order.pk, 'orderNumber': order.order_number})
        return order
