import logging
from django.db import IntegrityError, transaction

from core.events import get_event_publisher
from core.exceptions import DuplicateInvoiceError, NotFoundError
from .models import Invoice

logger = logging.getLogger(__name__)


def build_line_items(order):
    """Items subtotal first, then each non-zero fee."""
    line_items = [{'label': 'Items subtotal', 'amount': str(order.subtotal)}]
    for label, amount in (
        ('Packaging', order.packaging_fee),
        ('Scheduling', order.scheduling_fee),
        ('Delivery', order.delivery_fee),
        ('Tax', order.tax),
    ):
        if amount:
            line_items.append({'label': label, 'amount': str(amount)})
    return line_items


class InvoiceService:

    def __init__(self, event_publisher=None):
        self.events = event_publisher or get_event_publisher()

    def create_for_order(self, order):
        """
        Issue the one invoice an order may have. Raises DuplicateInvoiceError when the
        order already carries an invoice.
        """
        if Invoice.objects.filter(order=order).exists():
            raise DuplicateInvoiceError()

        try:
            with transaction.atomic():
                invoice = Invoice.objects.create(
                    order=order,
                    line_items=build_line_items(order),
                    subtotal=order.subtotal,
                    discounts=order.discounts,
                    fees=order.packaging_fee + order.scheduling_fee + order.delivery_fee,
                    tax=order.tax,
                    total=order.total,
                    balance_due=order.total,
                    payment_status=Invoice.STATUS_PENDING,
                    metadata={'coupon': (order.metadata or {}).get('coupon'),
                              'packaging': (order.metadata or {}).get('packaging')},
                )
        except IntegrityError:
            raise DuplicateInvoiceError()

        logger.info(f"Invoice {invoice.invoice_number} issued for order {order.order_number}")
        self.events.publish('invoice.created', {'invoiceId': invoice.pk, 'orderId': order.pk})
        return invoice


def get_visible_invoice(user, pk):
    """Staff see every invoice; customers only those on their own orders."""
    invoices = Invoice.objects.select_related('order')
    if not user.is_staff:
        invoices = invoices.filter(order__customer=user)
    try:
        invoice = invoices.filter(pk=pk).first()
    except (ValueError, TypeError):
        invoice = None
    if not invoice:
        raise NotFoundError('Invoice not found')
    return invoice
