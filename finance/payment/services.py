"""
Centralized payment orchestration for invoice settlement.

Every path that can confirm money (cash at the counter, M-Pesa callbacks,
Paystack webhooks, the STK status poller, staff cash collection) funnels
into ``apply_successful_payment`` so an invoice is settled once and gets
exactly one receipt.
"""
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import APIException

from core.events import get_event_publisher
from core.exceptions import (
    AuthError,
    InvoiceAlreadyPaidError,
    InvoiceCancelledError,
    NotFoundError,
    UpstreamProcessorError,
    ValidationError,
)
from core.validators import normalize_mpesa_phone
from ecommerce.order.models import Order
from ecommerce.product.models import ProductSku
from finance.invoicing.models import Invoice
from integrations.payments.card_payment import CardPaymentService
from integrations.payments.mpesa_payment import MpesaPaymentService
from integrations.services.config_service import IntegrationConfigService
from .models import Payment, Receipt, default_currency

logger = logging.getLogger(__name__)

MPESA_WEBHOOK_PATH = '/api/payments/webhooks/mpesa'


class PaymentOrchestrationService:
    """
    Coordinates payment records, processor adapters and the invoice/order/receipt
    state changes that follow a confirmed payment.
    """

    def __init__(self, event_publisher=None):
        self.events = event_publisher or get_event_publisher()

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------
    @staticmethod
    def get_invoice(invoice_id):
        try:
            return Invoice.objects.select_related('order').get(pk=invoice_id)
        except (Invoice.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Invoice not found')

    @staticmethod
    def get_payment(payment_id):
        try:
            return Payment.objects.select_related('invoice', 'invoice__order').get(pk=payment_id)
        except (Payment.DoesNotExist, ValueError, TypeError):
            raise NotFoundError('Payment not found')

    # ------------------------------------------------------------------
    # charging
    # ------------------------------------------------------------------
    def create_payment_record(self, invoice, method, amount, created_by=None, payer_phone=None, payer_email=None):
        payment = Payment.objects.create(
            invoice=invoice,
            method=method,
            amount=amount,
            currency=default_currency(),
            status=Payment.initial_status_for(method),
            payer_phone=payer_phone,
            payer_email=payer_email,
            created_by=created_by,
        )
        logger.info(f"Payment {payment.pk} created for invoice {invoice.invoice_number} via {method} ({payment.status})")
        return payment

    def pay_invoice(self, invoice_id, method, amount=None, payer_phone=None, payer_email=None,
                    callback_url=None, request_base_url=None, created_by=None):
        """
        Start collecting money for an invoice.

        Returns a dict describing the new payment; online methods include the
        processor details the client needs (checkout ids or a redirect URL).
        """
        if not invoice_id or not method:
            raise ValidationError('invoiceId and method are required')
        if method not in dict(Payment.METHOD_CHOICES):
            raise ValidationError(f'Unsupported payment method: {method}')

        invoice = self.get_invoice(invoice_id)
        if invoice.payment_status == Invoice.STATUS_PAID:
            raise InvoiceAlreadyPaidError()
        if invoice.payment_status == Invoice.STATUS_CANCELLED:
            raise InvoiceCancelledError()

        amount = self._resolve_amount(invoice, amount)

        if method == Payment.METHOD_MPESA_STK:
            if not payer_phone:
                raise ValidationError('payerPhone is required for mpesa_stk')
            payer_phone = normalize_mpesa_phone(payer_phone)
        elif method == Payment.METHOD_PAYSTACK_CARD:
            if not payer_email:
                raise ValidationError('payerEmail is required for paystack_card')
            try:
                validate_email(payer_email)
            except DjangoValidationError:
                raise ValidationError('payerEmail is not a valid email address')

        payment = self.create_payment_record(
            invoice, method, amount, created_by=created_by,
            payer_phone=payer_phone, payer_email=payer_email,
        )

        if method in Payment.OFFLINE_METHODS:
            result = {'paymentId': payment.pk, 'status': payment.status}
            if method == Payment.METHOD_CASH:
                receipt, _ = self.apply_successful_payment(invoice, payment, Payment.METHOD_CASH)
                result.update({'receiptId': receipt.pk, 'receiptNumber': receipt.receipt_number})
            # post_to_bill / cod stay unpaid until cash is collected
            return result

        if method == Payment.METHOD_MPESA_STK:
            return self._initiate_mpesa(invoice, payment, callback_url, request_base_url)
        return self._initiate_paystack(invoice, payment, callback_url)

    @staticmethod
    def _resolve_amount(invoice, amount):
        if amount is None or amount == '':
            amount = invoice.amount_due
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError('Invalid amount to charge')
        if not amount.is_finite() or amount <= 0:
            raise ValidationError('Invalid amount to charge')
        return amount

    @staticmethod
    def _mpesa_callback_url(callback_url, request_base_url):
        if callback_url:
            return callback_url
        configured = IntegrationConfigService.get_mpesa_config()
        if configured.get('callback_url') and IntegrationConfigService.mpesa_callback_pinned():
            return configured['callback_url']
        if request_base_url:
            return f"{request_base_url.rstrip('/')}{MPESA_WEBHOOK_PATH}"
        return configured['callback_url']

    def _initiate_mpesa(self, invoice, payment, callback_url, request_base_url):
        success, message, data = MpesaPaymentService.initiate_stk_push(
            phone=payment.payer_phone,
            amount=payment.amount,
            account_reference=invoice.invoice_number,
            callback_url=self._mpesa_callback_url(callback_url, request_base_url),
        )
        if not success:
            self.mark_payment_failed(payment, message, raw_payload=data if isinstance(data, dict) else None)
            raise UpstreamProcessorError(message or 'Failed to initiate M-Pesa payment', processor='mpesa')

        payment.daraja_merchant_request_id = data['merchant_request_id']
        payment.daraja_checkout_request_id = data['checkout_request_id']
        payment.status = Payment.STATUS_PENDING
        payment.save(update_fields=['daraja_merchant_request_id', 'daraja_checkout_request_id', 'status', 'updated_at'])
        self._publish_payment_updated(payment)

        return {
            'paymentId': payment.pk,
            'status': payment.status,
            'daraja': {
                'merchantRequestId': payment.daraja_merchant_request_id,
                'checkoutRequestId': payment.daraja_checkout_request_id,
            },
            'message': message,
        }

    def _initiate_paystack(self, invoice, payment, callback_url):
        reference = CardPaymentService.generate_reference(invoice.pk)
        success, message, data = CardPaymentService.initialize_transaction(
            email=payment.payer_email,
            amount=payment.amount,
            reference=reference,
            callback_url=callback_url,
            currency=payment.currency,
        )
        if not success:
            self.mark_payment_failed(payment, message, raw_payload=data if isinstance(data, dict) else None)
            raise UpstreamProcessorError(message or 'Failed to initialize card payment', processor='paystack')

        payment.paystack_reference = data['reference']
        payment.authorization_url = data['authorization_url']
        payment.status = Payment.STATUS_PENDING
        payment.save(update_fields=['paystack_reference', 'authorization_url', 'status', 'updated_at'])
        self._publish_payment_updated(payment)

        return {
            'paymentId': payment.pk,
            'status': payment.status,
            'authorizationUrl': payment.authorization_url,
            'reference': payment.paystack_reference,
        }

    # ------------------------------------------------------------------
    # settlement
    # ------------------------------------------------------------------
    @transaction.atomic
    def apply_successful_payment(self, invoice, payment, method=None):
        """
        Mark the payment SUCCESS, the invoice PAID, the order PAID and issue the
        invoice's receipt. Safe to call repeatedly for the same event.

        A confirmation that arrives after the invoice was cancelled is recorded
        on the payment only; the invoice stays CANCELLED and no receipt is
        issued, so staff can refund it.

        Returns (receipt, created); receipt is None for a cancelled invoice.
        """
        invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
        payment = Payment.objects.select_for_update().get(pk=payment.pk)
        existing = Receipt.objects.filter(invoice=invoice).first()

        if payment.status == Payment.STATUS_SUCCESS and existing:
            logger.info(f"Payment {payment.pk} already settled with receipt {existing.receipt_number}")
            return existing, False

        if payment.status != Payment.STATUS_SUCCESS:
            payment.status = Payment.STATUS_SUCCESS
            payment.failure_reason = None
            payment.save(update_fields=['status', 'failure_reason', 'updated_at'])

        if invoice.payment_status == Invoice.STATUS_CANCELLED:
            logger.warning(
                f"Payment {payment.pk} confirmed for cancelled invoice {invoice.invoice_number}; "
                f"invoice left cancelled, refund required"
            )
            transaction.on_commit(lambda: self._publish_payment_updated(payment))
            return None, False

        if existing:
            # A different payment already settled this invoice
            logger.warning(
                f"Invoice {invoice.invoice_number} already settled by receipt {existing.receipt_number}; "
                f"payment {payment.pk} recorded without a new receipt"
            )
            transaction.on_commit(lambda: self._publish_payment_updated(payment))
            return existing, False

        invoice.payment_status = Invoice.STATUS_PAID
        invoice.balance_due = Decimal('0')
        invoice.paid_at = timezone.now()
        invoice.save(update_fields=['payment_status', 'balance_due', 'paid_at', 'updated_at'])

        order = Order.objects.select_for_update().get(pk=invoice.order_id)
        order.payment_status = Order.PAYMENT_PAID
        if order.status == Order.STATUS_PLACED:
            order.status = Order.STATUS_CONFIRMED

        receipt = Receipt.objects.create(
            order=order,
            invoice=invoice,
            payment=payment,
            amount_paid=payment.amount,
            payment_method=self._receipt_method(method or payment.method),
            metadata={'coupon': (invoice.metadata or {}).get('coupon')},
        )
        order.receipt = receipt
        order.save(update_fields=['payment_status', 'status', 'receipt', 'updated_at'])

        self._decrement_stock(order)

        logger.info(f"Invoice {invoice.invoice_number} settled by payment {payment.pk}, receipt {receipt.receipt_number}")

        def announce():
            self._publish_payment_updated(payment)
            self.events.publish('receipt.created', {
                'receiptId': receipt.pk,
                'orderId': order.pk,
                'invoiceId': invoice.pk,
            })

        transaction.on_commit(announce)
        return receipt, True

    @staticmethod
    def _receipt_method(method):
        if method in (Payment.METHOD_MPESA_STK, Payment.METHOD_PAYSTACK_CARD):
            return method
        return Payment.METHOD_CASH

    @staticmethod
    def _decrement_stock(order):
        for item in order.items.all():
            if not item.sku_id:
                continue
            try:
                with transaction.atomic():
                    ProductSku.decrement_stock(item.sku_id, item.quantity)
            except Exception as e:
                logger.warning(f"Failed to update stock for SKU {item.sku_id} on order {order.order_number}: {e}")

    def mark_payment_failed(self, payment, reason=None, raw_payload=None):
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.status in (Payment.STATUS_SUCCESS, Payment.STATUS_FAILED):
                logger.info(f"Payment {payment.pk} already {payment.status}; failure report ignored")
                return payment
            payment.status = Payment.STATUS_FAILED
            payment.failure_reason = (reason or '')[:255] or None
            fields = ['status', 'failure_reason', 'updated_at']
            if raw_payload is not None:
                payment.raw_payload = raw_payload
                fields.append('raw_payload')
            payment.save(update_fields=fields)
            transaction.on_commit(lambda: self._publish_payment_updated(payment))
        logger.info(f"Payment {payment.pk} marked FAILED: {reason}")
        return payment

    def _publish_payment_updated(self, payment):
        self.events.publish('payment.updated', {
            'paymentId': payment.pk,
            'status': payment.status,
            'invoiceId': payment.invoice_id,
            'orderId': payment.invoice.order_id,
        })

    # ------------------------------------------------------------------
    # webhooks
    # ------------------------------------------------------------------
    def handle_mpesa_callback(self, payload):
        parsed = MpesaPaymentService.parse_callback(payload)
        if not parsed:
            raise ValidationError('Invalid M-Pesa callback payload')

        payment = Payment.objects.filter(
            daraja_checkout_request_id=parsed['checkout_request_id']
        ).select_related('invoice').first()
        if not payment:
            raise NotFoundError('Payment not found')

        payment.raw_payload = payload
        fields = ['raw_payload', 'updated_at']
        if parsed.get('mpesa_receipt'):
            payment.mpesa_receipt_number = parsed['mpesa_receipt']
            fields.append('mpesa_receipt_number')
        payment.save(update_fields=fields)

        if parsed['success']:
            receipt, created = self.apply_successful_payment(payment.invoice, payment, Payment.METHOD_MPESA_STK)
            return {'paymentId': payment.pk, 'status': Payment.STATUS_SUCCESS,
                    'receiptId': receipt.pk if receipt else None, 'duplicate': not created}

        payment = self.mark_payment_failed(payment, parsed.get('result_desc'))
        return {'paymentId': payment.pk, 'status': payment.status}

    def handle_paystack_webhook(self, payload, raw_body=None, signature=None):
        if IntegrationConfigService.get_paystack_config().get('verify_signature'):
            if not CardPaymentService.verify_signature(raw_body or b'', signature):
                raise AuthError('Invalid webhook signature')

        parsed = CardPaymentService.parse_webhook(payload)
        if not parsed:
            raise ValidationError('Invalid Paystack webhook payload')

        payment = Payment.objects.filter(
            paystack_reference=parsed['reference']
        ).select_related('invoice').first()
        if not payment:
            raise NotFoundError('Payment not found')

        payment.raw_payload = payload
        payment.save(update_fields=['raw_payload', 'updated_at'])

        if parsed['success']:
            receipt, created = self.apply_successful_payment(payment.invoice, payment, Payment.METHOD_PAYSTACK_CARD)
            return {'paymentId': payment.pk, 'status': Payment.STATUS_SUCCESS,
                    'receiptId': receipt.pk if receipt else None, 'duplicate': not created}

        payment = self.mark_payment_failed(payment, parsed.get('status') or parsed.get('event'))
        return {'paymentId': payment.pk, 'status': payment.status}

    # ------------------------------------------------------------------
    # polling
    # ------------------------------------------------------------------
    def query_mpesa_status(self, payment_id=None, invoice_id=None):
        """
        Ask Daraja about an STK push that has not produced a callback yet and
        apply the answer locally.
        """
        payment = None
        if payment_id is not None:
            try:
                payment = Payment.objects.select_related('invoice').filter(pk=payment_id).first()
            except (ValueError, TypeError):
                payment = None
        if payment is None and invoice_id is not None:
            try:
                payment = Payment.objects.select_related('invoice').filter(
                    invoice_id=invoice_id, method=Payment.METHOD_MPESA_STK
                ).order_by('-created_at', '-pk').first()
            except (ValueError, TypeError):
                payment = None
        if payment is None:
            raise NotFoundError('Payment not found')

        if payment.method != Payment.METHOD_MPESA_STK:
            raise ValidationError('Payment is not an M-Pesa STK payment')
        if not payment.daraja_checkout_request_id:
            raise ValidationError('Payment has no checkoutRequestId to query')

        success, message, data = MpesaPaymentService.query_stk_status(payment.daraja_checkout_request_id)
        if not success:
            raise UpstreamProcessorError(message or 'Failed to query M-Pesa status', processor='mpesa')

        result_code = data['result_code']
        if result_code == 0 and payment.status != Payment.STATUS_SUCCESS:
            self.apply_successful_payment(payment.invoice, payment, Payment.METHOD_MPESA_STK)
        elif result_code is not None and result_code != 0 and payment.status != Payment.STATUS_FAILED:
            self.mark_payment_failed(payment, data.get('result_desc'))

        payment.refresh_from_db(fields=['status'])
        return {
            'paymentId': payment.pk,
            'status': payment.status,
            'resultCode': result_code,
            'resultDesc': data.get('result_desc'),
        }

    def sweep_pending_mpesa_payments(self, older_than_minutes=2, limit=50):
        """Poll Daraja for STK pushes stuck in PENDING. Returns counts per outcome."""
        cutoff = timezone.now() - timedelta(minutes=older_than_minutes)
        pending = Payment.objects.filter(
            method=Payment.METHOD_MPESA_STK,
            status=Payment.STATUS_PENDING,
            daraja_checkout_request_id__isnull=False,
            created_at__lte=cutoff,
        ).order_by('created_at')[:limit]

        counts = {'checked': 0, 'succeeded': 0, 'failed': 0, 'pending': 0, 'errors': 0}
        for payment in pending:
            counts['checked'] += 1
            try:
                result = self.query_mpesa_status(payment_id=payment.pk)
            except APIException as e:
                counts['errors'] += 1
                logger.error(f"STK status sweep failed for payment {payment.pk}: {e.detail}")
                continue
            if result['status'] == Payment.STATUS_SUCCESS:
                counts['succeeded'] += 1
            elif result['status'] == Payment.STATUS_FAILED:
                counts['failed'] += 1
            else:
                counts['pending'] += 1
        return counts

    # ------------------------------------------------------------------
    # staff operations
    # ------------------------------------------------------------------
    def mark_cash_collected(self, payment_id, amount=None):
        """Record that cash was physically collected for a payment and settle its invoice."""
        payment = self.get_payment(payment_id)
        invoice = payment.invoice

        if invoice.payment_status == Invoice.STATUS_CANCELLED:
            raise InvoiceCancelledError()
        if invoice.payment_status == Invoice.STATUS_PAID:
            receipt = Receipt.objects.filter(invoice=invoice).first()
            if receipt and receipt.payment_id == payment.pk:
                return receipt
            raise InvoiceAlreadyPaidError()

        if amount is not None and amount != '':
            payment.amount = self._resolve_amount(invoice, amount)
        payment.method = Payment.METHOD_CASH
        payment.save(update_fields=['amount', 'method', 'updated_at'])

        receipt, _ = self.apply_successful_payment(invoice, payment, Payment.METHOD_CASH)
        return receipt

    def create_receipt(self, invoice_id):
        """
        Issue a receipt for an invoice that is already PAID. Returns the
        existing receipt when one was issued before. Returns (receipt, created).
        """
        if not invoice_id:
            raise ValidationError('invoiceId is required')
        invoice = self.get_invoice(invoice_id)
        if invoice.payment_status != Invoice.STATUS_PAID:
            raise ValidationError('Invoice is not paid')

        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
            existing = Receipt.objects.filter(invoice=invoice).first()
            if existing:
                return existing, False

            payment = invoice.payments.filter(status=Payment.STATUS_SUCCESS).order_by('-created_at').first()
            order = Order.objects.select_for_update().get(pk=invoice.order_id)
            receipt = Receipt.objects.create(
                order=order,
                invoice=invoice,
                payment=payment,
                amount_paid=payment.amount if payment else invoice.total,
                payment_method=self._receipt_method(payment.method if payment else None),
                metadata={'coupon': (invoice.metadata or {}).get('coupon')},
            )
            order.receipt = receipt
            order.save(update_fields=['receipt', 'updated_at'])
            transaction.on_commit(lambda: self.events.publish('receipt.created', {
                'receiptId': receipt.pk,
                'orderId': order.pk,
                'invoiceId': invoice.pk,
            }))
        return receipt, True


def get_payment_service(event_publisher=None):
    """Get a payment service instance wired to the configured event publisher."""
    return PaymentOrchestrationService(event_publisher=event_publisher)
