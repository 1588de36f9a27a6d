"""
Payment, webhook, status polling and receipt endpoints.
"""
import logging

from django.http import HttpResponse
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated, IsAdminUser

from core.exceptions import NotFoundError
from core.response import APIResponse, get_correlation_id
from finance.invoicing.services import get_visible_invoice
from .models import Payment, Receipt
from .pdf_utils import build_receipt_data, generate_receipt_pdf
from .serializers import (
    CashCollectedSerializer,
    PayInvoiceSerializer,
    PaymentSerializer,
    ReceiptCreateSerializer,
    ReceiptSerializer,
)
from .services import get_payment_service

logger = logging.getLogger(__name__)


def visible_payments(user):
    payments = Payment.objects.select_related('invoice', 'invoice__order')
    if not user.is_staff:
        payments = payments.filter(invoice__order__customer=user)
    return payments


def get_visible_payment(user, pk):
    payment = visible_payments(user).filter(pk=pk).first()
    if not payment:
        raise NotFoundError('Payment not found')
    return payment


def get_visible_receipt(user, pk):
    receipts = Receipt.objects.select_related('order', 'order__customer', 'invoice', 'payment')
    if not user.is_staff:
        receipts = receipts.filter(order__customer=user)
    receipt = receipts.filter(pk=pk).first()
    if not receipt:
        raise NotFoundError('Receipt not found')
    return receipt


class PayInvoiceView(APIView):
    """
    Start a payment against an invoice.

    Cash settles immediately and returns the receipt. M-Pesa answers with
    the Daraja checkout ids (the customer confirms on their phone) and
    Paystack with the hosted checkout URL; both come back 202 while the
    payment is PENDING.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = PayInvoiceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        get_visible_invoice(request.user, data['invoice_id'])

        result = get_payment_service().pay_invoice(
            invoice_id=data['invoice_id'],
            method=data['method'],
            amount=data.get('amount'),
            payer_phone=data.get('payer_phone') or None,
            payer_email=data.get('payer_email') or None,
            callback_url=data.get('callback_url') or None,
            request_base_url=request.build_absolute_uri('/'),
            created_by=request.user,
        )

        if data['method'] in Payment.ONLINE_METHODS:
            return APIResponse.accepted(data=result, correlation_id=get_correlation_id(request))
        return APIResponse.success(data=result, message='Payment recorded',
                                   correlation_id=get_correlation_id(request))


class PaymentDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        payment = get_visible_payment(request.user, pk)
        return APIResponse.success(data={'payment': PaymentSerializer(payment).data},
                                   correlation_id=get_correlation_id(request))


class CashCollectedView(APIView):
    """Staff confirm cash in hand for a cash, cod or post_to_bill payment."""
    permission_classes = [IsAdminUser]

    def patch(self, request, pk):
        serializer = CashCollectedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        receipt = get_payment_service().mark_cash_collected(pk, serializer.validated_data.get('amount'))
        logger.info(f"Cash collected for payment {pk} by user {request.user.pk}")
        return APIResponse.success(
            data={'paymentId': int(pk), 'receiptId': receipt.pk, 'receiptNumber': receipt.receipt_number},
            message='Cash collected',
            correlation_id=get_correlation_id(request),
        )


class MpesaWebhookView(APIView):
    """
    Daraja STK callback. Public; configured as the CallBackURL of each push.
    """
    permission_classes = []
    authentication_classes = []

    def post(self, request):
        logger.info("M-Pesa callback received")
        result = get_payment_service().handle_mpesa_callback(request.data)
        return APIResponse.success(data=result, message='Callback processed',
                                   correlation_id=get_correlation_id(request))


class PaystackWebhookView(APIView):
    permission_classes = []
    authentication_classes = []

    def post(self, request):
        # Raw bytes are needed for the HMAC check; read them before DRF parses the body
        raw_body = request.body
        signature = request.META.get('HTTP_X_PAYSTACK_SIGNATURE')
        logger.info("Paystack webhook received")
        result = get_payment_service().handle_paystack_webhook(request.data, raw_body, signature)
        return APIResponse.success(data=result, message='Webhook processed',
                                   correlation_id=get_correlation_id(request))


class MpesaStatusView(APIView):
    """
    Poll Daraja for an STK push.

    ``?invoiceId=`` selects the invoice's latest STK payment. Without it
    ``pk`` is a payment id, and when the caller has no such payment it is
    tried as an invoice id.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        service = get_payment_service()
        invoice_id = request.query_params.get('invoiceId')
        if invoice_id:
            invoice = get_visible_invoice(request.user, invoice_id)
            result = service.query_mpesa_status(invoice_id=invoice.pk)
            return APIResponse.success(data=result, correlation_id=get_correlation_id(request))

        payment = visible_payments(request.user).filter(pk=pk).first()
        if payment:
            result = service.query_mpesa_status(payment_id=payment.pk)
        else:
            invoice = get_visible_invoice(request.user, pk)
            result = service.query_mpesa_status(invoice_id=invoice.pk)
        return APIResponse.success(data=result, correlation_id=get_correlation_id(request))


class InvoiceMpesaStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, invoice_id):
        get_visible_invoice(request.user, invoice_id)
        result = get_payment_service().query_mpesa_status(invoice_id=invoice_id)
        return APIResponse.success(data=result, correlation_id=get_correlation_id(request))


class ReceiptCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ReceiptCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invoice = get_visible_invoice(request.user, serializer.validated_data['invoice_id'])

        receipt, created = get_payment_service().create_receipt(invoice.pk)
        data = {'receiptId': receipt.pk, 'receiptNumber': receipt.receipt_number}
        if created:
            return APIResponse.created(data=data, message='Receipt created',
                                       correlation_id=get_correlation_id(request))
        return APIResponse.success(data=data, message='Receipt already issued',
                                   correlation_id=get_correlation_id(request))


class ReceiptDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        receipt = get_visible_receipt(request.user, pk)
        return APIResponse.success(data={'receipt': ReceiptSerializer(receipt).data},
                                   correlation_id=get_correlation_id(request))


class ReceiptPDFView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        receipt = get_visible_receipt(request.user, pk)
        pdf_bytes = generate_receipt_pdf(build_receipt_data(receipt))
        response = HttpResponse(pdf_bytes, content_type='application/pdf')
        response['Content-Disposition'] = f'inline; filename="{receipt.receipt_number}.pdf"'
        return response
