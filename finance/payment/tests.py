import hashlib
import hmac
import json
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

import requests
from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from core.events import LoggingEventPublisher
from core.tests.factories import (
    daraja_token_response,
    make_cart,
    make_packaging,
    make_product,
    make_user,
    mock_response,
    stk_accepted_response,
    stk_callback,
)
from ecommerce.order.models import Order
from finance.invoicing.models import Invoice
from finance.payment.models import Payment, Receipt
from finance.payment.services import get_payment_service
from finance.payment.tasks import sweep_pending_mpesa_payments

CHECKOUT_ID = 'ws_CO_191220191020363925'


class SettlementTestCase(APITestCase):
    """A customer with a 2200 invoice: two items at 1000 plus 200 packaging."""

    def setUp(self):
        self.client = APIClient()
        self.webhook_client = APIClient()
        self.user = make_user('shopper')
        self.staff = make_user('cashier', is_staff=True)
        self.client.force_authenticate(user=self.user)

        self.product, self.sku = make_product(price='1000.00', stock=5)
        make_cart(self.user, [(self.product, self.sku, 2, '1000.00')])
        make_packaging('Gift box', '200.00', is_default=True)

        resp = self.client.post('/api/orders', {'type': 'pickup', 'paymentPreference': {'mode': 'pay_now'}},
                                format='json')
        self.order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.invoice = self.order.invoice

    def pay(self, method, **extra):
        payload = {'invoiceId': self.invoice.pk, 'method': method}
        payload.update(extra)
        with self.captureOnCommitCallbacks(execute=True):
            return self.client.post('/api/payments/pay-invoice', payload, format='json')

    def post_mpesa_callback(self, payload):
        with self.captureOnCommitCallbacks(execute=True):
            return self.webhook_client.post('/api/payments/webhooks/mpesa', payload, format='json')

    def start_stk_push(self):
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get, \
                mock.patch('integrations.payments.mpesa_payment.requests.post') as mock_post:
            mock_get.return_value = daraja_token_response()
            mock_post.return_value = stk_accepted_response(CHECKOUT_ID)
            resp = self.pay('mpesa_stk', payerPhone='0722000000')
        return resp, mock_post

    def assertSettled(self, amount='2200.00', method='cash'):
        self.invoice.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, Invoice.STATUS_PAID)
        self.assertEqual(self.invoice.balance_due, Decimal('0'))
        self.assertIsNotNone(self.invoice.paid_at)
        self.assertEqual(self.order.payment_status, Order.PAYMENT_PAID)
        self.assertEqual(self.order.status, Order.STATUS_CONFIRMED)
        receipts = Receipt.objects.filter(invoice=self.invoice)
        self.assertEqual(receipts.count(), 1)
        receipt = receipts.get()
        self.assertEqual(receipt.amount_paid, Decimal(amount))
        self.assertEqual(receipt.payment_method, method)
        self.assertEqual(self.order.receipt_id, receipt.pk)
        self.assertRegex(receipt.receipt_number, r'^RCP-\d{4}-\d{6}$')
        return receipt


class CashPaymentTests(SettlementTestCase):

    def test_cash_settles_invoice_immediately(self):
        resp = self.pay('cash')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        payment = Payment.objects.get(pk=resp.json()['data']['paymentId'])
        self.assertEqual(payment.status, Payment.STATUS_SUCCESS)
        self.assertEqual(payment.amount, Decimal('2200.00'))
        receipt = self.assertSettled()
        self.assertEqual(resp.json()['data']['receiptId'], receipt.pk)

    def test_settlement_decrements_stock(self):
        self.pay('cash')
        self.sku.refresh_from_db()
        self.assertEqual(self.sku.stock_level, 3)

    def test_paid_invoice_cannot_be_paid_again(self):
        self.pay('cash')
        resp = self.pay('cash')
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.json()['error']['code'], 'INVOICE_ALREADY_PAID')
        self.assertEqual(Payment.objects.filter(invoice=self.invoice).count(), 1)

    def test_cancelled_invoice_is_conflict(self):
        Invoice.objects.filter(pk=self.invoice.pk).update(payment_status=Invoice.STATUS_CANCELLED)
        resp = self.pay('cash')
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.json()['error']['code'], 'INVOICE_CANCELLED')

    @mock.patch.object(LoggingEventPublisher, 'publish')
    def test_cash_emits_payment_and_receipt_events(self, mock_publish):
        self.pay('cash')
        topics = [call.args[0] for call in mock_publish.call_args_list]
        self.assertIn('payment.updated', topics)
        self.assertIn('receipt.created', topics)

    def test_unknown_invoice(self):
        resp = self.client.post('/api/payments/pay-invoice', {'invoiceId': 999999, 'method': 'cash'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_unsupported_method(self):
        resp = self.pay('bitcoin')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_customer_cannot_pay(self):
        self.client.force_authenticate(user=make_user('nosy'))
        self.assertEqual(self.pay('cash').status_code, status.HTTP_404_NOT_FOUND)


class DeferredCollectionTests(SettlementTestCase):

    def test_cod_records_payment_but_leaves_invoice_open(self):
        resp = self.pay('cod')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        payment = Payment.objects.get(pk=resp.json()['data']['paymentId'])
        self.assertEqual(payment.status, Payment.STATUS_SUCCESS)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, Invoice.STATUS_PENDING)
        self.assertEqual(self.invoice.balance_due, Decimal('2200.00'))
        self.assertFalse(Receipt.objects.exists())

    def test_staff_collecting_cash_settles_cod(self):
        payment_id = self.pay('post_to_bill').json()['data']['paymentId']
        self.client.force_authenticate(user=self.staff)

        with self.captureOnCommitCallbacks(execute=True):
            resp = self.client.patch(f'/api/payments/{payment_id}/cash', {}, format='json')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        receipt = self.assertSettled()
        self.assertEqual(resp.json()['data']['receiptId'], receipt.pk)
        self.assertEqual(Payment.objects.get(pk=payment_id).method, Payment.METHOD_CASH)

    def test_collecting_twice_returns_same_receipt(self):
        payment_id = self.pay('cod').json()['data']['paymentId']
        self.client.force_authenticate(user=self.staff)
        first = self.client.patch(f'/api/payments/{payment_id}/cash', {}, format='json')
        second = self.client.patch(f'/api/payments/{payment_id}/cash', {}, format='json')
        self.assertEqual(first.json()['data']['receiptId'], second.json()['data']['receiptId'])
        self.assertEqual(Receipt.objects.count(), 1)

    def test_customers_cannot_mark_cash_collected(self):
        payment_id = self.pay('cod').json()['data']['paymentId']
        resp = self.client.patch(f'/api/payments/{payment_id}/cash', {}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)


class MpesaPaymentTests(SettlementTestCase):

    def test_stk_push_leaves_payment_pending(self):
        resp, mock_post = self.start_stk_push()

        self.assertEqual(resp.status_code, status.HTTP_202_ACCEPTED)
        data = resp.json()['data']
        self.assertEqual(data['status'], Payment.STATUS_PENDING)
        self.assertEqual(data['daraja']['checkoutRequestId'], CHECKOUT_ID)
        payment = Payment.objects.get(pk=data['paymentId'])
        self.assertEqual(payment.payer_phone, '254722000000')
        self.assertEqual(payment.processor_refs['daraja']['checkout_request_id'], CHECKOUT_ID)

        body = mock_post.call_args.kwargs['json']
        self.assertEqual(body['PhoneNumber'], '254722000000')
        self.assertEqual(body['Amount'], 2200)
        self.assertEqual(body['AccountReference'], self.invoice.invoice_number)
        self.assertEqual(body['CallBackURL'], 'http://testserver/api/payments/webhooks/mpesa')

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, Invoice.STATUS_PENDING)

    @override_settings(MPESA_CALLBACK_URL='https://hooks.example.test/mpesa')
    def test_pinned_callback_url_wins_over_request_host(self):
        _, mock_post = self.start_stk_push()
        self.assertEqual(mock_post.call_args.kwargs['json']['CallBackURL'], 'https://hooks.example.test/mpesa')

    def test_explicit_callback_url(self):
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get, \
                mock.patch('integrations.payments.mpesa_payment.requests.post') as mock_post:
            mock_get.return_value = daraja_token_response()
            mock_post.return_value = stk_accepted_response(CHECKOUT_ID)
            self.pay('mpesa_stk', payerPhone='0722000000', callbackUrl='https://tunnel.example.test/cb')
        self.assertEqual(mock_post.call_args.kwargs['json']['CallBackURL'], 'https://tunnel.example.test/cb')

    def test_invalid_phone_is_rejected_before_calling_daraja(self):
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get:
            resp = self.pay('mpesa_stk', payerPhone='712345678')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        mock_get.assert_not_called()
        self.assertFalse(Payment.objects.exists())

    def test_phone_is_required(self):
        self.assertEqual(self.pay('mpesa_stk').status_code, status.HTTP_400_BAD_REQUEST)

    def test_successful_callback_settles_invoice(self):
        self.start_stk_push()

        resp = self.post_mpesa_callback(stk_callback(CHECKOUT_ID))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertTrue(resp.json()['success'])
        self.assertSettled(method='mpesa_stk')
        payment = Payment.objects.get(daraja_checkout_request_id=CHECKOUT_ID)
        self.assertEqual(payment.status, Payment.STATUS_SUCCESS)
        self.assertEqual(payment.mpesa_receipt_number, 'NLJ7RT61SV')
        self.assertEqual(payment.raw_payload['Body']['stkCallback']['CheckoutRequestID'], CHECKOUT_ID)

    def test_duplicate_callback_creates_one_receipt(self):
        self.start_stk_push()

        first = self.post_mpesa_callback(stk_callback(CHECKOUT_ID))
        with mock.patch.object(LoggingEventPublisher, 'publish') as mock_publish:
            second = self.post_mpesa_callback(stk_callback(CHECKOUT_ID))

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertTrue(second.json()['data']['duplicate'])
        self.assertEqual(first.json()['data']['receiptId'], second.json()['data']['receiptId'])
        self.assertEqual(Receipt.objects.filter(invoice=self.invoice).count(), 1)
        topics = [call.args[0] for call in mock_publish.call_args_list]
        self.assertNotIn('receipt.created', topics)
        self.sku.refresh_from_db()
        self.assertEqual(self.sku.stock_level, 3)

    def test_cancelled_callback_fails_payment(self):
        self.start_stk_push()

        resp = self.post_mpesa_callback(stk_callback(CHECKOUT_ID, result_code=1032))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        payment = Payment.objects.get(daraja_checkout_request_id=CHECKOUT_ID)
        self.assertEqual(payment.status, Payment.STATUS_FAILED)
        self.assertEqual(payment.failure_reason, 'Request cancelled by user')
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, Invoice.STATUS_PENDING)

    def test_late_success_for_cancelled_invoice_is_recorded_without_settling(self):
        self.start_stk_push()
        Invoice.objects.filter(pk=self.invoice.pk).update(payment_status=Invoice.STATUS_CANCELLED)

        with self.assertLogs('finance.payment.services', level='WARNING') as logs:
            resp = self.post_mpesa_callback(stk_callback(CHECKOUT_ID))

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertIsNone(resp.json()['data']['receiptId'])
        self.assertIn('cancelled invoice', ' '.join(logs.output))
        payment = Payment.objects.get(daraja_checkout_request_id=CHECKOUT_ID)
        self.assertEqual(payment.status, Payment.STATUS_SUCCESS)
        self.invoice.refresh_from_db()
        self.order.refresh_from_db()
        self.assertEqual(self.invoice.payment_status, Invoice.STATUS_CANCELLED)
        self.assertNotEqual(self.order.payment_status, Order.PAYMENT_PAID)
        self.assertFalse(Receipt.objects.filter(invoice=self.invoice).exists())
        self.sku.refresh_from_db()
        self.assertEqual(self.sku.stock_level, 5)

    def test_failure_after_success_does_not_downgrade(self):
        self.start_stk_push()
        self.post_mpesa_callback(stk_callback(CHECKOUT_ID))
        self.post_mpesa_callback(stk_callback(CHECKOUT_ID, result_code=1032))
        self.assertEqual(Payment.objects.get(daraja_checkout_request_id=CHECKOUT_ID).status, Payment.STATUS_SUCCESS)

    def test_unknown_checkout_id_is_not_found(self):
        resp = self.post_mpesa_callback(stk_callback('ws_CO_unknown'))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(resp.json()['success'])

    def test_malformed_callback_is_bad_request(self):
        resp = self.post_mpesa_callback({'Body': {}})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_daraja_rejection_fails_payment_with_bad_gateway(self):
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get, \
                mock.patch('integrations.payments.mpesa_payment.requests.post') as mock_post:
            mock_get.return_value = daraja_token_response()
            mock_post.return_value = mock_response(
                {'errorCode': '500.001.1001', 'errorMessage': 'Unable to lock subscriber'}, ok=False, status_code=500
            )
            resp = self.pay('mpesa_stk', payerPhone='0722000000')

        self.assertEqual(resp.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(resp.json()['message'], 'Unable to lock subscriber')
        self.assertEqual(resp.json()['error']['code'], 'UPSTREAM_PROCESSOR_ERROR')
        self.assertEqual(resp.json()['error']['details']['processor'], 'mpesa')
        self.assertEqual(Payment.objects.get().status, Payment.STATUS_FAILED)

    def test_processor_timeout_fails_payment(self):
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get:
            mock_get.side_effect = requests.Timeout()
            resp = self.pay('mpesa_stk', payerPhone='0722000000')

        self.assertEqual(resp.status_code, status.HTTP_502_BAD_GATEWAY)
        payment = Payment.objects.get()
        self.assertEqual(payment.status, Payment.STATUS_FAILED)
        self.assertEqual(payment.failure_reason, 'M-Pesa request timed out')

    def test_legacy_initiate_route(self):
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get, \
                mock.patch('integrations.payments.mpesa_payment.requests.post') as mock_post:
            mock_get.return_value = daraja_token_response()
            mock_post.return_value = stk_accepted_response(CHECKOUT_ID)
            resp = self.client.post('/api/payments/initiate', {
                'invoiceId': self.invoice.pk, 'method': 'mpesa_stk', 'payerPhone': '+254722000000',
            }, format='json')
        self.assertEqual(resp.status_code, status.HTTP_202_ACCEPTED)

    def test_fetch_payment(self):
        resp, _ = self.start_stk_push()
        payment_id = resp.json()['data']['paymentId']

        detail = self.client.get(f'/api/payments/{payment_id}')

        self.assertEqual(detail.status_code, status.HTTP_200_OK)
        payment = detail.json()['data']['payment']
        self.assertEqual(payment['processor_refs']['daraja']['checkout_request_id'], CHECKOUT_ID)


class MpesaStatusPollingTests(SettlementTestCase):

    def setUp(self):
        super().setUp()
        resp, _ = self.start_stk_push()
        self.payment_id = resp.json()['data']['paymentId']

    def poll(self, daraja_body, url=None, ok=True):
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get, \
                mock.patch('integrations.payments.mpesa_payment.requests.post') as mock_post:
            mock_get.return_value = daraja_token_response()
            mock_post.return_value = mock_response(daraja_body, ok=ok, status_code=200 if ok else 500)
            with self.captureOnCommitCallbacks(execute=True):
                resp = self.client.get(url or f'/api/payments/{self.payment_id}/mpesa-status')
        return resp, mock_post

    def test_poll_success_settles_invoice(self):
        resp, mock_post = self.poll({'ResultCode': '0', 'ResultDesc': 'The service request is processed successfully.'})

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.json()['data']
        self.assertEqual(data['status'], Payment.STATUS_SUCCESS)
        self.assertEqual(data['resultCode'], 0)
        self.assertEqual(mock_post.call_args.kwargs['json']['CheckoutRequestID'], CHECKOUT_ID)
        self.assertSettled(method='mpesa_stk')

    def test_poll_failure_marks_failed(self):
        resp, _ = self.poll({'ResultCode': '1032', 'ResultDesc': 'Request cancelled by user'})

        data = resp.json()['data']
        self.assertEqual(data['status'], Payment.STATUS_FAILED)
        self.assertEqual(data['resultDesc'], 'Request cancelled by user')

    def test_poll_while_customer_has_not_responded(self):
        resp, _ = self.poll({'errorCode': '500.001.1001', 'errorMessage': 'The transaction is being processed'},
                            ok=False)

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.json()['data']
        self.assertEqual(data['status'], Payment.STATUS_PENDING)
        self.assertIsNone(data['resultCode'])

    def test_poll_then_webhook_settles_once(self):
        self.poll({'ResultCode': '0', 'ResultDesc': 'ok'})
        resp = self.post_mpesa_callback(stk_callback(CHECKOUT_ID))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertSettled(method='mpesa_stk')

    def test_poll_by_invoice(self):
        resp, _ = self.poll({'ResultCode': '0', 'ResultDesc': 'ok'},
                            url=f'/api/payments/invoice/{self.invoice.pk}/mpesa-status')
        self.assertEqual(resp.json()['data']['paymentId'], self.payment_id)

    def test_unknown_payment_falls_back_to_invoice_query_param(self):
        resp, _ = self.poll({'ResultCode': '0', 'ResultDesc': 'ok'},
                            url=f'/api/payments/999999/mpesa-status?invoiceId={self.invoice.pk}')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()['data']['paymentId'], self.payment_id)

    def make_neighbour_cod_payment(self, pk=None):
        neighbour = make_user('neighbour')
        make_cart(neighbour, [(self.product, self.sku, 1, '1000.00')])
        client = APIClient()
        client.force_authenticate(user=neighbour)
        resp = client.post('/api/orders', {'type': 'pickup', 'paymentPreference': {'mode': 'pay_now'}},
                           format='json')
        invoice = Order.objects.get(pk=resp.json()['data']['orderId']).invoice
        return Payment.objects.create(
            pk=pk, invoice=invoice, method=Payment.METHOD_COD,
            amount=invoice.total, status=Payment.STATUS_SUCCESS,
        )

    def test_invoice_query_param_wins_over_another_customers_payment_id(self):
        foreign = self.make_neighbour_cod_payment()
        resp, _ = self.poll({'ResultCode': '0', 'ResultDesc': 'ok'},
                            url=f'/api/payments/{foreign.pk}/mpesa-status?invoiceId={self.invoice.pk}')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()['data']['paymentId'], self.payment_id)
        self.assertSettled(method='mpesa_stk')

    def test_invoice_id_matching_another_customers_payment_id(self):
        if self.payment_id == self.invoice.pk:
            Payment.objects.filter(pk=self.payment_id).update(id=self.payment_id + 1000)
            self.payment_id += 1000
        self.make_neighbour_cod_payment(pk=self.invoice.pk)

        resp, _ = self.poll({'ResultCode': '0', 'ResultDesc': 'ok'},
                            url=f'/api/payments/{self.invoice.pk}/mpesa-status')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()['data']['paymentId'], self.payment_id)

    def test_daraja_error_is_bad_gateway(self):
        resp, _ = self.poll({'errorCode': '404.001.04', 'errorMessage': 'Invalid Access Token'}, ok=False)
        self.assertEqual(resp.status_code, status.HTTP_502_BAD_GATEWAY)

    def test_sweep_reconciles_stale_payments(self):
        Payment.objects.filter(pk=self.payment_id).update(created_at=timezone.now() - timedelta(minutes=10))
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get, \
                mock.patch('integrations.payments.mpesa_payment.requests.post') as mock_post:
            mock_get.return_value = daraja_token_response()
            mock_post.return_value = mock_response({'ResultCode': '0', 'ResultDesc': 'ok'})
            with self.captureOnCommitCallbacks(execute=True):
                counts = sweep_pending_mpesa_payments(older_than_minutes=2)

        self.assertEqual(counts['checked'], 1)
        self.assertEqual(counts['succeeded'], 1)
        self.assertSettled(method='mpesa_stk')

    def test_sweep_skips_recent_payments(self):
        counts = get_payment_service().sweep_pending_mpesa_payments(older_than_minutes=5)
        self.assertEqual(counts['checked'], 0)

    def test_reconcile_command(self):
        Payment.objects.filter(pk=self.payment_id).update(created_at=timezone.now() - timedelta(minutes=10))
        out = StringIO()
        with mock.patch('integrations.payments.mpesa_payment.requests.get') as mock_get, \
                mock.patch('integrations.payments.mpesa_payment.requests.post') as mock_post:
            mock_get.return_value = daraja_token_response()
            mock_post.return_value = mock_response({'ResultCode': '1037', 'ResultDesc': 'DS timeout user cannot be reached'})
            call_command('reconcile_mpesa_payments', '--minutes', '2', '--max', '10', stdout=out)

        self.assertIn('Checked 1: 0 settled, 1 failed', out.getvalue())
        self.assertEqual(Payment.objects.get(pk=self.payment_id).status, Payment.STATUS_FAILED)


class PaystackPaymentTests(SettlementTestCase):

    def start_card_payment(self):
        def initialize(url, json=None, headers=None, timeout=None):
            return mock_response({
                'status': True,
                'message': 'Authorization URL created',
                'data': {
                    'authorization_url': 'https://checkout.paystack.com/0peioxfhpn',
                    'access_code': '0peioxfhpn',
                    'reference': json['reference'],
                },
            })

        with mock.patch('integrations.payments.card_payment.requests.post', side_effect=initialize):
            return self.pay('paystack_card', payerEmail='buyer@example.com')

    def post_paystack_event(self, payload, **headers):
        with self.captureOnCommitCallbacks(execute=True):
            return self.webhook_client.post('/api/payments/webhooks/paystack', payload, format='json', **headers)

    def test_card_payment_returns_checkout_url(self):
        resp = self.start_card_payment()

        self.assertEqual(resp.status_code, status.HTTP_202_ACCEPTED)
        data = resp.json()['data']
        self.assertEqual(data['authorizationUrl'], 'https://checkout.paystack.com/0peioxfhpn')
        self.assertRegex(data['reference'], rf'^INV-{self.invoice.pk}-\d+$')
        self.assertEqual(Payment.objects.get(pk=data['paymentId']).status, Payment.STATUS_PENDING)

    def test_invalid_email_is_rejected(self):
        self.assertEqual(self.pay('paystack_card', payerEmail='not-an-email').status_code,
                         status.HTTP_400_BAD_REQUEST)

    def test_charge_success_settles_invoice(self):
        reference = self.start_card_payment().json()['data']['reference']

        resp = self.post_paystack_event({'event': 'charge.success', 'data': {
            'reference': reference, 'status': 'success', 'amount': 220000, 'currency': 'KES',
        }})

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertSettled(method='paystack_card')

    def test_failed_charge(self):
        reference = self.start_card_payment().json()['data']['reference']
        self.post_paystack_event({'event': 'charge.failed', 'data': {'reference': reference, 'status': 'failed'}})
        self.assertEqual(Payment.objects.get(paystack_reference=reference).status, Payment.STATUS_FAILED)

    def test_unknown_reference(self):
        resp = self.post_paystack_event({'event': 'charge.success', 'data': {'reference': 'INV-0-0'}})
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_missing_reference(self):
        resp = self.post_paystack_event({'event': 'charge.success', 'data': {}})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(PAYSTACK_VERIFY_WEBHOOK_SIGNATURE=True)
    def test_signature_is_checked_when_enabled(self):
        reference = self.start_card_payment().json()['data']['reference']
        payload = {'event': 'charge.success', 'data': {'reference': reference, 'status': 'success'}}

        forged = self.post_paystack_event(payload, HTTP_X_PAYSTACK_SIGNATURE='forged')
        self.assertEqual(forged.status_code, status.HTTP_401_UNAUTHORIZED)

        raw = json.dumps(payload).encode()
        signature = hmac.new(b'sk_test_secret', raw, hashlib.sha512).hexdigest()
        with self.captureOnCommitCallbacks(execute=True):
            signed = self.webhook_client.post('/api/payments/webhooks/paystack', raw,
                                              content_type='application/json',
                                              HTTP_X_PAYSTACK_SIGNATURE=signature)
        self.assertEqual(signed.status_code, status.HTTP_200_OK)
        self.assertSettled(method='paystack_card')


class ReceiptTests(SettlementTestCase):

    def test_receipt_requires_paid_invoice(self):
        resp = self.client.post('/api/receipts', {'invoiceId': self.invoice.pk}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_receipt_is_not_duplicated(self):
        receipt_id = self.pay('cash').json()['data']['receiptId']

        resp = self.client.post('/api/receipts', {'invoiceId': self.invoice.pk}, format='json')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()['data']['receiptId'], receipt_id)
        self.assertEqual(Receipt.objects.count(), 1)

    def test_receipt_issued_for_invoice_paid_without_one(self):
        Invoice.objects.filter(pk=self.invoice.pk).update(payment_status=Invoice.STATUS_PAID, balance_due=0)

        with self.captureOnCommitCallbacks(execute=True):
            resp = self.client.post('/api/receipts', {'invoiceId': self.invoice.pk}, format='json')

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        receipt = Receipt.objects.get(pk=resp.json()['data']['receiptId'])
        self.assertEqual(receipt.amount_paid, Decimal('2200.00'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.receipt_id, receipt.pk)

    def test_fetch_receipt_and_pdf(self):
        receipt_id = self.pay('cash').json()['data']['receiptId']

        detail = self.client.get(f'/api/receipts/{receipt_id}')
        self.assertEqual(detail.status_code, status.HTTP_200_OK)
        self.assertEqual(detail.json()['data']['receipt']['amount_paid'], '2200.00')

        pdf = self.client.get(f'/api/receipts/{receipt_id}/pdf')
        self.assertEqual(pdf.status_code, status.HTTP_200_OK)
        self.assertEqual(pdf['Content-Type'], 'application/pdf')
        self.assertTrue(pdf.content.startswith(b'%PDF'))

    def test_receipt_hidden_from_other_customers(self):
        receipt_id = self.pay('cash').json()['data']['receiptId']
        self.client.force_authenticate(user=make_user('nosy'))
        self.assertEqual(self.client.get(f'/api/receipts/{receipt_id}').status_code, status.HTTP_404_NOT_FOUND)
