import base64
import hashlib
import hmac
from decimal import Decimal
from unittest import mock

import requests
from django.test import SimpleTestCase, override_settings

from core.tests.factories import daraja_token_response, mock_response, stk_accepted_response, stk_callback
from integrations.payments.card_payment import CardPaymentService
from integrations.payments.mpesa_payment import MpesaPaymentService
from integrations.services.config_service import IntegrationConfigService


class IntegrationConfigServiceTests(SimpleTestCase):

    def test_sandbox_is_default(self):
        config = IntegrationConfigService.get_mpesa_config()
        self.assertEqual(config['base_url'], 'https://sandbox.safaricom.co.ke')
        self.assertEqual(config['callback_url'], 'https://api.example.test/api/payments/webhooks/mpesa')

    @override_settings(MPESA_ENV='production', MPESA_CALLBACK_URL='https://hooks.example.test/mpesa')
    def test_production_and_pinned_callback(self):
        config = IntegrationConfigService.get_mpesa_config()
        self.assertEqual(config['base_url'], 'https://api.safaricom.co.ke')
        self.assertEqual(config['callback_url'], 'https://hooks.example.test/mpesa')
        self.assertTrue(IntegrationConfigService.mpesa_callback_pinned())

    def test_paystack_callback_defaults_to_frontend(self):
        config = IntegrationConfigService.get_paystack_config()
        self.assertEqual(config['callback_url'], 'https://shop.example.test/payments/callback')

    @override_settings(MPESA_PASSKEY='')
    def test_missing_credentials_are_reported(self):
        self.assertFalse(IntegrationConfigService.mpesa_configured())


class MpesaPaymentServiceTests(SimpleTestCase):

    def test_password_is_base64_of_shortcode_passkey_timestamp(self):
        password = MpesaPaymentService.build_password('174379', 'test-passkey', '20240101120000')
        self.assertEqual(base64.b64decode(password).decode(), '174379test-passkey20240101120000')

    @mock.patch('integrations.payments.mpesa_payment.requests.post')
    @mock.patch('integrations.payments.mpesa_payment.requests.get')
    def test_stk_push_sends_daraja_payload(self, mock_get, mock_post):
        mock_get.return_value = daraja_token_response()
        mock_post.return_value = stk_accepted_response('ws_CO_1')

        success, message, data = MpesaPaymentService.initiate_stk_push(
            phone='254722000000', amount=Decimal('2199.60'), account_reference='INV-2024-000001',
            callback_url='https://api.example.test/api/payments/webhooks/mpesa',
        )

        self.assertTrue(success)
        self.assertEqual(data['checkout_request_id'], 'ws_CO_1')
        self.assertEqual(mock_get.call_args.kwargs['auth'], ('test-key', 'test-secret'))
        url = mock_post.call_args.args[0]
        body = mock_post.call_args.kwargs['json']
        self.assertTrue(url.endswith('/mpesa/stkpush/v1/processrequest'))
        self.assertEqual(body['Amount'], 2200)
        self.assertEqual(body['PartyA'], '254722000000')
        self.assertEqual(body['PartyB'], '174379')
        self.assertEqual(body['TransactionType'], 'CustomerPayBillOnline')
        self.assertEqual(body['AccountReference'], 'INV-2024-000001')
        self.assertEqual(mock_post.call_args.kwargs['headers']['Authorization'], 'Bearer daraja-token')
        self.assertEqual(mock_post.call_args.kwargs['timeout'], 15.0)

    @mock.patch('integrations.payments.mpesa_payment.requests.post')
    @mock.patch('integrations.payments.mpesa_payment.requests.get')
    def test_stk_push_rejection_is_reported(self, mock_get, mock_post):
        mock_get.return_value = daraja_token_response()
        mock_post.return_value = mock_response(
            {'requestId': '1', 'errorCode': '400.002.02', 'errorMessage': 'Bad Request - Invalid PhoneNumber'},
            ok=False, status_code=400,
        )

        success, message, data = MpesaPaymentService.initiate_stk_push('254700000000', 10, 'INV-1')

        self.assertFalse(success)
        self.assertEqual(message, 'Bad Request - Invalid PhoneNumber')

    @mock.patch('integrations.payments.mpesa_payment.requests.get')
    def test_timeout_is_reported_as_failure(self, mock_get):
        mock_get.side_effect = requests.Timeout()

        success, message, data = MpesaPaymentService.initiate_stk_push('254700000000', 10, 'INV-1')

        self.assertFalse(success)
        self.assertIn('timed out', message)

    @mock.patch('integrations.payments.mpesa_payment.requests.post')
    @mock.patch('integrations.payments.mpesa_payment.requests.get')
    def test_status_query_still_processing(self, mock_get, mock_post):
        mock_get.return_value = daraja_token_response()
        mock_post.return_value = mock_response(
            {'errorCode': '500.001.1001', 'errorMessage': 'The transaction is being processed'},
            ok=False, status_code=500,
        )

        success, message, data = MpesaPaymentService.query_stk_status('ws_CO_1')

        self.assertTrue(success)
        self.assertIsNone(data['result_code'])

    def test_parse_successful_callback(self):
        parsed = MpesaPaymentService.parse_callback(stk_callback('ws_CO_1'))
        self.assertTrue(parsed['success'])
        self.assertEqual(parsed['checkout_request_id'], 'ws_CO_1')
        self.assertEqual(parsed['amount'], 2200)
        self.assertEqual(parsed['mpesa_receipt'], 'NLJ7RT61SV')
        self.assertEqual(parsed['phone'], 254722000000)

    def test_parse_cancelled_callback(self):
        parsed = MpesaPaymentService.parse_callback(stk_callback('ws_CO_1', result_code=1032))
        self.assertFalse(parsed['success'])
        self.assertEqual(parsed['result_code'], 1032)
        self.assertIsNone(parsed['mpesa_receipt'])

    def test_parse_rejects_malformed_payloads(self):
        self.assertIsNone(MpesaPaymentService.parse_callback({}))
        self.assertIsNone(MpesaPaymentService.parse_callback({'Body': {'stkCallback': {'ResultCode': 0}}}))
        self.assertIsNone(MpesaPaymentService.parse_callback(['not', 'a', 'dict']))


class CardPaymentServiceTests(SimpleTestCase):

    def test_amount_is_sent_in_minor_units(self):
        self.assertEqual(CardPaymentService.to_minor_units(Decimal('2200.50')), 220050)

    def test_reference_embeds_invoice_id(self):
        self.assertRegex(CardPaymentService.generate_reference(42), r'^INV-42-\d{13}$')

    @mock.patch('integrations.payments.card_payment.requests.post')
    def test_initialize_transaction(self, mock_post):
        mock_post.return_value = mock_response({
            'status': True,
            'message': 'Authorization URL created',
            'data': {
                'authorization_url': 'https://checkout.paystack.com/0peioxfhpn',
                'access_code': '0peioxfhpn',
                'reference': 'INV-1-1700000000000',
            },
        })

        success, message, data = CardPaymentService.initialize_transaction(
            email='buyer@example.com', amount=Decimal('2200'), reference='INV-1-1700000000000'
        )

        self.assertTrue(success)
        self.assertEqual(data['authorization_url'], 'https://checkout.paystack.com/0peioxfhpn')
        body = mock_post.call_args.kwargs['json']
        self.assertEqual(body['amount'], 220000)
        self.assertEqual(body['currency'], 'KES')
        self.assertEqual(body['callback_url'], 'https://shop.example.test/payments/callback')
        self.assertEqual(mock_post.call_args.kwargs['headers']['Authorization'], 'Bearer sk_test_secret')

    def test_signature_verification(self):
        raw = b'{"event":"charge.success"}'
        signature = hmac.new(b'sk_test_secret', raw, hashlib.sha512).hexdigest()
        self.assertTrue(CardPaymentService.verify_signature(raw, signature))
        self.assertFalse(CardPaymentService.verify_signature(raw, 'forged'))
        self.assertFalse(CardPaymentService.verify_signature(raw, None))

    def test_parse_webhook_success_by_event_or_status(self):
        by_event = CardPaymentService.parse_webhook(
            {'event': 'charge.success', 'data': {'reference': 'INV-1-1', 'amount': 220000}}
        )
        by_status = CardPaymentService.parse_webhook({'data': {'reference': 'INV-1-1', 'status': 'success'}})
        failed = CardPaymentService.parse_webhook({'event': 'charge.failed', 'data': {'reference': 'INV-1-1'}})

        self.assertTrue(by_event['success'])
        self.assertEqual(by_event['amount'], Decimal('2200'))
        self.assertTrue(by_status['success'])
        self.assertFalse(failed['success'])

    def test_parse_webhook_requires_reference(self):
        self.assertIsNone(CardPaymentService.parse_webhook({'event': 'charge.success', 'data': {}}))
