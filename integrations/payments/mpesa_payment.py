from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
import base64
import requests
import logging

from ..services.config_service import IntegrationConfigService

logger = logging.getLogger(__name__)

# Daraja answers a status query with this code while the customer has not acted yet
STK_STILL_PROCESSING = '500.001.1001'


class MpesaPaymentService:
    """
    Safaricom Daraja STK Push adapter.
    Provides STK Push initiation, status query, and callback parsing.
    Used by finance.payment.services.PaymentOrchestrationService; it never
    touches payment records itself.
    """

    @staticmethod
    def timestamp():
        return datetime.now().strftime('%Y%m%d%H%M%S')

    @staticmethod
    def build_password(short_code, passkey, timestamp):
        return base64.b64encode(f"{short_code}{passkey}{timestamp}".encode()).decode()

    @classmethod
    def get_access_token(cls, config):
        auth_resp = requests.get(
            f"{config['base_url']}/oauth/v1/generate?grant_type=client_credentials",
            auth=(config['consumer_key'], config['consumer_secret']),
            timeout=config['timeout'],
        )
        auth_resp.raise_for_status()
        access_token = auth_resp.json().get('access_token')
        if not access_token:
            raise requests.HTTPError("Daraja OAuth response did not include an access token")
        return access_token

    @classmethod
    def initiate_stk_push(cls, phone, amount, account_reference, callback_url=None, description="Invoice payment"):
        """
        Send an STK push prompt to ``phone``.

        Returns (success, message, data) where data carries the
        merchant_request_id and checkout_request_id on success.
        """
        if not IntegrationConfigService.mpesa_configured():
            return False, "Mpesa settings not configured", None
        config = IntegrationConfigService.get_mpesa_config()

        try:
            access_token = cls.get_access_token(config)

            timestamp = cls.timestamp()
            payload = {
                "BusinessShortCode": config['short_code'],
                "Password": cls.build_password(config['short_code'], config['passkey'], timestamp),
                "Timestamp": timestamp,
                "TransactionType": "CustomerPayBillOnline",
                "Amount": int(Decimal(str(amount)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)),
                "PartyA": phone,
                "PartyB": config['short_code'],
                "PhoneNumber": phone,
                "CallBackURL": callback_url or config['callback_url'],
                "AccountReference": account_reference,
                "TransactionDesc": description,
            }
            headers = {"Authorization": f"Bearer {access_token}"}
            resp = requests.post(
                f"{config['base_url']}/mpesa/stkpush/v1/processrequest",
                json=payload, headers=headers, timeout=config['timeout'],
            )
            data = resp.json()
            if resp.ok and str(data.get('ResponseCode')) == '0':
                return True, data.get('CustomerMessage') or "STK Push initiated", {
                    "merchant_request_id": data.get('MerchantRequestID'),
                    "checkout_request_id": data.get('CheckoutRequestID'),
                    "response_description": data.get('ResponseDescription'),
                }
            return False, data.get('errorMessage') or data.get('ResponseDescription') or 'Failed to initiate STK', data
        except requests.Timeout:
            logger.error(f"Mpesa STK initiation timed out after {config['timeout']}s")
            return False, "M-Pesa request timed out", None
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Mpesa STK initiation error: {str(e)}")
            return False, str(e), None

    @classmethod
    def query_stk_status(cls, checkout_request_id):
        """
        Ask Daraja for the outcome of an STK push.

        Returns (success, message, data). On success data holds ``result_code``
        (an int, or None while the customer has not responded yet),
        ``result_desc`` and the raw body.
        """
        if not IntegrationConfigService.mpesa_configured():
            return False, "Mpesa settings not configured", None
        config = IntegrationConfigService.get_mpesa_config()

        try:
            access_token = cls.get_access_token(config)
            timestamp = cls.timestamp()
            payload = {
                "BusinessShortCode": config['short_code'],
                "Password": cls.build_password(config['short_code'], config['passkey'], timestamp),
                "Timestamp": timestamp,
                "CheckoutRequestID": checkout_request_id,
            }
            headers = {"Authorization": f"Bearer {access_token}"}
            resp = requests.post(
                f"{config['base_url']}/mpesa/stkpushquery/v1/query",
                json=payload, headers=headers, timeout=config['timeout'],
            )
            data = resp.json()
            if resp.ok and data.get('ResultCode') is not None:
                return True, data.get('ResultDesc'), {
                    "result_code": int(data.get('ResultCode')),
                    "result_desc": data.get('ResultDesc'),
                    "raw": data,
                }
            if data.get('errorCode') == STK_STILL_PROCESSING:
                return True, data.get('errorMessage'), {
                    "result_code": None,
                    "result_desc": data.get('errorMessage') or 'The transaction is being processed',
                    "raw": data,
                }
            return False, data.get('errorMessage') or 'Failed to query STK status', data
        except requests.Timeout:
            logger.error(f"Mpesa STK query timed out after {config['timeout']}s")
            return False, "M-Pesa request timed out", None
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Mpesa STK query error: {str(e)}")
            return False, str(e), None

    @staticmethod
    def parse_callback(payload):
        """
        Parse an STK callback body (``Body.stkCallback``).

        Returns None when the payload is not a recognisable callback.
        """
        if not isinstance(payload, dict):
            return None
        body = payload.get('Body')
        callback = body.get('stkCallback') if isinstance(body, dict) else None
        if not isinstance(callback, dict) or not callback.get('CheckoutRequestID'):
            return None
        try:
            result_code = int(callback.get('ResultCode'))
        except (TypeError, ValueError):
            return None

        metadata = callback.get('CallbackMetadata') or {}
        items = metadata.get('Item') if isinstance(metadata, dict) else None
        values = {
            item.get('Name'): item.get('Value')
            for item in (items or []) if isinstance(item, dict)
        }

        return {
            'success': result_code == 0,
            'result_code': result_code,
            'result_desc': callback.get('ResultDesc'),
            'checkout_request_id': callback.get('CheckoutRequestID'),
            'merchant_request_id': callback.get('MerchantRequestID'),
            'amount': values.get('Amount'),
            'phone': values.get('PhoneNumber'),
            'mpesa_receipt': values.get('MpesaReceiptNumber'),
        }
