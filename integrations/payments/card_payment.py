from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import hashlib
import hmac
import time
import requests
import logging

from ..services.config_service import IntegrationConfigService

logger = logging.getLogger(__name__)


class CardPaymentService:
    """
    Paystack hosted-checkout adapter for card payments.

    The customer is redirected to ``authorization_url``; Paystack later posts
    the result to the card webhook, keyed by our ``reference``.
    """

    @staticmethod
    def generate_reference(invoice_id):
        return f"INV-{invoice_id}-{int(time.time() * 1000)}"

    @staticmethod
    def to_minor_units(amount):
        return int((Decimal(str(amount)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    @classmethod
    def initialize_transaction(cls, email, amount, reference, callback_url=None, currency=None):
        """
        Initialize a Paystack transaction.

        Returns (success, message, data) with authorization_url, access_code
        and reference on success.
        """
        if not IntegrationConfigService.paystack_configured():
            return False, "Paystack settings not configured", None
        config = IntegrationConfigService.get_paystack_config()

        payload = {
            "email": email,
            "amount": cls.to_minor_units(amount),
            "currency": currency or config['currency'],
            "reference": reference,
            "callback_url": callback_url or config['callback_url'],
        }
        headers = {
            "Authorization": f"Bearer {config['secret_key']}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(
                f"{config['base_url']}/transaction/initialize",
                json=payload, headers=headers, timeout=config['timeout'],
            )
            data = resp.json()
            if resp.ok and data.get('status'):
                body = data.get('data') or {}
                return True, data.get('message') or "Authorization URL created", {
                    "authorization_url": body.get('authorization_url'),
                    "access_code": body.get('access_code'),
                    "reference": body.get('reference') or reference,
                }
            return False, data.get('message') or 'Failed to initialize card payment', data
        except requests.Timeout:
            logger.error(f"Paystack initialize timed out after {config['timeout']}s")
            return False, "Card processor request timed out", None
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Paystack initialize error: {str(e)}")
            return False, str(e), None

    @staticmethod
    def verify_signature(raw_body, signature):
        """Check the x-paystack-signature header (HMAC-SHA512 of the raw body)."""
        secret = IntegrationConfigService.get_paystack_config().get('secret_key') or ''
        if not signature or not secret:
            return False
        expected = hmac.new(secret.encode(), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)

    @staticmethod
    def parse_webhook(payload):
        """
        Parse a Paystack event. Returns None when no ``data.reference`` is present.
        """
        if not isinstance(payload, dict):
            return None
        data = payload.get('data')
        if not isinstance(data, dict) or not data.get('reference'):
            return None

        event = payload.get('event')
        try:
            amount = Decimal(str(data['amount'])) / 100 if data.get('amount') is not None else None
        except InvalidOperation:
            amount = None
        return {
            'success': event == 'charge.success' or data.get('status') == 'success',
            'event': event,
            'status': data.get('status'),
            'reference': data.get('reference'),
            'amount': amount,
            'currency': data.get('currency'),
        }
