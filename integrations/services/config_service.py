"""
Payment processor configuration.

Reads Daraja and Paystack credentials from Django settings (populated from the
environment) and derives the endpoints and default callback URLs the adapters use.
"""
from typing import Dict, Any
from django.conf import settings
import logging

logger = logging.getLogger(__name__)


class IntegrationConfigService:
    """
    Centralized access to processor settings with sane defaults.
    """

    MPESA_BASE_URLS = {
        'sandbox': 'https://sandbox.safaricom.co.ke',
        'production': 'https://api.safaricom.co.ke',
    }

    PAYSTACK_BASE_URL = 'https://api.paystack.co'

    @classmethod
    def get_timeout(cls) -> float:
        return float(getattr(settings, 'PAYMENT_PROCESSOR_TIMEOUT', 15))

    @classmethod
    def get_mpesa_config(cls) -> Dict[str, Any]:
        env = getattr(settings, 'MPESA_ENV', 'sandbox')
        base_url = cls.MPESA_BASE_URLS['production'] if env == 'production' else cls.MPESA_BASE_URLS['sandbox']
        callback_url = getattr(settings, 'MPESA_CALLBACK_URL', '') or \
            f"{settings.API_BASE_URL}/api/payments/webhooks/mpesa"
        return {
            'env': env,
            'base_url': base_url,
            'consumer_key': getattr(settings, 'MPESA_CONSUMER_KEY', ''),
            'consumer_secret': getattr(settings, 'MPESA_CONSUMER_SECRET', ''),
            'short_code': getattr(settings, 'MPESA_SHORTCODE', ''),
            'passkey': getattr(settings, 'MPESA_PASSKEY', ''),
            'callback_url': callback_url,
            'timeout': cls.get_timeout(),
        }

    @classmethod
    def mpesa_callback_pinned(cls) -> bool:
        """True when MPESA_CALLBACK_URL is set explicitly rather than derived."""
        return bool(getattr(settings, 'MPESA_CALLBACK_URL', ''))

    @classmethod
    def get_paystack_config(cls) -> Dict[str, Any]:
        callback_url = getattr(settings, 'PAYSTACK_CALLBACK_URL', '') or \
            f"{settings.FRONTEND_BASE_URL}/payments/callback"
        return {
            'base_url': cls.PAYSTACK_BASE_URL,
            'secret_key': getattr(settings, 'PAYSTACK_SECRET_KEY', ''),
            'callback_url': callback_url,
            'currency': getattr(settings, 'PAYMENT_CURRENCY', 'KES'),
            'verify_signature': getattr(settings, 'PAYSTACK_VERIFY_WEBHOOK_SIGNATURE', False),
            'timeout': cls.get_timeout(),
        }

    @classmethod
    def mpesa_configured(cls) -> bool:
        config = cls.get_mpesa_config()
        missing = [k for k in ('consumer_key', 'consumer_secret', 'short_code', 'passkey') if not config.get(k)]
        if missing:
            logger.warning(f"M-Pesa settings incomplete, missing: {', '.join(missing)}")
        return not missing

    @classmethod
    def paystack_configured(cls) -> bool:
        if not cls.get_paystack_config().get('secret_key'):
            logger.warning("Paystack secret key not configured")
            return False
        return True
