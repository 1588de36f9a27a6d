"""Settings used by the test suite: sqlite in memory, no migrations, recorded events."""
from .settings import *  # noqa: F401,F403

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}


class DisableMigrations:
    def __contains__(self, item):
        return True

    def __getitem__(self, item):
        return None


MIGRATION_MODULES = DisableMigrations()

CHANNEL_LAYERS = {
    'default': {'BACKEND': 'channels.layers.InMemoryChannelLayer'}
}

SETTLEMENT_EVENT_PUBLISHER = 'core.events.LoggingEventPublisher'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = 'memory://'

MPESA_CONSUMER_KEY = 'test-key'
MPESA_CONSUMER_SECRET = 'test-secret'
MPESA_SHORTCODE = '174379'
MPESA_PASSKEY = 'test-passkey'
PAYSTACK_SECRET_KEY = 'sk_test_secret'

API_BASE_URL = 'https://api.example.test'
FRONTEND_BASE_URL = 'https://shop.example.test'

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
