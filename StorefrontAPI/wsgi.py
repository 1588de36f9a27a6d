"""
WSGI config for StorefrontAPI project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'StorefrontAPI.settings')

application = get_wsgi_application()
