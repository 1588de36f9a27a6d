from django.urls import re_path

from core.consumers import SettlementConsumer

websocket_urlpatterns = [
    re_path(r'ws/settlement/$', SettlementConsumer.as_asgi()),
]
