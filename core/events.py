"""
Settlement event publishing.

Order assembly and payment orchestration announce state transitions
(``order.created``, ``invoice.created``, ``payment.updated``, ``receipt.created``,
``order.updated``) through an EventPublisher. Publishing is fire-and-forget:
a broken transport is logged and never fails the business operation.
"""
import json
import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

SETTLEMENT_GROUP = 'settlement_updates'


def order_group(order_id) -> str:
    return f'order_{order_id}'


class EventPublisher:
    """Interface: publish(topic, payload)."""

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingEventPublisher(EventPublisher):
    """Writes events to the log only. Used in tests and when no transport is wanted."""

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        logger.info(f"event {topic}: {payload}")


class ChannelsEventPublisher(EventPublisher):
    """
    Broadcast events over the Django Channels layer.

    Every event goes to the shared settlement group; events carrying an
    ``orderId`` are also sent to that order's group.
    """

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            channel_layer = get_channel_layer()
            if not channel_layer:
                return

            # Channel layers need msgpack-safe values (no Decimal/UUID/datetime)
            data = json.loads(json.dumps(payload, cls=DjangoJSONEncoder))
            message = {
                'type': 'settlement.event',
                'event': topic,
                'payload': data,
                'timestamp': timezone.now().isoformat(),
            }

            async_to_sync(channel_layer.group_send)(SETTLEMENT_GROUP, message)

            if data.get('orderId'):
                async_to_sync(channel_layer.group_send)(order_group(data['orderId']), message)
        except Exception as e:
            logger.error(f"Error publishing event {topic}: {e}")


def get_event_publisher() -> EventPublisher:
    """Instantiate the publisher named by the SETTLEMENT_EVENT_PUBLISHER setting."""
    path = getattr(settings, 'SETTLEMENT_EVENT_PUBLISHER', 'core.events.ChannelsEventPublisher')
    return import_string(path)()
