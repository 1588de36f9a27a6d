"""
WebSocket consumer that relays settlement events to storefront and admin clients.
"""
import json
from channels.generic.websocket import AsyncWebsocketConsumer
from channels.db import database_sync_to_async
import logging

from .events import SETTLEMENT_GROUP, order_group

logger = logging.getLogger(__name__)


class SettlementConsumer(AsyncWebsocketConsumer):
    """
    Staff join the shared settlement group on connect. Any authenticated
    user may subscribe to the orders they own.
    """

    async def connect(self):
        self.user = self.scope.get("user")
        if not self.user or not self.user.is_authenticated:
            await self.close()
            return

        self.order_groups = set()
        if self.user.is_staff:
            await self.channel_layer.group_add(SETTLEMENT_GROUP, self.channel_name)

        await self.accept()
        logger.info(f"Settlement socket connected for user {self.user.id}")

    async def disconnect(self, close_code):
        user = getattr(self, 'user', None)
        if user and user.is_authenticated and user.is_staff:
            await self.channel_layer.group_discard(SETTLEMENT_GROUP, self.channel_name)
        for group in getattr(self, 'order_groups', set()):
            await self.channel_layer.group_discard(group, self.channel_name)

    async def receive(self, text_data):
        try:
            data = json.loads(text_data)
        except json.JSONDecodeError:
            logger.error("Invalid JSON received on settlement socket")
            return

        message_type = data.get('type')
        order_id = data.get('order_id')

        if message_type == 'subscribe_order' and order_id:
            if not await self._can_watch_order(order_id):
                await self.send(text_data=json.dumps({'type': 'error', 'message': 'Order not found'}))
                return
            group = order_group(order_id)
            await self.channel_layer.group_add(group, self.channel_name)
            self.order_groups.add(group)
        elif message_type == 'unsubscribe_order' and order_id:
            group = order_group(order_id)
            await self.channel_layer.group_discard(group, self.channel_name)
            self.order_groups.discard(group)
        else:
            logger.warning(f"Unknown settlement socket message: {data}")

    @database_sync_to_async
    def _can_watch_order(self, order_id):
        from ecommerce.order.models import Order
        try:
            orders = Order.objects.filter(pk=int(order_id))
        except (ValueError, TypeError):
            return False
        if not self.user.is_staff:
            orders = orders.filter(customer=self.user)
        return orders.exists()

    async def settlement_event(self, event):
        await self.send(text_data=json.dumps({
            'event': event['event'],
            'payload': event['payload'],
            'timestamp': event.get('timestamp'),
        }))
