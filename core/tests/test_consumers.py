import json
from unittest import mock

from asgiref.sync import async_to_sync
from django.test import SimpleTestCase

from core.consumers import SettlementConsumer


class SettlementConsumerTests(SimpleTestCase):
    databases = {'default'}


    def make_consumer(self):
        consumer = SettlementConsumer()
        consumer.user = mock.Mock(is_staff=False, is_authenticated=True, id=1)
        consumer.order_groups = set()
        consumer.channel_name = 'test.channel'
        consumer.channel_layer = mock.AsyncMock()
        consumer.send = mock.AsyncMock()
        return consumer

    def test_non_numeric_order_id_cannot_be_watched(self):
        consumer = self.make_consumer()
        self.assertFalse(async_to_sync(consumer._can_watch_order)('abc'))

    def test_subscribe_with_non_numeric_order_id_sends_error_frame(self):
        consumer = self.make_consumer()

        async_to_sync(consumer.receive)(json.dumps({'type': 'subscribe_order', 'order_id': 'abc'}))

        consumer.send.assert_awaited_once()
        frame = json.loads(consumer.send.await_args.kwargs['text_data'])
        self.assertEqual(frame, {'type': 'error', 'message': 'Order not found'})
        consumer.channel_layer.group_add.assert_not_awaited()
        self.assertEqual(consumer.order_groups, set())
