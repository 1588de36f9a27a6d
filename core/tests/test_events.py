from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.test import SimpleTestCase, override_settings

from core.events import (
    SETTLEMENT_GROUP,
    ChannelsEventPublisher,
    LoggingEventPublisher,
    get_event_publisher,
    order_group,
)


class ChannelsEventPublisherTests(SimpleTestCase):

    def _join(self, layer, group):
        channel = async_to_sync(layer.new_channel)()
        async_to_sync(layer.group_add)(group, channel)
        return channel

    def test_event_reaches_settlement_and_order_groups(self):
        layer = get_channel_layer()
        staff_channel = self._join(layer, SETTLEMENT_GROUP)
        order_channel = self._join(layer, order_group(7))

        ChannelsEventPublisher().publish('payment.updated', {'paymentId': 3, 'orderId': 7, 'status': 'SUCCESS'})

        for channel in (staff_channel, order_channel):
            message = async_to_sync(layer.receive)(channel)
            self.assertEqual(message['type'], 'settlement.event')
            self.assertEqual(message['event'], 'payment.updated')
            self.assertEqual(message['payload']['status'], 'SUCCESS')

    def test_event_without_order_only_goes_to_settlement_group(self):
        layer = get_channel_layer()
        staff_channel = self._join(layer, SETTLEMENT_GROUP)

        ChannelsEventPublisher().publish('invoice.created', {'invoiceId': 1})

        message = async_to_sync(layer.receive)(staff_channel)
        self.assertEqual(message['payload'], {'invoiceId': 1})


class GetEventPublisherTests(SimpleTestCase):

    @override_settings(SETTLEMENT_EVENT_PUBLISHER='core.events.LoggingEventPublisher')
    def test_publisher_class_comes_from_settings(self):
        self.assertIsInstance(get_event_publisher(), LoggingEventPublisher)

    def test_logging_publisher_never_raises(self):
        with self.assertLogs('core.events', level='INFO') as logs:
            LoggingEventPublisher().publish('order.created', {'orderId': 1})
        self.assertIn('order.created', logs.output[0])
