from decimal import Decimal
from unittest import mock

from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from addresses.models import AddressBook
from core.events import LoggingEventPublisher
from core.tests.factories import make_cart, make_packaging, make_product, make_user
from ecommerce.cart.models import Cart, Coupon
from ecommerce.order.models import Order
from finance.invoicing.models import Invoice


class OrderAssemblyTests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = make_user('shopper')
        self.client.force_authenticate(user=self.user)
        self.product, self.sku = make_product(price='1000.00')
        self.cart = make_cart(self.user, [(self.product, self.sku, 2, '1000.00')])
        self.packaging = make_packaging('Gift box', '200.00', is_default=True)

    def _place(self, **overrides):
        payload = {'type': 'pickup', 'location': 'in_shop', 'paymentPreference': {'mode': 'cash'}}
        payload.update(overrides)
        return self.client.post('/api/orders', payload, format='json')

    def test_order_total_includes_default_packaging(self):
        resp = self._place()

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.assertEqual(order.subtotal, Decimal('2000.00'))
        self.assertEqual(order.packaging_fee, Decimal('200.00'))
        self.assertEqual(order.total, Decimal('2200.00'))
        self.assertEqual(order.status, Order.STATUS_PLACED)
        self.assertEqual(order.payment_status, Order.PAYMENT_UNPAID)
        self.assertRegex(order.order_number, r'^ORD-\d{4}-[0-9A-F]{8}$')
        self.assertEqual(order.metadata['packaging'], {'id': self.packaging.pk, 'name': 'Gift box', 'price': '200.00'})

        item = order.items.get()
        self.assertEqual(item.title, 'Ankara Tote')
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.unit_price, Decimal('1000.00'))

    def test_invoice_is_issued_with_the_order(self):
        resp = self._place()

        invoice = Invoice.objects.get(order_id=resp.json()['data']['orderId'])
        self.assertEqual(resp.json()['data']['invoiceId'], invoice.pk)
        self.assertEqual(invoice.total, Decimal('2200.00'))
        self.assertEqual(invoice.balance_due, Decimal('2200.00'))
        self.assertEqual(invoice.payment_status, Invoice.STATUS_PENDING)
        self.assertEqual(invoice.line_items, [
            {'label': 'Items subtotal', 'amount': '2000.00'},
            {'label': 'Packaging', 'amount': '200.00'},
        ])

    def test_cart_is_converted(self):
        self._place()
        self.cart.refresh_from_db()
        self.assertEqual(self.cart.status, Cart.STATUS_CONVERTED)

    def test_cart_price_is_frozen_even_if_catalog_changes(self):
        self.sku.price = Decimal('1500.00')
        self.sku.save()
        resp = self._place()
        order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.assertEqual(order.subtotal, Decimal('2000.00'))

    def test_empty_cart_is_rejected(self):
        self.cart.items.all().delete()
        resp = self._place()
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.json()['message'], 'Cart is empty')
        self.assertFalse(Order.objects.exists())

    def test_explicit_packaging_choice(self):
        bag = make_packaging('Paper bag', '50.00')
        resp = self._place(packagingOptionId=bag.pk)
        order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.assertEqual(order.total, Decimal('2050.00'))

    def test_valid_coupon_is_applied_and_recorded(self):
        coupon = Coupon.objects.create(code='SAVE10', name='Ten off', discount_type='percentage',
                                       discount_value=Decimal('10'))
        resp = self._place(couponCode='save10')

        order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.assertEqual(order.discounts, Decimal('200.00'))
        self.assertEqual(order.total, Decimal('2000.00'))
        self.assertEqual(order.metadata['coupon']['code'], 'SAVE10')
        self.assertEqual(order.metadata['coupon']['discount_amount'], '200.00')
        coupon.refresh_from_db()
        self.assertEqual(coupon.used_count, 1)

    def test_invalid_coupon_is_ignored(self):
        Coupon.objects.create(code='BIGSPEND', name='Big spender', discount_type='fixed',
                              discount_value=Decimal('500'), minimum_order_amount=Decimal('10000'))

        with self.assertLogs('ecommerce.order.checkout', level='WARNING'):
            resp = self._place(couponCode='BIGSPEND')

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.assertEqual(order.discounts, Decimal('0.00'))
        self.assertEqual(order.total, Decimal('2200.00'))

    def test_unknown_coupon_is_ignored(self):
        resp = self._place(couponCode='NOPE')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)

    def test_pay_now_marks_payment_pending(self):
        resp = self._place(paymentPreference={'mode': 'pay_now', 'method': 'mpesa_stk'})
        order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.assertEqual(order.payment_status, Order.PAYMENT_PENDING)
        self.assertEqual(order.payment_method, 'mpesa_stk')

    def test_delivery_order_uses_own_address(self):
        address = AddressBook.objects.create(user=self.user, first_name='Wanjiru', phone='0722000000',
                                             county='Nairobi', street_name='Moi Avenue')
        resp = self._place(type='delivery', addressId=address.pk)
        order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.assertEqual(order.address, address)

        other = AddressBook.objects.create(user=make_user('someone'), first_name='Otieno', phone='0711000000',
                                           county='Kisumu', street_name='Oginga Odinga St')
        make_cart(self.user, [(self.product, self.sku, 1, '1000.00')])
        resp = self._place(type='delivery', addressId=other.pk)
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_scheduled_order_requires_time(self):
        resp = self._place(timing={'isScheduled': True})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_cannot_order_for_someone_else(self):
        other = make_user('other')
        resp = self._place(customerId=other.pk)
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    def test_staff_can_order_on_behalf_of_customer(self):
        staff = make_user('cashier', is_staff=True)
        self.client.force_authenticate(user=staff)

        resp = self._place(customerId=self.user.pk)

        order = Order.objects.get(pk=resp.json()['data']['orderId'])
        self.assertEqual(order.customer, self.user)
        self.assertEqual(order.created_by, staff)

    @mock.patch.object(LoggingEventPublisher, 'publish')
    def test_order_and_invoice_events(self, mock_publish):
        resp = self._place()
        order_id = resp.json()['data']['orderId']
        topics = [call.args[0] for call in mock_publish.call_args_list]
        self.assertEqual(topics, ['invoice.created', 'order.created'])
        self.assertEqual(mock_publish.call_args_list[-1].args[1]['orderId'], order_id)


class OrderReadAndStatusTests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = make_user('shopper')
        product, sku = make_product()
        make_cart(self.user, [(product, sku, 1, '1000.00')])
        self.client.force_authenticate(user=self.user)
        resp = self.client.post('/api/orders', {'type': 'pickup', 'paymentPreference': {'mode': 'cash'}},
                                format='json')
        self.order_id = resp.json()['data']['orderId']

    def test_owner_sees_order_with_invoice(self):
        resp = self.client.get(f'/api/orders/{self.order_id}')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        order = resp.json()['data']['order']
        self.assertEqual(order['pricing']['total'], '1000.00')
        self.assertEqual(order['invoice']['payment_status'], 'PENDING')
        self.assertIsNone(order['receipt'])

    def test_other_customers_get_not_found(self):
        self.client.force_authenticate(user=make_user('nosy'))
        resp = self.client.get(f'/api/orders/{self.order_id}')
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_only_shows_own_orders(self):
        resp = self.client.get('/api/orders')
        self.assertEqual(resp.json()['data']['pagination']['total_items'], 1)

        self.client.force_authenticate(user=make_user('nosy'))
        resp = self.client.get('/api/orders')
        self.assertEqual(resp.json()['data']['pagination']['total_items'], 0)

    def test_status_update_is_staff_only(self):
        resp = self.client.patch(f'/api/orders/{self.order_id}/status', {'status': 'PACKED'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    @mock.patch.object(LoggingEventPublisher, 'publish')
    def test_staff_updates_status(self, mock_publish):
        self.client.force_authenticate(user=make_user('admin', is_staff=True))

        resp = self.client.patch(f'/api/orders/{self.order_id}/status', {'status': 'PACKED'}, format='json')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(Order.objects.get(pk=self.order_id).status, 'PACKED')
        mock_publish.assert_called_once_with('order.updated', {'orderId': self.order_id, 'status': 'PACKED'})

    def test_unknown_status_is_rejected(self):
        self.client.force_authenticate(user=make_user('admin', is_staff=True))
        resp = self.client.patch(f'/api/orders/{self.order_id}/status', {'status': 'LOST'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
