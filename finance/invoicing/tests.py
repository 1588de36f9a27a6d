from decimal import Decimal

from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from core.tests.factories import make_user
from ecommerce.order.models import Order
from finance.invoicing.models import Invoice
from finance.invoicing.services import InvoiceService, build_line_items


class InvoiceAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = make_user('shopper')
        self.client.force_authenticate(user=self.user)
        self.order = Order.objects.create(
            customer=self.user, created_by=self.user, fulfillment_type='delivery', payment_mode='pay_now',
            subtotal=Decimal('2000.00'), discounts=Decimal('100.00'), packaging_fee=Decimal('200.00'),
            delivery_fee=Decimal('300.00'), total=Decimal('2400.00'),
        )

    def test_create_invoice_for_order(self):
        resp = self.client.post('/api/invoices', {'orderId': self.order.pk}, format='json')

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        invoice = Invoice.objects.get(pk=resp.json()['data']['invoiceId'])
        self.assertRegex(invoice.invoice_number, r'^INV-\d{4}-\d{6}$')
        self.assertEqual(invoice.total, Decimal('2400.00'))
        self.assertEqual(invoice.balance_due, Decimal('2400.00'))
        self.assertEqual(invoice.fees, Decimal('500.00'))
        self.assertEqual([line['label'] for line in invoice.line_items], ['Items subtotal', 'Packaging', 'Delivery'])

    def test_second_invoice_is_conflict(self):
        InvoiceService().create_for_order(self.order)
        resp = self.client.post('/api/invoices', {'orderId': self.order.pk}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.json()['error']['code'], 'INVOICE_EXISTS')
        self.assertEqual(Invoice.objects.filter(order=self.order).count(), 1)

    def test_unknown_order(self):
        resp = self.client.post('/api/invoices', {'orderId': 999999}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_missing_order_id(self):
        resp = self.client.post('/api/invoices', {}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_fetch_invoice(self):
        invoice = InvoiceService().create_for_order(self.order)
        resp = self.client.get(f'/api/invoices/{invoice.pk}')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()['data']['invoice']['invoice_number'], invoice.invoice_number)

    def test_invoice_hidden_from_other_customers(self):
        invoice = InvoiceService().create_for_order(self.order)
        self.client.force_authenticate(user=make_user('nosy'))
        self.assertEqual(self.client.get(f'/api/invoices/{invoice.pk}').status_code, status.HTTP_404_NOT_FOUND)
        resp = self.client.post('/api/invoices', {'orderId': self.order.pk}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)


class LineItemTests(APITestCase):

    def test_zero_fees_are_left_out(self):
        user = make_user()
        order = Order(customer=user, created_by=user, fulfillment_type='pickup', payment_mode='cash',
                      subtotal=Decimal('500.00'), total=Decimal('500.00'))
        self.assertEqual(build_line_items(order), [{'label': 'Items subtotal', 'amount': '500.00'}])
