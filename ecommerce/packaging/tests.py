from decimal import Decimal

from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from core.tests.factories import make_packaging, make_user
from ecommerce.packaging.models import PackagingOption
from ecommerce.packaging.services import PackagingService


class PackagingOptionAPITests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = make_user('admin', is_staff=True)
        self.client.force_authenticate(user=self.admin)

    def test_create_and_list(self):
        resp = self.client.post('/api/packaging-options', {'name': 'Gift box', 'price': '200.00'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)

        listing = self.client.get('/api/packaging-options?sort=price:asc')
        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        data = listing.json()['data']
        self.assertEqual(data['pagination']['total_items'], 1)
        self.assertEqual(data['packaging'][0]['name'], 'Gift box')

    def test_duplicate_name_is_conflict_regardless_of_case(self):
        make_packaging('Gift box')
        resp = self.client.post('/api/packaging-options', {'name': 'GIFT BOX', 'price': '150.00'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(resp.json()['success'])

    def test_customers_cannot_create(self):
        self.client.force_authenticate(user=make_user('shopper'))
        resp = self.client.post('/api/packaging-options', {'name': 'Bag', 'price': '50.00'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    def test_set_default_moves_the_flag(self):
        old = make_packaging('Paper bag', '50.00', is_default=True)
        new = make_packaging('Gift box', '200.00')

        resp = self.client.patch(f'/api/packaging-options/{new.pk}/set-default')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        old.refresh_from_db()
        new.refresh_from_db()
        self.assertFalse(old.is_default)
        self.assertTrue(new.is_default)
        self.assertEqual(self.client.get('/api/packaging-options/default').json()['data']['packaging']['id'], new.pk)

    def test_inactive_option_cannot_become_default(self):
        option = make_packaging('Crate', '500.00', is_active=False)
        resp = self.client.patch(f'/api/packaging-options/{option.pk}/set-default')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_deactivating_clears_default(self):
        option = make_packaging('Gift box', is_default=True)
        resp = self.client.patch(f'/api/packaging-options/{option.pk}', {'is_active': False}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        option.refresh_from_db()
        self.assertFalse(option.is_default)
        self.assertEqual(self.client.get('/api/packaging-options/default').status_code, status.HTTP_404_NOT_FOUND)

    def test_deleting_default_promotes_cheapest_active_option(self):
        default = make_packaging('Gift box', '200.00', is_default=True)
        make_packaging('Wooden crate', '400.00')
        cheaper = make_packaging('Paper bag', '50.00')
        make_packaging('Cloth bag', '10.00', is_active=False)

        resp = self.client.delete(f'/api/packaging-options/{default.pk}')

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.json()['data']['promoted_default'], cheaper.pk)
        cheaper.refresh_from_db()
        self.assertTrue(cheaper.is_default)
        self.assertFalse(PackagingOption.objects.filter(pk=default.pk).exists())

    def test_active_listing_puts_default_first(self):
        make_packaging('Paper bag', '50.00')
        default = make_packaging('Gift box', '200.00', is_default=True)
        make_packaging('Crate', '500.00', is_active=False)

        resp = self.client.get('/api/packaging-options/active')

        ids = [option['id'] for option in resp.json()['data']['packaging']]
        self.assertEqual(ids[0], default.pk)
        self.assertEqual(len(ids), 2)


class ResolveForOrderTests(APITestCase):

    def test_explicit_active_option_wins(self):
        make_packaging('Gift box', '200.00', is_default=True)
        chosen = make_packaging('Paper bag', '50.00')
        self.assertEqual(PackagingService.resolve_for_order(chosen.pk), chosen)

    def test_falls_back_to_default(self):
        default = make_packaging('Gift box', '200.00', is_default=True)
        inactive = make_packaging('Crate', '500.00', is_active=False)
        self.assertEqual(PackagingService.resolve_for_order(inactive.pk), default)
        self.assertEqual(PackagingService.resolve_for_order(None), default)

    def test_no_default_means_no_packaging(self):
        self.assertIsNone(PackagingService.resolve_for_order(None))

    def test_create_as_default_forces_single_default(self):
        first = PackagingService.create('Gift box', Decimal('200'), is_default=True)
        second = PackagingService.create('Paper bag', Decimal('50'), is_default=True)
        first.refresh_from_db()
        self.assertFalse(first.is_default)
        self.assertTrue(second.is_default)
