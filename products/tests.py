"""Catalog API tests."""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from orders.models import Order, OrderItem

from .models import Category, Product

User = get_user_model()


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class CatalogApiTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		cls.admin = User.objects.create_user(
			username='catalog_admin', email='catalog_admin@example.com', password='12345678', role=User.ROLE_ADMIN,
		)
		cls.manager = User.objects.create_user(
			username='catalog_pm', email='catalog_pm@example.com', password='12345678', role='product_manager',
		)
		cls.customer = User.objects.create_user(
			username='catalog_customer', email='catalog_customer@example.com', password='12345678',
		)
		cls.category = Category.objects.create(name='Kitchen')
		cls.empty_category = Category.objects.create(name='Garden')
		cls.kettle = Product.objects.create(
			category=cls.category, name='Kettle', description='Boils water', price=Decimal('40.00'), stock=5,
		)
		cls.toaster = Product.objects.create(
			category=cls.category, name='Toaster', description='Two slots', price=Decimal('25.00'), stock=0,
		)
		cls.prototype = Product.objects.create(
			category=cls.category, name='Prototype Blender', description='Not ready', price=Decimal('99.00'),
			stock=3, visibility=Product.VISIBILITY_HIDDEN,
		)

	def _client(self, user=None):
		client = APIClient()
		if user is not None:
			client.force_authenticate(user=user)
		return client

	def test_public_list_shows_visible_products_only(self):
		res = self._client().get('/api/products/')
		self.assertEqual(res.status_code, 200)
		self.assertTrue(res.data['success'])
		names = {p['name'] for p in res.data['data']}
		self.assertEqual(names, {'Kettle', 'Toaster'})
		self.assertEqual(res.data['pagination']['totalItems'], 2)

	def test_hidden_product_is_404_for_customers(self):
		res = self._client(self.customer).get(f'/api/products/{self.prototype.pk}/')
		self.assertEqual(res.status_code, 404)
		self.assertFalse(res.data['success'])

	def test_managers_see_hidden_products(self):
		res = self._client(self.manager).get('/api/products/')
		self.assertEqual(res.data['pagination']['totalItems'], 3)

	def test_detail_includes_reviews_and_category_name(self):
		res = self._client().get(f'/api/products/{self.kettle.pk}/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['categoryName'], 'Kitchen')
		self.assertEqual(res.data['reviews'], [])

	def test_filters_and_search(self):
		client = self._client()
		res = client.get('/api/products/?inStock=true')
		self.assertEqual([p['name'] for p in res.data['data']], ['Kettle'])
		res = client.get('/api/products/?maxPrice=30')
		self.assertEqual([p['name'] for p in res.data['data']], ['Toaster'])
		res = client.get('/api/products/?search=boils')
		self.assertEqual([p['name'] for p in res.data['data']], ['Kettle'])
		res = client.get('/api/products/?ordering=-price')
		self.assertEqual([p['name'] for p in res.data['data']], ['Kettle', 'Toaster'])

	def test_customer_cannot_write(self):
		res = self._client(self.customer).post('/api/products/', data={
			'name': 'Sneaky', 'description': 'x', 'price': '1.00', 'category': self.category.pk,
		}, format='json')
		self.assertEqual(res.status_code, 403)
		res = self._client().post('/api/products/', data={'name': 'Anon'}, format='json')
		self.assertEqual(res.status_code, 401)

	def test_product_manager_can_create(self):
		res = self._client(self.manager).post('/api/products/', data={
			'name': 'Mixer', 'description': 'Mixes', 'price': '55.50', 'stock': 4, 'category': self.category.pk,
		}, format='json')
		self.assertEqual(res.status_code, 201)
		self.assertEqual(res.data['price'], Decimal('55.50'))
		self.assertEqual(res.data['visibility'], Product.VISIBILITY_VISIBLE)

	def test_discount_above_price_rejected(self):
		res = self._client(self.admin).patch(
			f'/api/products/{self.kettle.pk}/', data={'discountPrice': '45.00'}, format='json',
		)
		self.assertEqual(res.status_code, 400)
		self.assertIn('discountPrice', res.data['errors'])
		res = self._client(self.admin).patch(
			f'/api/products/{self.kettle.pk}/', data={'discountPrice': '35.00'}, format='json',
		)
		self.assertEqual(res.status_code, 200)

	def test_delete_unordered_product_removes_it(self):
		res = self._client(self.admin).delete(f'/api/products/{self.toaster.pk}/')
		self.assertEqual(res.status_code, 204)
		self.assertFalse(Product.objects.filter(pk=self.toaster.pk).exists())

	def test_delete_ordered_product_archives_it(self):
		order = Order.objects.create(
			user=self.customer,
			shipping_address='1 Street',
			shipping_city='Toronto',
			shipping_postal_code='M5V',
			shipping_country='CA',
			payment_method='PayPal',
			total_price=Decimal('40.00'),
		)
		OrderItem.objects.create(order=order, product=self.kettle, name='Kettle', price=Decimal('40.00'), qty=1)

		res = self._client(self.admin).delete(f'/api/products/{self.kettle.pk}/')
		self.assertEqual(res.status_code, 204)
		self.kettle.refresh_from_db()
		self.assertEqual(self.kettle.visibility, Product.VISIBILITY_ARCHIVED)
		public = self._client().get('/api/products/')
		self.assertNotIn('Kettle', {p['name'] for p in public.data['data']})

	def test_categories_report_product_counts(self):
		res = self._client().get('/api/categories/')
		self.assertEqual(res.status_code, 200)
		counts = {c['name']: c['productCount'] for c in res.data['data']}
		self.assertEqual(counts, {'Garden': 0, 'Kitchen': 3})

	def test_category_write_requires_manager(self):
		res = self._client(self.customer).post('/api/categories/', data={'name': 'Toys'}, format='json')
		self.assertEqual(res.status_code, 403)
		res = self._client(self.admin).post('/api/categories/', data={'name': 'Toys'}, format='json')
		self.assertEqual(res.status_code, 201)
		self.assertEqual(res.data['productCount'], 0)
