"""Dashboard reporting and pipeline builder tests."""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import Count, Sum
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from activity import services as audit
from activity.models import ActivityLog
from dashboard.pipeline import Bucket, Group, Limit, Match, Pipeline, PipelineError, Skip, Sort
from newsletter.models import NewsletterSubscriber
from orders.models import Order, OrderItem
from products.models import Category, Product
from support.models import SupportTicket


def _make_order(user, product, qty=1, paid=False):
	price = Decimal(str(product.price))
	order = Order.objects.create(
		user=user,
		shipping_address='1 Test Street',
		shipping_city='Cairo',
		shipping_postal_code='12345',
		shipping_country='Egypt',
		payment_method='PayPal',
		items_price=price * qty,
		total_price=price * qty,
		is_paid=paid,
	)
	OrderItem.objects.create(order=order, product=product, name=product.name, price=price, qty=qty)
	return order


class PipelineValidationTests(TestCase):
	"""Malformed pipelines are rejected before they reach the database."""

	def test_empty_match_rejected(self):
		with self.assertRaises(PipelineError):
			Pipeline().match().validate()

	def test_stage_after_limit_rejected(self):
		with self.assertRaises(PipelineError):
			Pipeline().limit(5).sort('id').validate()

	def test_negative_skip_and_zero_limit_rejected(self):
		with self.assertRaises(PipelineError):
			Pipeline([Skip(-1)]).validate()
		with self.assertRaises(PipelineError):
			Pipeline([Limit(0)]).validate()
		with self.assertRaises(PipelineError):
			Pipeline([Limit(True)]).validate()

	def test_unknown_bucket_unit_rejected(self):
		with self.assertRaises(PipelineError):
			Pipeline().group({'bucket': Bucket('created_at', 'hour')}, n=Count('id')).validate()

	def test_second_group_rejected(self):
		pipeline = Pipeline().group({'user': 'user'}, n=Count('id')).group({'n': 'n'})
		with self.assertRaises(PipelineError):
			pipeline.validate()

	def test_sort_after_group_must_use_group_outputs(self):
		with self.assertRaises(PipelineError):
			Pipeline().group({'user': 'user'}, n=Count('id')).sort('-total_price').validate()
		Pipeline().group({'user': 'user'}, n=Count('id')).sort('-n').validate()

	def test_non_aggregate_rejected(self):
		with self.assertRaises(PipelineError):
			Pipeline().group({'user': 'user'}, n='id').validate()

	def test_foreign_stage_rejected(self):
		with self.assertRaises(PipelineError):
			Pipeline([Match({'is_paid': True}), {'$limit': 3}]).validate()

	def test_valid_pipeline_passes(self):
		pipeline = Pipeline([
			Match({'is_paid': True}),
			Group(by={'bucket': Bucket('created_at', 'month')}, aggregates={'revenue': Sum('total_price')}),
			Sort(('bucket',)),
			Skip(0),
			Limit(12),
		])
		self.assertIs(pipeline.validate(), pipeline)
		self.assertEqual(len(pipeline), 5)


class PipelineExecutionTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.alice = User.objects.create_user(username='alice', email='alice@example.com', password='12345678')
		cls.bob = User.objects.create_user(username='bob', email='bob@example.com', password='12345678')
		category = Category.objects.create(name='Cat')
		cls.product = Product.objects.create(category=category, name='P', description='d', price='10.00', stock=100)
		for _ in range(3):
			_make_order(cls.alice, cls.product, paid=True)
		_make_order(cls.bob, cls.product, paid=True)
		_make_order(cls.bob, cls.product, paid=False)

	def test_group_sort_limit(self):
		rows = (
			Pipeline()
			.match(is_paid=True)
			.group({'user': 'user'}, orders=Count('id'), revenue=Sum('total_price'))
			.sort('-orders')
			.limit(1)
			.execute(Order.objects.all())
		)
		self.assertEqual(len(rows), 1)
		self.assertEqual(rows[0]['user'], self.alice.pk)
		self.assertEqual(rows[0]['orders'], 3)

	def test_match_after_group_filters_groups(self):
		rows = (
			Pipeline()
			.group({'user': 'user'}, orders=Count('id'))
			.match(orders__gte=3)
			.execute(Order.objects.all())
		)
		self.assertEqual([row['user'] for row in rows], [self.alice.pk])

	def test_skip_then_limit(self):
		rows = Pipeline().sort('id').skip(1).limit(2).execute(Order.objects.all())
		ids = list(Order.objects.order_by('id').values_list('id', flat=True))
		self.assertEqual([o.pk for o in rows], ids[1:3])


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class DashboardApiTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.admin = User.objects.create_user(
			username='admin_user', email='admin@example.com', password='12345678', role='admin',
		)
		cls.customer = User.objects.create_user(
			username='customer', email='customer@example.com', password='12345678',
		)
		cls.category = Category.objects.create(name='Cat')
		cls.product = Product.objects.create(category=cls.category, name='Low', description='d', price='10.00', stock=2)

	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.admin)

	def _age_everything(self, days=30):
		old = timezone.now() - timedelta(days=days)
		User = get_user_model()
		User.objects.update(date_joined=old)
		Product.objects.update(created_at=old)
		Category.objects.update(created_at=old)
		Order.objects.update(created_at=old)
		SupportTicket.objects.update(created_at=old)
		NewsletterSubscriber.objects.update(created_at=old)

	def test_overview_requires_admin(self):
		client = APIClient()
		client.force_authenticate(user=self.customer)
		self.assertEqual(client.get('/api/dashboard/overview/').status_code, 403)
		self.assertEqual(APIClient().get('/api/dashboard/overview/').status_code, 401)

	def test_overview_7d_returns_zero_summaries_when_window_is_empty(self):
		_make_order(self.customer, self.product, paid=True)
		SupportTicket.objects.create(customer_name='C', customer_email='c@example.com', subject='Help', message='...')
		NewsletterSubscriber.objects.create(email='news@example.com')
		self._age_everything()

		res = self.client.get('/api/dashboard/overview/?period=7d')
		self.assertEqual(res.status_code, 200)
		data = res.data['data']
		self.assertEqual(data['period'], '7d')
		self.assertEqual(data['users']['totalUsers'], 0)
		self.assertEqual(data['products']['totalProducts'], 0)
		self.assertEqual(data['products']['totalStock'], 0)
		self.assertEqual(data['products']['averagePrice'], 0.0)
		self.assertEqual(data['orders']['totalOrders'], 0)
		self.assertEqual(data['orders']['totalRevenue'], 0.0)
		self.assertEqual(data['orders']['averageOrderValue'], 0.0)
		self.assertEqual(data['categories']['totalCategories'], 0)
		self.assertEqual(data['support']['totalTickets'], 0)
		self.assertEqual(data['newsletter']['totalSubscribers'], 0)

	def test_overview_all_time_counts_and_low_stock(self):
		_make_order(self.customer, self.product, qty=2, paid=True)
		SupportTicket.objects.create(
			customer_name='C', customer_email='c@example.com', subject='Help', message='...', priority='urgent',
		)
		res = self.client.get('/api/dashboard/overview/')
		data = res.data['data']
		self.assertEqual(data['period'], 'none')
		self.assertEqual(data['users']['totalUsers'], 2)
		self.assertEqual(data['users']['admins'], 1)
		self.assertEqual(data['orders']['paidOrders'], 1)
		self.assertEqual(data['orders']['totalRevenue'], 20.0)
		self.assertEqual(data['support']['urgentTickets'], 1)
		self.assertEqual(data['lowStockProducts'][0]['id'], self.product.pk)

	def test_recent_activity_ignores_period(self):
		audit.record_activity(self.admin, audit.USER_UPDATED, 'old entry')
		ActivityLog.objects.update(created_at=timezone.now() - timedelta(days=60))
		res = self.client.get('/api/dashboard/overview/?period=7d')
		self.assertEqual(len(res.data['data']['recentActivity']), 1)
		self.assertEqual(res.data['data']['recentActivity'][0]['description'], 'old entry')

	def test_recent_activity_capped_at_ten(self):
		for i in range(12):
			audit.record_activity(self.admin, audit.USER_UPDATED, f'entry {i}')
		res = self.client.get('/api/dashboard/overview/')
		self.assertEqual(len(res.data['data']['recentActivity']), 10)
		self.assertEqual(res.data['data']['recentActivity'][0]['description'], 'entry 11')

	def test_sales_chart_groups_paid_orders(self):
		_make_order(self.customer, self.product, paid=True)
		_make_order(self.customer, self.product, paid=True)
		_make_order(self.customer, self.product, paid=False)
		res = self.client.get('/api/dashboard/sales-chart/?period=7d&groupBy=day')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(len(res.data['data']), 1)
		bucket = res.data['data'][0]
		self.assertEqual(bucket['orderCount'], 2)
		self.assertEqual(bucket['revenue'], 20.0)
		self.assertEqual(bucket['averageOrderValue'], 10.0)

	def test_sales_chart_rejects_unknown_grouping(self):
		res = self.client.get('/api/dashboard/sales-chart/?groupBy=hour')
		self.assertEqual(res.status_code, 400)
		self.assertFalse(res.data['success'])

	def test_top_products_sorted_by_quantity(self):
		other = Product.objects.create(category=self.category, name='Popular', description='d', price='4.00', stock=50)
		_make_order(self.customer, self.product, qty=1)
		_make_order(self.customer, other, qty=5)
		res = self.client.get('/api/dashboard/top-products/?limit=1')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(len(res.data['data']), 1)
		self.assertEqual(res.data['data'][0]['productId'], other.pk)
		self.assertEqual(res.data['data'][0]['name'], 'Popular')
		self.assertEqual(res.data['data'][0]['totalRevenue'], 20.0)

	def test_recent_orders_newest_first(self):
		first = _make_order(self.customer, self.product)
		second = _make_order(self.customer, self.product)
		res = self.client.get('/api/dashboard/recent-orders/?limit=5')
		self.assertEqual([o['id'] for o in res.data['data']], [second.pk, first.pk])
		self.assertEqual(res.data['data'][0]['user']['username'], 'customer')

	def test_activity_log_is_paginated_and_filterable(self):
		for i in range(3):
			audit.record_activity(self.admin, audit.USER_UPDATED, f'update {i}')
		audit.record_activity(self.customer, audit.PROFILE_UPDATED, 'profile')

		res = self.client.get('/api/dashboard/activity-log/?limit=2')
		self.assertEqual(res.status_code, 200)
		self.assertTrue(res.data['success'])
		self.assertEqual(len(res.data['data']), 2)
		self.assertEqual(res.data['pagination']['totalItems'], 4)
		self.assertEqual(res.data['pagination']['totalPages'], 2)

		res = self.client.get(f'/api/dashboard/activity-log/?userId={self.customer.pk}')
		self.assertEqual(res.data['pagination']['totalItems'], 1)
		self.assertEqual(res.data['data'][0]['action'], audit.PROFILE_UPDATED)

		res = self.client.get('/api/dashboard/activity-log/?action=nothing_like_this')
		self.assertEqual(res.data['pagination']['totalItems'], 0)
		self.assertEqual(res.data['pagination']['totalPages'], 0)
		self.assertFalse(res.data['pagination']['hasNextPage'])
		self.assertFalse(res.data['pagination']['hasPrevPage'])
