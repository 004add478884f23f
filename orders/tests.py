"""Orders app tests."""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from activity.models import ActivityLog
from activity import services as audit
from orders import state
from orders.models import Order
from products.models import Category, Product, Review


def _order_payload(*lines, tax='1.00', shipping='5.00', total=None):
	payload = {
		'orderItems': [{'product': product.pk, 'qty': qty} for product, qty in lines],
		'shippingAddress': {'address': '1 Test Street', 'city': 'Cairo', 'postalCode': '12345', 'country': 'Egypt'},
		'paymentMethod': 'PayPal',
		'taxPrice': tax,
		'shippingPrice': shipping,
	}
	if total is not None:
		payload['totalPrice'] = total
	return payload


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class OrderCheckoutTests(TestCase):
	"""Checkout from the customer's side: totals, stock and review links."""

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.customer = User.objects.create_user(
			username='test_customer',
			email='test_customer@example.com',
			password='12345678',
		)
		cls.other = User.objects.create_user(
			username='other_customer',
			email='other_customer@example.com',
			password='12345678',
		)
		cls.category = Category.objects.create(name='TestCat')
		cls.ten = Product.objects.create(category=cls.category, name='Ten', description='Test', price='10.00', stock=100)
		cls.five = Product.objects.create(category=cls.category, name='Five', description='Test', price='5.00', stock=100)

	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.customer)

	def test_create_order_computes_total_and_returns_review_links(self):
		res = self.client.post('/api/orders/', data=_order_payload((self.ten, 1), (self.five, 2)), format='json')
		self.assertEqual(res.status_code, 201)
		self.assertTrue(res.data['success'])
		self.assertEqual(Decimal(str(res.data['order']['totalPrice'])), Decimal('26.00'))
		self.assertEqual(len(res.data['reviewLinks']), 2)

		order = Order.objects.get(pk=res.data['order']['id'])
		self.assertRegex(order.review_token, r'^[0-9a-f]{64}$')
		for link in res.data['reviewLinks']:
			self.assertEqual(link['token'], order.review_token)
			self.assertIn(f'token={order.review_token}', link['url'])
		self.assertNotIn('reviewToken', res.data['order'])

		# stock reserved
		self.ten.refresh_from_db()
		self.five.refresh_from_db()
		self.assertEqual(self.ten.stock, 99)
		self.assertEqual(self.five.stock, 98)

		self.assertTrue(ActivityLog.objects.filter(user=self.customer, action=audit.ORDER_CREATED).exists())

	def test_each_order_gets_its_own_token(self):
		first = self.client.post('/api/orders/', data=_order_payload((self.ten, 1)), format='json')
		second = self.client.post('/api/orders/', data=_order_payload((self.ten, 1)), format='json')
		self.assertEqual(first.status_code, 201)
		self.assertEqual(second.status_code, 201)
		tokens = set(Order.objects.values_list('review_token', flat=True))
		self.assertEqual(len(tokens), 2)

	def test_empty_items_rejected(self):
		res = self.client.post('/api/orders/', data=_order_payload(), format='json')
		self.assertEqual(res.status_code, 400)
		self.assertFalse(res.data['success'])
		self.assertEqual(res.data['message'], 'No order items')
		self.assertEqual(Order.objects.count(), 0)

	def test_client_total_mismatch_rejected_and_stock_untouched(self):
		res = self.client.post(
			'/api/orders/', data=_order_payload((self.ten, 1), (self.five, 2), total='20.00'), format='json',
		)
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'price_mismatch')
		self.ten.refresh_from_db()
		self.assertEqual(self.ten.stock, 100)
		self.assertEqual(Order.objects.count(), 0)

	def test_matching_client_total_accepted(self):
		res = self.client.post(
			'/api/orders/', data=_order_payload((self.ten, 1), (self.five, 2), total='26.00'), format='json',
		)
		self.assertEqual(res.status_code, 201)

	def test_insufficient_stock_rejected(self):
		self.five.stock = 1
		self.five.save(update_fields=['stock'])
		res = self.client.post('/api/orders/', data=_order_payload((self.five, 2)), format='json')
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'insufficient_stock')
		self.five.refresh_from_db()
		self.assertEqual(self.five.stock, 1)

	def test_hidden_product_cannot_be_ordered(self):
		self.ten.visibility = Product.VISIBILITY_HIDDEN
		self.ten.save(update_fields=['visibility'])
		res = self.client.post('/api/orders/', data=_order_payload((self.ten, 1)), format='json')
		self.assertEqual(res.status_code, 400)

	def test_anonymous_checkout_rejected(self):
		res = APIClient().post('/api/orders/', data=_order_payload((self.ten, 1)), format='json')
		self.assertEqual(res.status_code, 401)
		self.assertFalse(res.data['success'])

	def test_owner_reads_order_other_customer_forbidden_missing_is_404(self):
		res = self.client.post('/api/orders/', data=_order_payload((self.ten, 1)), format='json')
		order_id = res.data['order']['id']

		self.assertEqual(self.client.get(f'/api/orders/{order_id}/').status_code, 200)

		other = APIClient()
		other.force_authenticate(user=self.other)
		forbidden = other.get(f'/api/orders/{order_id}/')
		self.assertEqual(forbidden.status_code, 403)
		self.assertFalse(forbidden.data['success'])

		missing = self.client.get('/api/orders/999999/')
		self.assertEqual(missing.status_code, 404)
		self.assertEqual(missing.data['message'], 'Order not found.')

	def test_myorders_is_paginated_and_scoped(self):
		for _ in range(3):
			self.client.post('/api/orders/', data=_order_payload((self.ten, 1)), format='json')
		other = APIClient()
		other.force_authenticate(user=self.other)
		other.post('/api/orders/', data=_order_payload((self.ten, 1)), format='json')

		res = self.client.get('/api/orders/myorders/?page=1&limit=2')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(len(res.data['data']), 2)
		self.assertEqual(res.data['pagination']['totalItems'], 3)
		self.assertEqual(res.data['pagination']['totalPages'], 2)
		self.assertTrue(res.data['pagination']['hasNextPage'])

	def test_customer_cannot_use_admin_listing(self):
		res = self.client.get('/api/orders/admin/')
		self.assertEqual(res.status_code, 403)

	def test_owner_can_pay(self):
		res = self.client.post('/api/orders/', data=_order_payload((self.ten, 1)), format='json')
		order_id = res.data['order']['id']
		paid = self.client.put(
			f'/api/orders/{order_id}/pay/',
			data={'id': 'PAY-1', 'status': 'COMPLETED', 'updateTime': '2024-01-01T00:00:00Z', 'emailAddress': 'buyer@example.com'},
			format='json',
		)
		self.assertEqual(paid.status_code, 200)
		self.assertTrue(paid.data['order']['isPaid'])
		self.assertIsNotNone(paid.data['order']['paidAt'])
		self.assertEqual(paid.data['order']['paymentResult']['id'], 'PAY-1')

		again = self.client.put(f'/api/orders/{order_id}/pay/', data={'id': 'PAY-2'}, format='json')
		self.assertEqual(again.status_code, 409)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class OrderAdminStatusTests(TestCase):
	"""Admin-side status changes, cancellation and bulk updates."""

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.admin = User.objects.create_user(
			username='test_admin',
			email='test_admin@example.com',
			password='12345678',
			role='admin',
		)
		cls.customer = User.objects.create_user(
			username='test_customer',
			email='test_customer@example.com',
			password='12345678',
		)
		cls.category = Category.objects.create(name='TestCat')
		cls.product = Product.objects.create(category=cls.category, name='Widget', description='Test', price='10.00', stock=50)

	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.admin)
		customer_client = APIClient()
		customer_client.force_authenticate(user=self.customer)
		self.order_ids = []
		for _ in range(2):
			res = customer_client.post('/api/orders/', data=_order_payload((self.product, 2)), format='json')
			self.order_ids.append(res.data['order']['id'])

	def test_bulk_ship_updates_every_order_with_one_audit_entry(self):
		before = ActivityLog.objects.filter(action=audit.ORDER_BULK_UPDATED).count()
		res = self.client.put(
			'/api/orders/bulk/status/', data={'orderIds': self.order_ids, 'isShipped': True}, format='json',
		)
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['modifiedCount'], 2)
		self.assertEqual(ActivityLog.objects.filter(action=audit.ORDER_BULK_UPDATED).count(), before + 1)
		for order in Order.objects.filter(pk__in=self.order_ids):
			self.assertTrue(order.is_shipped)
			self.assertEqual(order.order_status, state.SHIPPED)
			self.assertIsNotNone(order.shipped_at)

	def test_bulk_update_is_all_or_nothing(self):
		Order.objects.filter(pk=self.order_ids[0]).update(order_status=state.CANCELLED)
		res = self.client.put(
			'/api/orders/bulk/status/', data={'orderIds': self.order_ids, 'isShipped': True}, format='json',
		)
		self.assertEqual(res.status_code, 409)
		self.assertFalse(Order.objects.filter(pk__in=self.order_ids, is_shipped=True).exists())

	def test_bulk_update_with_missing_order_is_404(self):
		res = self.client.put(
			'/api/orders/bulk/status/', data={'orderIds': self.order_ids + [999999], 'isPaid': True}, format='json',
		)
		self.assertEqual(res.status_code, 404)
		self.assertFalse(Order.objects.filter(is_paid=True).exists())

	def test_cancelling_shipped_order_fails_and_leaves_it_unchanged(self):
		order_id = self.order_ids[0]
		self.client.put(f'/api/orders/{order_id}/status/', data={'isShipped': True}, format='json')

		res = self.client.delete(f'/api/orders/{order_id}/', data={'reason': 'changed mind'}, format='json')
		self.assertEqual(res.status_code, 409)
		self.assertEqual(res.data['message'], 'Cannot cancel shipped order')

		order = Order.objects.get(pk=order_id)
		self.assertEqual(order.order_status, state.SHIPPED)
		self.assertIsNone(order.cancelled_at)
		self.assertEqual(order.cancellation_reason, '')

	def test_cancel_restores_stock_and_records_reason(self):
		order_id = self.order_ids[0]
		self.product.refresh_from_db()
		stock_before = self.product.stock

		res = self.client.delete(f'/api/orders/{order_id}/', data={'reason': 'out of budget'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['order']['orderStatus'], state.CANCELLED)
		self.assertEqual(res.data['order']['cancellationReason'], 'out of budget')
		self.assertIsNotNone(res.data['order']['cancelledAt'])

		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, stock_before + 2)

		again = self.client.delete(f'/api/orders/{order_id}/', format='json')
		self.assertEqual(again.status_code, 409)

	def test_cancelling_through_status_update_restores_stock(self):
		order_id = self.order_ids[0]
		self.product.refresh_from_db()
		stock_before = self.product.stock

		res = self.client.put(f'/api/orders/{order_id}/status/', data={'orderStatus': 'cancelled'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['order']['orderStatus'], state.CANCELLED)
		self.assertIsNotNone(res.data['order']['cancelledAt'])
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, stock_before + 2)
		self.assertEqual(Order.objects.get(pk=order_id).cancelled_by, self.admin)

	def test_bulk_cancel_restores_stock_for_every_order(self):
		self.product.refresh_from_db()
		stock_before = self.product.stock

		res = self.client.put(
			'/api/orders/bulk/status/', data={'orderIds': self.order_ids, 'orderStatus': 'cancelled'}, format='json',
		)
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['modifiedCount'], 2)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, stock_before + 4)

		again = self.client.put(
			'/api/orders/bulk/status/', data={'orderIds': self.order_ids, 'orderStatus': 'cancelled'}, format='json',
		)
		self.assertEqual(again.data['modifiedCount'], 0)
		self.product.refresh_from_db()
		self.assertEqual(self.product.stock, stock_before + 4)

	def test_invalid_transition_is_conflict(self):
		order_id = self.order_ids[0]
		self.client.put(f'/api/orders/{order_id}/status/', data={'orderStatus': 'delivered'}, format='json')
		res = self.client.put(f'/api/orders/{order_id}/status/', data={'orderStatus': 'processing'}, format='json')
		self.assertEqual(res.status_code, 409)
		self.assertEqual(res.data['code'], 'invalid_transition')
		self.assertEqual(Order.objects.get(pk=order_id).order_status, state.DELIVERED)

	def test_delivered_sets_delivery_fields(self):
		order_id = self.order_ids[0]
		res = self.client.put(f'/api/orders/{order_id}/status/', data={'orderStatus': 'delivered'}, format='json')
		self.assertEqual(res.status_code, 200)
		order = res.data['order']
		self.assertTrue(order['isDelivered'])
		self.assertTrue(order['isShipped'])
		self.assertIsNotNone(order['deliveredAt'])
		self.assertIsNotNone(order['shipping']['shippedAt'])
		self.assertEqual(order['shipping']['status'], state.SHIPPING_DELIVERED)

	def test_shipping_update_lifts_order_status(self):
		order_id = self.order_ids[0]
		res = self.client.put(
			f'/api/orders/{order_id}/shipping/',
			data={'carrier': 'DHL', 'trackingNumber': 'TRK-1', 'status': 'in_transit'},
			format='json',
		)
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['order']['orderStatus'], state.SHIPPED)
		self.assertEqual(res.data['order']['shipping']['carrier'], 'DHL')
		self.assertEqual(res.data['order']['trackingNumber'], 'TRK-1')
		self.assertTrue(res.data['order']['isShipped'])
		self.assertIsNotNone(res.data['order']['shipping']['shippedAt'])

	def test_admin_listing_filters_by_status(self):
		self.client.put(f'/api/orders/{self.order_ids[0]}/status/', data={'isPaid': True}, format='json')
		res = self.client.get('/api/orders/admin/?status=paid')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['pagination']['totalItems'], 1)
		self.assertEqual(res.data['data'][0]['id'], self.order_ids[0])

		res = self.client.get('/api/orders/admin/?status=bogus')
		self.assertEqual(res.status_code, 400)

	def test_analytics_summary(self):
		self.client.put(f'/api/orders/{self.order_ids[0]}/status/', data={'isPaid': True}, format='json')
		res = self.client.get('/api/orders/analytics/summary/?period=7d')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['summary']['totalOrders'], 2)
		self.assertEqual(res.data['summary']['paidOrders'], 1)
		self.assertEqual(res.data['summary']['totalRevenue'], 26.0)
		self.assertEqual(len(res.data['salesByPeriod']), 1)
		self.assertEqual(res.data['topProducts'][0]['productId'], self.product.pk)
		self.assertEqual(res.data['topProducts'][0]['totalQuantity'], 4)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class OrderReviewTests(TestCase):
	"""Reviews are authorised by the order's review token, not by login."""

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.customer = User.objects.create_user(
			username='reviewer',
			email='reviewer@example.com',
			password='12345678',
			first_name='Rita',
		)
		cls.category = Category.objects.create(name='TestCat')
		cls.product = Product.objects.create(category=cls.category, name='Widget', description='Test', price='10.00', stock=50)
		cls.unrelated = Product.objects.create(category=cls.category, name='Other', description='Test', price='3.00', stock=50)

	def setUp(self):
		client = APIClient()
		client.force_authenticate(user=self.customer)
		res = client.post('/api/orders/', data=_order_payload((self.product, 1)), format='json')
		self.order = Order.objects.get(pk=res.data['order']['id'])
		self.anonymous = APIClient()

	def _review(self, **overrides):
		body = {'productId': self.product.pk, 'rating': 4, 'comment': 'Good', 'reviewToken': self.order.review_token}
		body.update(overrides)
		return self.anonymous.post(f'/api/orders/{self.order.pk}/review/', data=body, format='json')

	def test_valid_token_creates_review_and_updates_rating(self):
		res = self._review()
		self.assertEqual(res.status_code, 201)
		review = Review.objects.get(order=self.order, product=self.product)
		self.assertEqual(review.name, 'Rita')
		self.product.refresh_from_db()
		self.assertEqual(self.product.num_reviews, 1)
		self.assertEqual(self.product.rating, Decimal('4.00'))

	def test_wrong_token_is_forbidden(self):
		res = self._review(reviewToken='0' * 64)
		self.assertEqual(res.status_code, 403)
		self.assertFalse(Review.objects.exists())

	def test_malformed_token_is_rejected(self):
		res = self._review(reviewToken='not-a-token')
		self.assertEqual(res.status_code, 400)

	def test_product_outside_order_rejected(self):
		res = self._review(productId=self.unrelated.pk)
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['code'], 'product_not_in_order')

	def test_second_review_for_same_product_conflicts(self):
		self.assertEqual(self._review().status_code, 201)
		res = self._review(rating=1)
		self.assertEqual(res.status_code, 409)
		self.assertEqual(Review.objects.count(), 1)
