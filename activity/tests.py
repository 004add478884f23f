from datetime import timedelta

from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase
from django.utils import timezone

from core.pagination import parse_pagination_params

from . import services
from .models import ActivityLog

User = get_user_model()


class ActivityLogTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		cls.alice = User.objects.create_user(username='alice', email='alice@example.com', password='12345678')
		cls.bob = User.objects.create_user(username='bob', email='bob@example.com', password='12345678')

	def test_entries_cannot_be_modified(self):
		entry = services.record_activity(self.alice, services.PROFILE_UPDATED, 'Changed name')
		entry.description = 'Rewritten'
		with self.assertRaises(ValueError):
			entry.save()
		entry.refresh_from_db()
		self.assertEqual(entry.description, 'Changed name')

	def test_client_ip_prefers_forwarded_header(self):
		factory = RequestFactory()
		request = factory.get('/', HTTP_X_FORWARDED_FOR='203.0.113.7, 10.0.0.1', REMOTE_ADDR='10.0.0.2')
		self.assertEqual(services.client_ip(request), '203.0.113.7')
		request = factory.get('/', REMOTE_ADDR='10.0.0.2')
		self.assertEqual(services.client_ip(request), '10.0.0.2')
		self.assertIsNone(services.client_ip(None))

	def test_record_activity_stores_request_ip(self):
		request = RequestFactory().get('/', REMOTE_ADDR='198.51.100.4')
		entry = services.record_activity(
			self.alice, services.USER_UPDATED, 'Updated bob', target_user=self.bob, request=request,
		)
		self.assertEqual(entry.ip_address, '198.51.100.4')
		self.assertEqual(entry.target_user, self.bob)

	def test_recent_activity_is_newest_first(self):
		first = services.record_activity(self.alice, services.PROFILE_UPDATED, 'first')
		second = services.record_activity(self.bob, services.PROFILE_UPDATED, 'second')
		recent = services.recent_activity(limit=1)
		self.assertEqual(recent, [second])
		self.assertEqual(services.recent_activity(), [second, first])

	def test_paginated_activity_filters(self):
		services.record_activity(self.alice, services.ADDRESS_ADDED, 'a1')
		services.record_activity(self.alice, services.PROFILE_UPDATED, 'a2')
		old = services.record_activity(self.bob, services.ADDRESS_ADDED, 'b1')
		ActivityLog.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=10))

		params = parse_pagination_params({'page': '1', 'limit': '10'})
		self.assertEqual(services.paginated_activity(params, user=self.alice).total, 2)
		self.assertEqual(services.paginated_activity(params, action=services.ADDRESS_ADDED).total, 2)

		recent = services.paginated_activity(params, date_from=timezone.now() - timedelta(days=1))
		self.assertEqual(recent.total, 2)
		self.assertNotIn(old, recent.data)

		older = services.paginated_activity(params, date_to=timezone.now() - timedelta(days=5))
		self.assertEqual([entry.description for entry in older.data], ['b1'])
