"""Accounts app tests: registration, profile, addresses, admin user management."""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from activity import services as audit
from activity.models import ActivityLog
from accounts.models import Address, UserPreferences
from accounts.serializers import normalize_phone
from orders.models import Order

User = get_user_model()


def _address(**overrides):
	data = {
		'type': 'shipping',
		'firstName': 'Sara',
		'lastName': 'Ali',
		'address': '10 Test Street',
		'city': 'Toronto',
		'state': 'ON',
		'postalCode': 'M5V 2T6',
		'country': 'CA',
	}
	data.update(overrides)
	return data


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class RegistrationTests(TestCase):

	def test_register_creates_customer_with_preferences(self):
		res = APIClient().post('/api/users/register/', data={
			'username': 'new.user',
			'password': 'strongpass1',
			'email': 'New.User@Example.com',
			'firstName': 'New',
			'phone': '+20 101 234 5678',
		}, format='json')
		self.assertEqual(res.status_code, 201)
		self.assertTrue(res.data['success'])
		user = User.objects.get(username='new.user')
		self.assertEqual(user.email, 'new.user@example.com')
		self.assertEqual(user.role, User.ROLE_CUSTOMER)
		self.assertEqual(user.phone, '+201012345678')
		self.assertTrue(UserPreferences.objects.filter(user=user).exists())
		self.assertNotIn('password', res.data['user'])

	def test_duplicate_email_rejected(self):
		User.objects.create_user(username='first', email='taken@example.com', password='12345678')
		res = APIClient().post('/api/users/register/', data={
			'username': 'second', 'password': 'strongpass1', 'email': 'TAKEN@example.com',
		}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertFalse(res.data['success'])
		self.assertIn('email', res.data['errors'])

	def test_invalid_phone_rejected(self):
		res = APIClient().post('/api/users/register/', data={
			'username': 'phoney', 'password': 'strongpass1', 'email': 'p@example.com', 'phone': '12',
		}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertIn('phone', res.data['errors'])

	def test_login_returns_tokens_and_suspended_user_cannot_login(self):
		user = User.objects.create_user(username='login_me', email='login@example.com', password='12345678')
		res = APIClient().post('/api/users/login/', data={'username': 'login_me', 'password': '12345678'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertIn('access', res.data)
		self.assertIn('refresh', res.data)

		user.set_status(User.STATUS_SUSPENDED, 'fraud')
		res = APIClient().post('/api/users/login/', data={'username': 'login_me', 'password': '12345678'}, format='json')
		self.assertEqual(res.status_code, 401)
		self.assertFalse(res.data['success'])

	def test_bearer_token_authenticates(self):
		User.objects.create_user(username='bearer', email='bearer@example.com', password='12345678')
		client = APIClient()
		tokens = client.post('/api/users/login/', data={'username': 'bearer', 'password': '12345678'}, format='json').data
		client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
		res = client.get('/api/users/profile/me/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['username'], 'bearer')

	def test_phone_normalisation(self):
		self.assertEqual(normalize_phone('0020 101 234 5678'), '+201012345678')


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class ProfileTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		cls.user = User.objects.create_user(username='profile_user', email='profile@example.com', password='12345678')
		cls.other = User.objects.create_user(username='other_user', email='other@example.com', password='12345678')

	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.user)

	def test_profile_requires_auth(self):
		res = APIClient().get('/api/users/profile/me/')
		self.assertEqual(res.status_code, 401)

	def test_update_profile_ignores_role(self):
		res = self.client.put('/api/users/profile/me/', data={'firstName': 'Pat', 'role': 'admin'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['firstName'], 'Pat')
		self.assertEqual(res.data['role'], User.ROLE_CUSTOMER)
		self.assertTrue(ActivityLog.objects.filter(user=self.user, action=audit.PROFILE_UPDATED).exists())

	def test_first_address_of_type_becomes_default(self):
		first = self.client.post('/api/users/profile/addresses/', data=_address(), format='json')
		self.assertEqual(first.status_code, 201)
		self.assertTrue(first.data['isDefault'])

		billing = self.client.post('/api/users/profile/addresses/', data=_address(type='billing'), format='json')
		self.assertTrue(billing.data['isDefault'])

		second = self.client.post('/api/users/profile/addresses/', data=_address(city='Ottawa'), format='json')
		self.assertFalse(second.data['isDefault'])

	def test_explicit_default_replaces_previous(self):
		first = self.client.post('/api/users/profile/addresses/', data=_address(), format='json').data
		second = self.client.post('/api/users/profile/addresses/', data=_address(isDefault=True), format='json').data
		self.assertTrue(second['isDefault'])
		self.assertFalse(Address.objects.get(pk=first['id']).is_default)
		self.assertEqual(self.user.addresses.filter(type='shipping', is_default=True).count(), 1)

	def test_deleting_default_promotes_another(self):
		first = self.client.post('/api/users/profile/addresses/', data=_address(), format='json').data
		second = self.client.post('/api/users/profile/addresses/', data=_address(city='Ottawa'), format='json').data
		res = self.client.delete(f"/api/users/profile/addresses/{first['id']}/")
		self.assertEqual(res.status_code, 204)
		self.assertTrue(Address.objects.get(pk=second['id']).is_default)

	def test_set_default_and_type_change(self):
		first = self.client.post('/api/users/profile/addresses/', data=_address(), format='json').data
		second = self.client.post('/api/users/profile/addresses/', data=_address(city='Ottawa'), format='json').data

		res = self.client.patch(f"/api/users/profile/addresses/{second['id']}/set-default/")
		self.assertEqual(res.status_code, 200)
		self.assertTrue(Address.objects.get(pk=second['id']).is_default)
		self.assertFalse(Address.objects.get(pk=first['id']).is_default)

		res = self.client.patch(f"/api/users/profile/addresses/{first['id']}/", data={'type': 'billing'}, format='json')
		self.assertEqual(res.status_code, 400)

	def test_other_users_address_is_404(self):
		address = Address.objects.create(
			user=self.other, type='shipping', is_default=True, first_name='O', last_name='U',
			address='1 Elsewhere', city='Cairo', state='C', postal_code='11511', country='EG',
		)
		res = self.client.get(f'/api/users/profile/addresses/{address.pk}/')
		self.assertEqual(res.status_code, 404)

	def test_preferences_round_trip(self):
		res = self.client.get('/api/users/profile/preferences/')
		self.assertEqual(res.status_code, 200)
		self.assertTrue(res.data['newsletter'])
		res = self.client.put('/api/users/profile/preferences/', data={'newsletter': False, 'language': 'fr'}, format='json')
		self.assertEqual(res.status_code, 200)
		prefs = UserPreferences.objects.get(user=self.user)
		self.assertFalse(prefs.newsletter)
		self.assertEqual(prefs.language, 'fr')

	def test_own_activity_only(self):
		audit.record_activity(self.user, audit.PROFILE_UPDATED, 'mine')
		audit.record_activity(self.user, audit.ADDRESS_ADDED, 'mine too')
		audit.record_activity(self.other, audit.PROFILE_UPDATED, 'not mine')
		res = self.client.get('/api/users/profile/activity/')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['pagination']['totalItems'], 2)
		res = self.client.get(f'/api/users/profile/activity/?action={audit.ADDRESS_ADDED}')
		self.assertEqual(res.data['pagination']['totalItems'], 1)
		self.assertEqual(res.data['data'][0]['description'], 'mine too')


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class AdminUserManagementTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		cls.admin = User.objects.create_user(
			username='boss', email='boss@example.com', password='12345678', role=User.ROLE_ADMIN,
		)
		cls.buyer = User.objects.create_user(
			username='buyer', email='buyer@example.com', password='12345678', first_name='Big',
		)
		cls.browser = User.objects.create_user(username='browser', email='browser@example.com', password='12345678')
		for total in ('30.00', '70.00'):
			Order.objects.create(
				user=cls.buyer,
				shipping_address='1 Street',
				shipping_city='Toronto',
				shipping_postal_code='M5V',
				shipping_country='CA',
				payment_method='PayPal',
				total_price=Decimal(total),
			)

	def setUp(self):
		self.client = APIClient()
		self.client.force_authenticate(user=self.admin)

	def test_customer_cannot_manage_users(self):
		client = APIClient()
		client.force_authenticate(user=self.browser)
		res = client.get('/api/users/admin/')
		self.assertEqual(res.status_code, 403)
		self.assertEqual(res.data['message'], 'Admin access required.')

	def test_listing_includes_order_aggregates(self):
		res = self.client.get('/api/users/admin/?sort=-spend')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['pagination']['totalItems'], 3)
		top = res.data['data'][0]
		self.assertEqual(top['username'], 'buyer')
		self.assertEqual(top['orderCount'], 2)
		self.assertEqual(top['totalSpent'], 100.0)
		self.assertIsNotNone(top['lastOrderDate'])

	def test_listing_filters(self):
		res = self.client.get('/api/users/admin/?minOrders=1')
		self.assertEqual([u['username'] for u in res.data['data']], ['buyer'])
		res = self.client.get('/api/users/admin/?search=big')
		self.assertEqual(res.data['pagination']['totalItems'], 1)
		res = self.client.get('/api/users/admin/?role=admin')
		self.assertEqual([u['username'] for u in res.data['data']], ['boss'])
		res = self.client.get('/api/users/admin/?sort=shoeSize')
		self.assertEqual(res.status_code, 400)

	def test_suspend_and_reactivate(self):
		res = self.client.patch(
			f'/api/users/admin/{self.browser.pk}/status/', data={'status': 'suspended', 'statusReason': 'spam'}, format='json',
		)
		self.assertEqual(res.status_code, 200)
		self.browser.refresh_from_db()
		self.assertFalse(self.browser.is_active)
		self.assertEqual(self.browser.status_reason, 'spam')
		self.assertTrue(ActivityLog.objects.filter(action=audit.USER_STATUS_UPDATED, target_user=self.browser).exists())

		self.client.patch(f'/api/users/admin/{self.browser.pk}/status/', data={'status': 'active'}, format='json')
		self.browser.refresh_from_db()
		self.assertTrue(self.browser.is_active)

	def test_admin_cannot_suspend_or_demote_self(self):
		res = self.client.patch(f'/api/users/admin/{self.admin.pk}/status/', data={'status': 'suspended'}, format='json')
		self.assertEqual(res.status_code, 409)
		res = self.client.patch(f'/api/users/admin/{self.admin.pk}/role/', data={'role': 'customer'}, format='json')
		self.assertEqual(res.status_code, 409)

	def test_role_change(self):
		res = self.client.patch(f'/api/users/admin/{self.browser.pk}/role/', data={'role': 'support_agent'}, format='json')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(res.data['user']['role'], 'support_agent')

	def test_delete_user_with_orders_suspends_instead(self):
		res = self.client.delete(f'/api/users/admin/{self.buyer.pk}/')
		self.assertEqual(res.status_code, 200)
		self.assertFalse(res.data['deleted'])
		self.buyer.refresh_from_db()
		self.assertEqual(self.buyer.status, User.STATUS_SUSPENDED)

	def test_delete_user_without_orders_cascades(self):
		Address.objects.create(
			user=self.browser, type='shipping', is_default=True, first_name='B', last_name='R',
			address='1 Way', city='Toronto', state='ON', postal_code='M5V', country='CA',
		)
		res = self.client.delete(f'/api/users/admin/{self.browser.pk}/')
		self.assertEqual(res.status_code, 200)
		self.assertTrue(res.data['deleted'])
		self.assertFalse(User.objects.filter(pk=self.browser.pk).exists())
		self.assertFalse(Address.objects.filter(user_id=self.browser.pk).exists())
		self.assertFalse(UserPreferences.objects.filter(user_id=self.browser.pk).exists())

	def test_missing_user_is_404(self):
		self.assertEqual(self.client.get('/api/users/admin/999999/').status_code, 404)

	def test_registration_analytics(self):
		User.objects.filter(pk=self.browser.pk).update(date_joined=timezone.now() - timedelta(days=60))
		res = self.client.get('/api/users/admin/analytics/registration/?period=30d')
		self.assertEqual(res.status_code, 200)
		self.assertEqual(sum(row['count'] for row in res.data['analytics']), 2)
