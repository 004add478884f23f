"""Shipping rate tests. The rate service is never contacted; requests is patched."""

from unittest import mock

import requests
from django.conf import settings
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from shipping import rates


def _live_settings(**overrides):
	conf = dict(settings.SHIPPING)
	conf['RATE_URL'] = 'http://rates.test/quote'
	conf['TIMEOUT'] = 2
	conf.update(overrides)
	return conf


def _ok(payload):
	response = mock.Mock()
	response.raise_for_status.return_value = None
	response.json.return_value = payload
	return response


class TableRateTests(TestCase):
	"""No rate service configured: everything is priced from the static table."""

	def test_domestic_options_sorted_by_rate(self):
		quote = rates.shipping_options([{'qty': 2}], {'country': 'CA'})
		self.assertEqual([o['carrier'] for o in quote['options']], ['Canada Post', 'Purolator', 'UPS'])
		self.assertEqual([o['rate'] for o in quote['options']], [12.99, 15.99, 18.99])
		self.assertTrue(all(o['source'] == 'table' for o in quote['options']))
		self.assertEqual(quote['totalItems'], 2)
		self.assertEqual(quote['boxTier']['name'], 'Small')

	def test_international_uses_international_floor(self):
		quote = rates.shipping_options([{'qty': 1}], {'country': 'EG'})
		self.assertTrue(all(o['rate'] == 29.99 for o in quote['options']))
		purolator = next(o for o in quote['options'] if o['carrier'] == 'Purolator')
		self.assertEqual(purolator['estimatedDays'], 8)

	def test_heavy_basket_scales_rate(self):
		quote = rates.shipping_options([{'qty': 20, 'weight': '0.5'}], {'country': 'CA'})
		self.assertEqual(quote['totalWeight'], 10.0)
		self.assertEqual(quote['boxTier']['name'], 'Large')
		self.assertEqual(quote['options'][0]['rate'], 51.96)

	@override_settings(SHIPPING=dict(settings.SHIPPING, CARRIERS=[]))
	def test_no_carriers_gives_single_standard_option(self):
		quote = rates.shipping_options([{'qty': 1}], {'country': 'CA'})
		self.assertEqual(len(quote['options']), 1)
		self.assertEqual(quote['options'][0]['carrier'], 'Standard Shipping')
		self.assertEqual(quote['options'][0]['rate'], 15.99)


class LiveRateTests(TestCase):

	def test_live_quote_used_and_failures_fall_back(self):
		def fake_request(method, url, **kwargs):
			if kwargs['json']['carrier'] == 'UPS':
				return _ok({'rate': 9.5, 'estimatedDays': 2})
			raise requests.ConnectionError('rate service down')

		with override_settings(SHIPPING=_live_settings()):
			with mock.patch('requests.Session.request', side_effect=fake_request) as request:
				with self.assertLogs('shipping.rates', level='WARNING') as logs:
					quote = rates.shipping_options([{'qty': 1}], {'country': 'CA'})

		self.assertEqual(request.call_count, 3)
		_, kwargs = request.call_args
		self.assertEqual(kwargs['timeout'], 2)
		self.assertEqual(len(logs.records), 2)

		first = quote['options'][0]
		self.assertEqual(first['carrier'], 'UPS')
		self.assertEqual(first['rate'], 9.5)
		self.assertEqual(first['source'], 'live')
		self.assertEqual(
			{o['carrier']: o['source'] for o in quote['options'][1:]},
			{'Canada Post': 'table', 'Purolator': 'table'},
		)

	def test_malformed_response_falls_back(self):
		with override_settings(SHIPPING=_live_settings()):
			with mock.patch('requests.Session.request', return_value=_ok({'price': 'n/a'})):
				with self.assertLogs('shipping.rates', level='WARNING'):
					quote = rates.shipping_options([{'qty': 1}], {'country': 'CA'})
		self.assertTrue(all(o['source'] == 'table' for o in quote['options']))

	def test_timeout_falls_back(self):
		with override_settings(SHIPPING=_live_settings()):
			with mock.patch('requests.Session.request', side_effect=requests.Timeout('slow')):
				with self.assertLogs('shipping.rates', level='WARNING'):
					quote = rates.shipping_options([{'qty': 1}], {'country': 'CA'})
		self.assertEqual(quote['options'][0]['rate'], 12.99)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class ShippingRatesApiTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		cls.user = get_user_model().objects.create_user(
			username='shopper', email='shopper@example.com', password='12345678',
		)

	def test_rates_endpoint(self):
		client = APIClient()
		client.force_authenticate(user=self.user)
		res = client.post(
			'/api/shipping/rates/',
			data={'orderItems': [{'qty': 2}], 'destination': {'country': 'CA', 'postalCode': 'M5V 2T6'}},
			format='json',
		)
		self.assertEqual(res.status_code, 200)
		self.assertTrue(res.data['success'])
		self.assertEqual(len(res.data['options']), 3)

	def test_rates_requires_items(self):
		client = APIClient()
		client.force_authenticate(user=self.user)
		res = client.post('/api/shipping/rates/', data={'orderItems': [], 'destination': {'country': 'CA'}}, format='json')
		self.assertEqual(res.status_code, 400)
		self.assertFalse(res.data['success'])
