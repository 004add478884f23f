"""Storefront client tests. HTTP is mocked at ``requests.Session.request``."""

import json
import time
import unittest
from unittest import mock

import jwt
import requests

from .client import StorefrontClient
from .errors import ApiError
from .session import ApiSession


def _token(user_id=7, expires_in=300):
	return jwt.encode({'user_id': user_id, 'exp': int(time.time()) + expires_in}, 'test-secret', algorithm='HS256')


def _response(status, body=None, raw=None):
	response = requests.Response()
	response.status_code = status
	if body is not None:
		response._content = json.dumps(body).encode()
		response.headers['Content-Type'] = 'application/json'
	else:
		response._content = raw or b''
	return response


@mock.patch('requests.Session.request')
class StorefrontClientTests(unittest.TestCase):

	def setUp(self):
		self.client = StorefrontClient('http://api.test/')

	def tearDown(self):
		self.client.close()

	def _authorize(self, access=None, refresh='refresh-1'):
		self.client.session.set_tokens(access or _token(), refresh)

	def test_login_stores_tokens_and_sends_bearer(self, request):
		access = _token(user_id=42)
		request.side_effect = [
			_response(200, {'access': access, 'refresh': 'refresh-1'}),
			_response(200, {'id': 42, 'username': 'sam'}),
		]
		session = self.client.login('sam', 'secret123')
		self.assertTrue(session.is_authenticated)
		self.assertEqual(session.user_id, 42)
		self.assertFalse(session.is_expired())

		profile = self.client.profile()
		self.assertEqual(profile['username'], 'sam')
		login_call, profile_call = request.call_args_list
		self.assertEqual(login_call.args, ('POST', 'http://api.test/api/users/login/'))
		self.assertEqual(login_call.kwargs['headers'], {})
		self.assertEqual(profile_call.kwargs['headers'], {'Authorization': f'Bearer {access}'})

	def test_expired_token_is_refreshed_before_request(self, request):
		self._authorize(access=_token(expires_in=-60))
		fresh = _token()
		request.side_effect = [
			_response(200, {'access': fresh}),
			_response(200, {'success': True, 'data': [], 'pagination': {}}),
		]
		self.client.my_orders()
		refresh_call, orders_call = request.call_args_list
		self.assertTrue(refresh_call.args[1].endswith('/api/users/token/refresh/'))
		self.assertEqual(refresh_call.kwargs['json'], {'refresh': 'refresh-1'})
		self.assertEqual(orders_call.kwargs['headers'], {'Authorization': f'Bearer {fresh}'})
		self.assertEqual(self.client.session.refresh_token, 'refresh-1')

	def test_unauthorized_response_refreshes_once_and_retries(self, request):
		self._authorize()
		fresh = _token(user_id=8)
		request.side_effect = [
			_response(401, {'success': False, 'message': 'Token expired', 'code': 'not_authenticated'}),
			_response(200, {'access': fresh, 'refresh': 'refresh-2'}),
			_response(200, {'success': True, 'order': {'id': 3}}),
		]
		body = self.client.order(3)
		self.assertEqual(body['order']['id'], 3)
		self.assertEqual(request.call_count, 3)
		self.assertEqual(request.call_args_list[2].kwargs['headers'], {'Authorization': f'Bearer {fresh}'})
		self.assertEqual(self.client.session.refresh_token, 'refresh-2')

	def test_second_unauthorized_response_is_raised(self, request):
		self._authorize()
		request.side_effect = [
			_response(401, {'success': False, 'message': 'Nope'}),
			_response(200, {'access': _token()}),
			_response(401, {'success': False, 'message': 'Still no'}),
		]
		with self.assertRaises(ApiError) as ctx:
			self.client.order(3)
		self.assertEqual(ctx.exception.status_code, 401)
		self.assertEqual(ctx.exception.message, 'Still no')
		self.assertEqual(request.call_count, 3)

	def test_rejected_refresh_clears_session(self, request):
		self._authorize(access=_token(expires_in=-60))
		request.side_effect = [
			_response(401, {'detail': 'Token is invalid or expired', 'code': 'token_not_valid'}),
		]
		with self.assertRaises(ApiError) as ctx:
			self.client.my_orders()
		self.assertEqual(ctx.exception.message, 'Token is invalid or expired')
		self.assertFalse(self.client.session.is_authenticated)
		self.assertIsNone(self.client.session.refresh_token)
		self.assertEqual(request.call_count, 1)

	def test_no_refresh_without_refresh_token(self, request):
		self.client.session.set_tokens(_token())
		request.return_value = _response(401, {'success': False, 'message': 'Authentication required.'})
		with self.assertRaises(ApiError):
			self.client.profile()
		self.assertEqual(request.call_count, 1)

	def test_server_message_and_code_surface(self, request):
		self._authorize()
		request.return_value = _response(409, {
			'success': False, 'message': 'Cannot cancel shipped order', 'code': 'conflict',
		})
		with self.assertRaises(ApiError) as ctx:
			self.client.cancel_order(5, reason='changed my mind')
		self.assertEqual(str(ctx.exception), 'Cannot cancel shipped order')
		self.assertEqual(ctx.exception.code, 'conflict')
		self.assertEqual(request.call_args.args[0], 'DELETE')
		self.assertEqual(request.call_args.kwargs['json'], {'reason': 'changed my mind'})

	def test_validation_errors_are_kept(self, request):
		request.return_value = _response(400, {
			'success': False, 'message': 'Validation failed', 'code': 'validation_error',
			'errors': {'email': ['An account with this email already exists.']},
		})
		with self.assertRaises(ApiError) as ctx:
			self.client.register('sam', 'secret123', 'sam@example.com')
		self.assertIn('email', ctx.exception.errors)

	def test_fallback_message_without_json_body(self, request):
		request.return_value = _response(502, raw=b'<html>Bad Gateway</html>')
		with self.assertRaises(ApiError) as ctx:
			self.client.products()
		self.assertEqual(ctx.exception.message, 'Request failed')
		self.assertEqual(ctx.exception.status_code, 502)

	def test_network_failure_raises_api_error(self, request):
		request.side_effect = requests.ConnectionError('connection refused')
		with self.assertRaises(ApiError) as ctx:
			self.client.products()
		self.assertEqual(ctx.exception.message, 'Request failed')
		self.assertIsNone(ctx.exception.status_code)
		self.assertIsInstance(ctx.exception.__cause__, requests.ConnectionError)

	def test_empty_response_returns_none(self, request):
		self._authorize()
		request.return_value = _response(204)
		self.assertIsNone(self.client.delete_address(4))

	def test_unset_query_params_are_dropped(self, request):
		request.return_value = _response(200, {'success': True, 'data': {}})
		self.client.top_products(limit=3)
		self.assertEqual(request.call_args.kwargs['params'], {'limit': 3})
		self.assertEqual(request.call_args.kwargs['timeout'], 10)

	def test_review_posts_token_without_login(self, request):
		request.return_value = _response(201, {'success': True, 'message': 'Review added'})
		self.client.submit_review(9, 2, 5, 'Great', 'a' * 64)
		call = request.call_args
		self.assertEqual(call.kwargs['headers'], {})
		self.assertEqual(call.kwargs['json']['reviewToken'], 'a' * 64)


class ApiSessionTests(unittest.TestCase):

	def test_unreadable_token_has_no_expiry(self):
		session = ApiSession()
		session.set_tokens('not-a-jwt', 'r')
		self.assertIsNone(session.expires_at)
		self.assertFalse(session.is_expired())
		self.assertEqual(session.authorization_header(), {'Authorization': 'Bearer not-a-jwt'})

	def test_expiry_uses_leeway(self):
		session = ApiSession()
		session.set_tokens(_token(expires_in=10))
		self.assertTrue(session.is_expired())
		session.set_tokens(_token(expires_in=600))
		self.assertFalse(session.is_expired())

	def test_clear(self):
		session = ApiSession()
		session.set_tokens(_token(), 'r')
		session.clear()
		self.assertEqual(session.authorization_header(), {})
		self.assertFalse(session.can_refresh)
