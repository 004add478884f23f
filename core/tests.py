"""Shared infrastructure tests: pagination, error envelope, metrics."""

from datetime import timedelta
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.http import Http404
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django.utils import timezone
from rest_framework import serializers
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.test import APIClient, APIRequestFactory
from rest_framework.views import APIView

from activity.models import ActivityLog
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.metrics import PerformanceMonitor
from core.middleware import RequestMetricsMiddleware
from core.pagination import (
	create_paginated_response,
	create_pagination_meta,
	execute_paginated_query,
	parse_pagination_params,
)
from core.params import parse_int, parse_number, parse_when
from core.periods import period_filter, period_start


class PaginationParamsTests(SimpleTestCase):

	def test_defaults_when_missing(self):
		params = parse_pagination_params({})
		self.assertEqual((params.page, params.limit, params.skip), (1, 10, 0))

	def test_garbage_is_normalised_not_rejected(self):
		params = parse_pagination_params({'page': 'abc', 'limit': 'xyz'})
		self.assertEqual((params.page, params.limit), (1, 10))
		params = parse_pagination_params({'page': '-3', 'limit': '0'})
		self.assertEqual((params.page, params.limit), (1, 10))

	def test_fractional_values_are_truncated(self):
		params = parse_pagination_params({'page': '2.5', 'limit': '7.9'})
		self.assertEqual((params.page, params.limit), (2, 7))
		self.assertEqual(parse_pagination_params({'page': 'nan'}).page, 1)

	def test_limit_clamped_to_max_and_min(self):
		self.assertEqual(parse_pagination_params({'limit': '500'}).limit, 100)
		self.assertEqual(parse_pagination_params({'limit': '-5'}).limit, 1)
		self.assertEqual(parse_pagination_params({'limit': '500'}, max_limit=50).limit, 50)

	def test_skip(self):
		params = parse_pagination_params({'page': '3', 'limit': '20'})
		self.assertEqual(params.skip, 40)


class PaginationMetaTests(SimpleTestCase):

	def test_empty_result(self):
		meta = create_pagination_meta(1, 10, 0)
		self.assertEqual(meta['totalPages'], 0)
		self.assertFalse(meta['hasNextPage'])
		self.assertFalse(meta['hasPrevPage'])
		self.assertIsNone(meta['nextPage'])
		self.assertIsNone(meta['prevPage'])
		self.assertEqual(meta['endIndex'], 0)

	def test_middle_page(self):
		meta = create_pagination_meta(2, 10, 25)
		self.assertEqual(meta['totalPages'], 3)
		self.assertTrue(meta['hasNextPage'])
		self.assertTrue(meta['hasPrevPage'])
		self.assertEqual((meta['nextPage'], meta['prevPage']), (3, 1))
		self.assertEqual((meta['startIndex'], meta['endIndex']), (11, 20))

	def test_last_page(self):
		meta = create_pagination_meta(3, 10, 25)
		self.assertFalse(meta['hasNextPage'])
		self.assertEqual(meta['endIndex'], 25)

	def test_response_envelope(self):
		body = create_paginated_response([1, 2], 1, 2, 5, extra={'filters': {'status': 'paid'}})
		self.assertTrue(body['success'])
		self.assertEqual(body['data'], [1, 2])
		self.assertEqual(body['pagination']['totalItems'], 5)
		self.assertEqual(body['filters'], {'status': 'paid'})


class ExecutePaginatedQueryTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.users = [
			User.objects.create_user(username=f'user{i}', email=f'user{i}@example.com', password='12345678')
			for i in range(7)
		]
		for i, user in enumerate(cls.users):
			ActivityLog.objects.create(user=user, action='even' if i % 2 == 0 else 'odd', description=str(i))

	def test_pages_cover_the_filtered_set_exactly_once(self):
		seen = []
		page = 1
		while True:
			params = parse_pagination_params({'page': page, 'limit': 3})
			result = execute_paginated_query(ActivityLog, {'action': 'even'}, params, sort=['id'])
			self.assertLessEqual(len(result.data), 3)
			self.assertEqual(result.total, 4)
			seen.extend(entry.pk for entry in result.data)
			if not result.pagination['hasNextPage']:
				break
			page += 1
		expected = list(ActivityLog.objects.filter(action='even').order_by('id').values_list('pk', flat=True))
		self.assertEqual(seen, expected)

	def test_accepts_queryset_q_and_none(self):
		from django.db.models import Q

		params = parse_pagination_params({'limit': 100})
		self.assertEqual(execute_paginated_query(ActivityLog, None, params).total, 7)
		self.assertEqual(execute_paginated_query(ActivityLog, Q(action='odd'), params).total, 3)
		qs = ActivityLog.objects.filter(description__in=['0', '1'])
		self.assertEqual(execute_paginated_query(ActivityLog, qs, params).total, 2)

	def test_populate_and_select(self):
		params = parse_pagination_params({'limit': 2})
		result = execute_paginated_query(
			ActivityLog, {}, params, sort='-id', populate=['user'], select=['id', 'action', 'user'],
		)
		with self.assertNumQueries(0):
			names = [entry.user.username for entry in result.data]
		self.assertEqual(names, ['user6', 'user5'])


class ParamParsingTests(SimpleTestCase):

	def test_parse_when(self):
		self.assertIsNone(parse_when(''))
		start = parse_when('2024-05-01')
		end = parse_when('2024-05-01', end_of_day=True)
		self.assertTrue(timezone.is_aware(start))
		self.assertEqual((start.hour, end.hour, end.minute), (0, 23, 59))
		with self.assertRaises(ValidationError):
			parse_when('yesterday')

	def test_parse_numbers(self):
		self.assertEqual(str(parse_number('12.50', 'minSpend')), '12.50')
		with self.assertRaises(ValidationError):
			parse_number('lots', 'minSpend')
		self.assertEqual(parse_int(None, 'limit', default=5), 5)
		with self.assertRaises(ValidationError):
			parse_int('99', 'limit', maximum=50)


class PeriodTests(SimpleTestCase):

	def test_known_period(self):
		now = timezone.now()
		self.assertEqual(period_start('7d', now=now), now - timedelta(days=7))
		self.assertEqual(period_filter('30d', field='date_joined', now=now), {'date_joined__gte': now - timedelta(days=30)})

	def test_unknown_period_means_all_time_unless_default(self):
		now = timezone.now()
		self.assertIsNone(period_start('none'))
		self.assertIsNone(period_start('forever'))
		self.assertEqual(period_start('forever', default='90d', now=now), now - timedelta(days=90))
		self.assertEqual(period_filter(None), {})


class _Body(serializers.Serializer):
	name = serializers.CharField()


class _ErrorView(APIView):
	permission_classes = [AllowAny]
	authentication_classes = []
	error = None

	def post(self, request):
		if self.error is not None:
			raise self.error
		_Body(data=request.data).is_valid(raise_exception=True)
		return Response({'success': True})


class ExceptionHandlerTests(SimpleTestCase):

	def setUp(self):
		self.factory = APIRequestFactory()

	def _call(self, error=None, data=None):
		view = _ErrorView.as_view(error=error)
		return view(self.factory.post('/x/', data or {}, format='json'))

	def test_field_errors(self):
		res = self._call()
		self.assertEqual(res.status_code, 400)
		self.assertEqual(res.data['success'], False)
		self.assertEqual(res.data['code'], 'validation_error')
		self.assertEqual(res.data['message'], 'This field is required.')
		self.assertIn('name', res.data['errors'])

	def test_taxonomy_status_codes(self):
		cases = [
			(ValidationError('No order items'), 400, 'validation_error'),
			(ForbiddenError(), 403, 'forbidden'),
			(NotFoundError('Order'), 404, 'not_found'),
			(ConflictError('Cannot cancel shipped order', code='order_shipped'), 409, 'order_shipped'),
		]
		for error, status_code, code in cases:
			res = self._call(error)
			self.assertEqual(res.status_code, status_code)
			self.assertEqual(res.data['code'], code)
			self.assertFalse(res.data['success'])
		self.assertEqual(self._call(NotFoundError('Order')).data['message'], 'Order not found.')

	def test_django_404_is_mapped(self):
		res = self._call(Http404('gone'))
		self.assertEqual(res.status_code, 404)
		self.assertEqual(res.data['code'], 'not_found')

	def test_unexpected_error_is_generic_500_and_logged(self):
		with self.assertLogs('core.exceptions', level='ERROR') as logs:
			res = self._call(RuntimeError('database password is hunter2'))
		self.assertEqual(res.status_code, 500)
		self.assertEqual(res.data, {'success': False, 'message': 'Internal server error', 'code': 'server_error'})
		self.assertNotIn('hunter2', str(res.data))
		self.assertIn('hunter2', str(logs.records[0].exc_info[1]))


class PerformanceMonitorTests(SimpleTestCase):

	def test_ring_buffers_are_bounded(self):
		monitor = PerformanceMonitor(max_samples=5, max_slow_requests=2, slow_request_ms=-1)
		for _ in range(12):
			monitor.record('GET', '/api/orders/', 200, monitor.start())
		snapshot = monitor.snapshot()
		self.assertEqual(snapshot['requests'], 12)
		self.assertEqual(snapshot['responseTimes']['samples'], 5)
		self.assertEqual(len(snapshot['slowRequests']), 2)
		self.assertEqual(snapshot['routes']['GET /api/orders/']['count'], 12)

	def test_errors_counted_per_route(self):
		monitor = PerformanceMonitor()
		monitor.record('POST', '/api/orders/', 201, monitor.start())
		monitor.record('POST', '/api/orders/', 500, monitor.start())
		snapshot = monitor.snapshot()
		self.assertEqual(snapshot['routes']['POST /api/orders/']['errors'], 1)
		self.assertEqual(snapshot['statusCodes'], {'201': 1, '500': 1})

	def test_monitors_are_independent(self):
		first, second = PerformanceMonitor(), PerformanceMonitor()
		first.record('GET', '/a/', 200, first.start())
		self.assertEqual(second.snapshot()['requests'], 0)
		first.reset()
		self.assertEqual(first.snapshot()['requests'], 0)

	def test_middleware_attaches_its_monitor(self):
		monitor = PerformanceMonitor()
		seen = {}

		def get_response(request):
			seen['metrics'] = request.metrics
			return SimpleNamespace(status_code=204)

		middleware = RequestMetricsMiddleware(get_response, monitor=monitor)
		middleware(RequestFactory().get('/api/ping/'))
		self.assertIs(seen['metrics'], monitor)
		self.assertEqual(monitor.snapshot()['routes']['GET /api/ping/']['count'], 1)


@override_settings(ALLOWED_HOSTS=['testserver', 'localhost', '127.0.0.1'])
class MetricsEndpointTests(TestCase):

	@classmethod
	def setUpTestData(cls):
		User = get_user_model()
		cls.admin = User.objects.create_user(username='ops', email='ops@example.com', password='12345678', role='admin')
		cls.customer = User.objects.create_user(username='cust', email='cust@example.com', password='12345678')

	def test_admin_sees_snapshot(self):
		client = APIClient()
		client.force_authenticate(user=self.admin)
		client.get('/api/products/')
		res = client.get('/api/monitoring/metrics/')
		self.assertEqual(res.status_code, 200)
		self.assertGreaterEqual(res.data['metrics']['requests'], 1)

	def test_customer_forbidden(self):
		client = APIClient()
		client.force_authenticate(user=self.customer)
		self.assertEqual(client.get('/api/monitoring/metrics/').status_code, 403)
