"""HTTP middleware for the storefront API."""

import logging

from django.conf import settings

from .metrics import PerformanceMonitor

logger = logging.getLogger(__name__)


class RequestMetricsMiddleware:
    """Time every request into a monitor owned by this middleware instance."""

    def __init__(self, get_response, monitor=None):
        self.get_response = get_response
        conf = getattr(settings, 'METRICS', {})
        self.monitor = monitor or PerformanceMonitor(
            max_samples=conf.get('MAX_SAMPLES', 1000),
            max_slow_requests=conf.get('MAX_SLOW_REQUESTS', 100),
            slow_request_ms=conf.get('SLOW_REQUEST_MS', 1000),
        )

    def __call__(self, request):
        request.metrics = self.monitor
        started_at = self.monitor.start()
        response = self.get_response(request)

        match = getattr(request, 'resolver_match', None)
        route = f'/{match.route}' if match is not None and match.route else request.path
        user = getattr(request, 'user', None)
        user_id = user.pk if user is not None and user.is_authenticated else None

        duration_ms = self.monitor.record(request.method, route, response.status_code, started_at, user_id)
        if duration_ms > self.monitor.slow_request_ms:
            logger.warning('Slow request %s %s took %.0f ms', request.method, route, duration_ms)
        return response
