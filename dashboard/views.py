"""Admin dashboard endpoints. All read-only."""

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsAdmin
from core.pagination import parse_pagination_params
from core.params import parse_int, parse_when

from . import reports


class DashboardViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated, IsAdmin]

    @action(detail=False, methods=['get'])
    def overview(self, request):
        period = request.query_params.get('period')
        return Response({'success': True, 'data': reports.overview(period)})

    @action(detail=False, methods=['get'], url_path='sales-chart')
    def sales_chart(self, request):
        query = request.query_params
        period = query.get('period') or '30d'
        data = reports.sales_chart(period, query.get('groupBy') or 'day')
        return Response({'success': True, 'period': period, 'data': data})

    @action(detail=False, methods=['get'], url_path='top-products')
    def top_products(self, request):
        query = request.query_params
        limit = parse_int(query.get('limit'), 'limit', default=5, minimum=1, maximum=50)
        return Response({'success': True, 'data': reports.top_products(limit, query.get('period'))})

    @action(detail=False, methods=['get'], url_path='recent-orders')
    def recent_orders(self, request):
        limit = parse_int(request.query_params.get('limit'), 'limit', default=5, minimum=1, maximum=50)
        return Response({'success': True, 'data': reports.recent_orders(limit)})

    @action(detail=False, methods=['get'], url_path='activity-log')
    def activity_log(self, request):
        """Paginated audit entries, filterable by user id, action and date range."""
        query = request.query_params
        params = parse_pagination_params(query)
        body = reports.activity_log(
            params,
            user=parse_int(query.get('userId'), 'userId', minimum=1),
            action=query.get('action'),
            date_from=parse_when(query.get('dateFrom')),
            date_to=parse_when(query.get('dateTo'), end_of_day=True),
        )
        return Response(body)
