"""Orders API views.

Checkout, role-scoped listings, admin status management, payment and
shipping updates, token-verified reviews and sales analytics.
"""

import logging

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import IsAdmin
from core.exceptions import ValidationError
from core.pagination import create_paginated_response, execute_paginated_query, parse_pagination_params
from core.params import parse_number, parse_when
from core.periods import PERIOD_CHOICES

from . import analytics, services
from .models import Order
from .serializers import (
    BulkStatusSerializer,
    CancelOrderSerializer,
    OrderCreateSerializer,
    OrderSerializer,
    PaymentResultSerializer,
    ReviewSubmitSerializer,
    ShippingUpdateSerializer,
    StatusPatchSerializer,
)

logger = logging.getLogger(__name__)


def _parse_period(request, default=None):
    period = request.query_params.get('period') or default
    if period is not None and period not in PERIOD_CHOICES:
        raise ValidationError(f'period must be one of {", ".join(PERIOD_CHOICES)}.')
    return period


class OrderViewSet(viewsets.GenericViewSet):
    """Order API endpoints.

    Customers create orders and read their own; admins read everything and
    drive status changes. Reviews are accepted without login when the
    request carries the order's review token.
    """

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = OrderSerializer
    lookup_value_regex = r'\d+'

    ADMIN_ACTIONS = {'admin_orders', 'set_status', 'bulk_status', 'destroy', 'shipping', 'analytics_summary'}

    def get_permissions(self):
        if self.action == 'review':
            return [permissions.AllowAny()]
        if self.action in self.ADMIN_ACTIONS:
            return [permissions.IsAuthenticated(), IsAdmin()]
        return super().get_permissions()

    def get_queryset(self):
        return services.list_orders_for_user(self.request.user)

    def _paginated(self, request, queryset):
        params = parse_pagination_params(request.query_params)
        result = execute_paginated_query(Order, queryset, params, sort=['-created_at', '-id'])
        data = self.get_serializer(result.data, many=True).data
        return Response(create_paginated_response(data, params.page, params.limit, result.total))

    def _order_response(self, order, **extra):
        return Response({'success': True, 'order': self.get_serializer(order).data, **extra})

    def create(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order, links = services.create_order(
            request.user,
            items=data['orderItems'],
            shipping_address=data['shippingAddress'],
            payment_method=data['paymentMethod'],
            tax_price=data.get('taxPrice'),
            shipping_price=data.get('shippingPrice'),
            total_price=data.get('totalPrice'),
            request=request,
        )
        return Response(
            {
                'success': True,
                'order': self.get_serializer(order).data,
                'reviewToken': order.review_token,
                'reviewLinks': links,
            },
            status=status.HTTP_201_CREATED,
        )

    def list(self, request):
        """Admins get every order, customers their own."""
        return self._paginated(request, self.get_queryset())

    @action(detail=False, methods=['get'])
    def myorders(self, request):
        return self._paginated(request, services.order_queryset().filter(user=request.user))

    @action(detail=False, methods=['get'], url_path='admin')
    def admin_orders(self, request):
        """Admin listing filterable by search, status, date range and amount range."""
        query = request.query_params
        params = parse_pagination_params(query)
        result = services.list_admin_orders(
            params,
            search=query.get('search'),
            status=query.get('status'),
            date_from=parse_when(query.get('dateFrom')),
            date_to=parse_when(query.get('dateTo'), end_of_day=True),
            min_amount=parse_number(query.get('minAmount'), 'minAmount'),
            max_amount=parse_number(query.get('maxAmount'), 'maxAmount'),
        )
        data = self.get_serializer(result.data, many=True).data
        return Response(create_paginated_response(data, params.page, params.limit, result.total))

    def retrieve(self, request, pk=None):
        return self._order_response(services.get_order_by_id(pk, request.user))

    @action(detail=True, methods=['put', 'patch'], url_path='status')
    def set_status(self, request, pk=None):
        serializer = StatusPatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.update_status(pk, serializer.to_patch(), request.user, request=request)
        return self._order_response(order)

    @action(detail=False, methods=['put', 'patch'], url_path='bulk/status')
    def bulk_status(self, request):
        serializer = BulkStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.bulk_update_status(
            serializer.validated_data['orderIds'], serializer.to_patch(), request.user, request=request,
        )
        return Response({'success': True, **result})

    def destroy(self, request, pk=None):
        """Cancel the order. Orders are never physically deleted."""
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.cancel_order(
            pk, serializer.validated_data.get('reason', ''), request.user, request=request,
        )
        return self._order_response(order, message='Order cancelled')

    @action(detail=True, methods=['put'])
    def pay(self, request, pk=None):
        serializer = PaymentResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.mark_paid(pk, serializer.validated_data, request.user, request=request)
        return self._order_response(order)

    @action(detail=True, methods=['put'])
    def shipping(self, request, pk=None):
        serializer = ShippingUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = services.update_shipping(
            pk,
            request.user,
            shipping_status=data.get('status'),
            carrier=data.get('carrier'),
            tracking_number=data.get('tracking_number'),
            request=request,
        )
        return self._order_response(order)

    @action(detail=True, methods=['post'])
    def review(self, request, pk=None):
        serializer = ReviewSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        review = services.add_review(
            pk,
            product_id=data['productId'],
            rating=data['rating'],
            comment=data['comment'],
            review_token=data['reviewToken'],
            name=data.get('name') or None,
            user=request.user,
            request=request,
        )
        return Response(
            {'success': True, 'message': 'Review added', 'review': {'id': review.pk, 'product': review.product_id, 'rating': review.rating}},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response({'success': True, 'stats': services.order_stats(request.user)})

    @action(detail=False, methods=['get'], url_path='analytics/summary')
    def analytics_summary(self, request):
        period = _parse_period(request, default='30d')
        return Response({
            'success': True,
            'period': period,
            'summary': analytics.summary(period),
            'salesByPeriod': analytics.sales_by_period(period, request.query_params.get('groupBy') or 'day'),
            'topProducts': analytics.top_products(5, period),
        })
