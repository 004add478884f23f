"""Read-only sales analytics over paid orders.

Every call recomputes from the period-filtered order set; nothing is cached.
"""

from decimal import Decimal

from django.db.models import Avg, Count, DecimalField, ExpressionWrapper, F, Q, Sum

from core.exceptions import ValidationError
from core.periods import period_filter
from dashboard.pipeline import Bucket, Pipeline

from . import state
from .models import Order, OrderItem

GROUP_BY_UNITS = ('day', 'week', 'month')

LINE_REVENUE = ExpressionWrapper(F('price') * F('qty'), output_field=DecimalField(max_digits=14, decimal_places=2))


def _float(value):
    return float(value or 0)


def _bucket_label(value, unit):
    day = value.date() if hasattr(value, 'date') else value
    if unit == 'month':
        return day.strftime('%Y-%m')
    return day.isoformat()


def sales_by_period(period=None, group_by='day'):
    """Paid orders grouped into day/week/month buckets, oldest bucket first."""
    if group_by not in GROUP_BY_UNITS:
        raise ValidationError(f'groupBy must be one of {", ".join(GROUP_BY_UNITS)}.')

    pipeline = Pipeline().match(is_paid=True)
    window = period_filter(period)
    if window:
        pipeline.match(**window)
    rows = (
        pipeline
        .group({'bucket': Bucket('created_at', group_by)}, revenue=Sum('total_price'), orderCount=Count('id'))
        .sort('bucket')
        .execute(Order.objects.all())
    )
    results = []
    for row in rows:
        revenue = row['revenue'] or Decimal('0')
        count = row['orderCount']
        results.append({
            'period': _bucket_label(row['bucket'], group_by),
            'revenue': _float(revenue),
            'orderCount': count,
            'averageOrderValue': round(_float(revenue) / count, 2) if count else 0.0,
        })
    return results


def top_products(limit=5, period=None):
    """Products ranked by quantity sold across order lines in the period."""
    pipeline = Pipeline().match(order__order_status__in=_counted_statuses())
    window = period_filter(period, field='order__created_at')
    if window:
        pipeline.match(**window)
    rows = (
        pipeline
        .group(
            {
                'productId': 'product',
                'productName': 'product__name',
                'productImage': 'product__image',
                'productPrice': 'product__price',
            },
            totalQuantity=Sum('qty'),
            totalRevenue=Sum(LINE_REVENUE),
            orderCount=Count('order', distinct=True),
        )
        .sort('-totalQuantity', '-totalRevenue', 'productId')
        .limit(limit)
        .execute(OrderItem.objects.all())
    )
    return [
        {
            'productId': row['productId'],
            'name': row['productName'],
            'image': row['productImage'],
            'price': _float(row['productPrice']),
            'totalQuantity': row['totalQuantity'] or 0,
            'totalRevenue': _float(row['totalRevenue']),
            'orderCount': row['orderCount'],
        }
        for row in rows
    ]


def _counted_statuses():
    return [s for s in state.ORDER_STATUSES if s not in (state.CANCELLED, state.REFUNDED)]


def summary(period=None):
    orders = Order.objects.filter(**period_filter(period))
    totals = orders.aggregate(
        totalOrders=Count('id'),
        paidOrders=Count('id', filter=Q(is_paid=True)),
        totalRevenue=Sum('total_price', filter=Q(is_paid=True)),
        averageOrderValue=Avg('total_price', filter=Q(is_paid=True)),
        pendingOrders=Count('id', filter=Q(order_status=state.PENDING)),
        shippedOrders=Count('id', filter=Q(is_shipped=True)),
        deliveredOrders=Count('id', filter=Q(is_delivered=True)),
        cancelledOrders=Count('id', filter=Q(order_status=state.CANCELLED)),
    )
    totals['totalRevenue'] = round(_float(totals['totalRevenue']), 2)
    totals['averageOrderValue'] = round(_float(totals['averageOrderValue']), 2)
    return totals
