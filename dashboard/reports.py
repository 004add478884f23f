"""Back-office reporting.

Every function is a read-only aggregation recomputed on each call. Periods
are relative windows on ``created_at`` (``date_joined`` for users); an
unknown or missing period means all time.
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Avg, Count, Q, Sum

from activity import services as audit
from activity.serializers import ActivityLogSerializer
from core.pagination import create_paginated_response
from core.periods import period_filter
from newsletter.models import NewsletterSubscriber
from orders import analytics
from orders.serializers import OrderSerializer
from orders.services import order_queryset
from products.models import Category, Product
from support.models import SupportTicket

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10
LOW_STOCK_LIMIT = 10


def _low_stock_threshold():
    return getattr(settings, 'LOW_STOCK_THRESHOLD', 10)


def user_summary(period=None):
    User = get_user_model()
    users = User.objects.filter(**period_filter(period, field='date_joined'))
    return users.aggregate(
        totalUsers=Count('id'),
        activeUsers=Count('id', filter=Q(status=User.STATUS_ACTIVE)),
        suspendedUsers=Count('id', filter=Q(status=User.STATUS_SUSPENDED)),
        pendingUsers=Count('id', filter=Q(status=User.STATUS_PENDING)),
        customers=Count('id', filter=Q(role=User.ROLE_CUSTOMER)),
        admins=Count('id', filter=Q(role=User.ROLE_ADMIN) | Q(is_superuser=True)),
    )


def product_summary(period=None):
    products = Product.objects.filter(**period_filter(period))
    totals = products.aggregate(
        totalProducts=Count('id'),
        visibleProducts=Count('id', filter=Q(visibility=Product.VISIBILITY_VISIBLE)),
        hiddenProducts=Count('id', filter=Q(visibility=Product.VISIBILITY_HIDDEN)),
        archivedProducts=Count('id', filter=Q(visibility=Product.VISIBILITY_ARCHIVED)),
        outOfStock=Count('id', filter=Q(stock=0)),
        lowStock=Count('id', filter=Q(stock__gt=0, stock__lt=_low_stock_threshold())),
        totalStock=Sum('stock'),
        averagePrice=Avg('price'),
    )
    totals['totalStock'] = totals['totalStock'] or 0
    totals['averagePrice'] = round(float(totals['averagePrice'] or 0), 2)
    return totals


def category_summary(period=None):
    categories = Category.objects.filter(**period_filter(period)).annotate(product_count=Count('products'))
    return {
        'totalCategories': categories.count(),
        'categoriesWithProducts': categories.filter(product_count__gt=0).count(),
    }


def support_summary(period=None):
    tickets = SupportTicket.objects.filter(**period_filter(period))
    return tickets.aggregate(
        totalTickets=Count('id'),
        openTickets=Count('id', filter=Q(status=SupportTicket.STATUS_OPEN)),
        inProgressTickets=Count('id', filter=Q(status=SupportTicket.STATUS_IN_PROGRESS)),
        waitingTickets=Count('id', filter=Q(status=SupportTicket.STATUS_WAITING_CUSTOMER)),
        resolvedTickets=Count('id', filter=Q(status=SupportTicket.STATUS_RESOLVED)),
        closedTickets=Count('id', filter=Q(status=SupportTicket.STATUS_CLOSED)),
        urgentTickets=Count('id', filter=Q(priority=SupportTicket.PRIORITY_URGENT)),
    )


def newsletter_summary(period=None):
    subscribers = NewsletterSubscriber.objects.filter(**period_filter(period))
    return subscribers.aggregate(
        totalSubscribers=Count('id'),
        subscribed=Count('id', filter=Q(status=NewsletterSubscriber.STATUS_SUBSCRIBED)),
        unsubscribed=Count('id', filter=Q(status=NewsletterSubscriber.STATUS_UNSUBSCRIBED)),
    )


def low_stock_products(limit=LOW_STOCK_LIMIT):
    products = (
        Product.objects
        .exclude(visibility=Product.VISIBILITY_ARCHIVED)
        .filter(stock__lt=_low_stock_threshold())
        .order_by('stock', 'id')
        .values('id', 'name', 'stock', 'price')[:limit]
    )
    return [{**row, 'price': float(row['price'])} for row in products]


def overview(period=None):
    """Period-filtered summaries plus the latest activity and low-stock list.

    ``recentActivity`` is always the newest entries overall; the period does
    not narrow it.
    """
    return {
        'period': period or 'none',
        'users': user_summary(period),
        'products': product_summary(period),
        'orders': analytics.summary(period),
        'categories': category_summary(period),
        'support': support_summary(period),
        'newsletter': newsletter_summary(period),
        'recentActivity': ActivityLogSerializer(audit.recent_activity(RECENT_ACTIVITY_LIMIT), many=True).data,
        'lowStockProducts': low_stock_products(),
    }


def sales_chart(period=None, group_by='day'):
    return analytics.sales_by_period(period, group_by)


def top_products(limit=5, period=None):
    return analytics.top_products(limit, period)


def recent_orders(limit=5):
    orders = order_queryset().order_by('-created_at', '-id')[:limit]
    return OrderSerializer(orders, many=True).data


def activity_log(params, **filters):
    result = audit.paginated_activity(params, **filters)
    data = ActivityLogSerializer(result.data, many=True).data
    return create_paginated_response(data, params.page, params.limit, result.total)
