"""Writing and querying the activity log."""

import logging

from core.pagination import execute_paginated_query

from .models import ActivityLog

logger = logging.getLogger(__name__)

# Action codes written by the application.
ORDER_CREATED = 'create_order'
ORDER_STATUS_UPDATED = 'update_order_status'
ORDER_BULK_UPDATED = 'bulk_update_orders'
ORDER_CANCELLED = 'cancel_order'
ORDER_PAID = 'pay_order'
ORDER_SHIPPING_UPDATED = 'update_order_shipping'
REVIEW_ADDED = 'add_review'
USER_UPDATED = 'update_user'
USER_STATUS_UPDATED = 'update_user_status'
USER_ROLE_UPDATED = 'update_user_role'
USER_SUSPENDED = 'suspend_user'
USER_DELETED = 'delete_user'
ADDRESS_ADDED = 'address_added'
ADDRESS_UPDATED = 'address_updated'
ADDRESS_DELETED = 'address_deleted'
PREFERENCES_UPDATED = 'preferences_updated'
PROFILE_UPDATED = 'profile_updated'


def client_ip(request):
    if request is None:
        return None
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def record_activity(user, action, description, target_user=None, request=None):
    entry = ActivityLog.objects.create(
        user=user,
        action=action,
        description=description,
        target_user=target_user,
        ip_address=client_ip(request),
    )
    logger.debug('Activity %s recorded for user %s', action, user.pk)
    return entry


def recent_activity(limit=10):
    return list(ActivityLog.objects.select_related('user').order_by('-created_at', '-id')[:limit])


def activity_filter(user=None, action=None, date_from=None, date_to=None):
    lookups = {}
    if user is not None:
        lookups['user'] = user
    if action:
        lookups['action'] = action
    if date_from:
        lookups['created_at__gte'] = date_from
    if date_to:
        lookups['created_at__lte'] = date_to
    return lookups


def paginated_activity(params, **filters):
    return execute_paginated_query(
        ActivityLog,
        activity_filter(**filters),
        params,
        sort=['-created_at', '-id'],
        populate=['user'],
    )
