"""Order lifecycle operations.

Views call these functions and let the :mod:`core.exceptions` errors they
raise propagate to the API exception handler.
"""

import logging
import secrets
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import Avg, Count, F, Prefetch, Q, Sum

from activity import services as audit
from accounts.permissions import is_admin
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.pagination import execute_paginated_query
from products.models import Product, Review

from . import state
from .models import Order, OrderItem

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
PRICE_TOLERANCE = Decimal('0.01')


def _money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def order_queryset():
    """Orders with owner and line items (plus product/category) joined for display."""
    return Order.objects.select_related('user').prefetch_related(
        Prefetch('items', queryset=OrderItem.objects.select_related('product__category')),
    )


def review_links(order):
    base = getattr(settings, 'FRONTEND_URL', 'http://localhost:5173').rstrip('/')
    return [
        {
            'product': item.product_id,
            'token': order.review_token,
            'url': f'{base}/review?product={item.product_id}&token={order.review_token}',
        }
        for item in order.items.all()
    ]


def create_order(user, items, shipping_address, payment_method, tax_price=0, shipping_price=0, total_price=None, request=None):
    """Place an order from ``items`` (``[{'product': id, 'qty': n}, ...]``).

    Line prices are taken from the products at checkout, stock is reserved
    and ``total_price`` is recomputed. A client total that disagrees with the
    server figure by more than a cent is rejected.

    Returns ``(order, review_links)``.
    """
    if not items:
        raise ValidationError('No order items', code='empty_order')

    tax_price = _money(tax_price or 0)
    shipping_price = _money(shipping_price or 0)
    if tax_price < 0 or shipping_price < 0:
        raise ValidationError('Tax and shipping prices cannot be negative.')

    with transaction.atomic():
        product_ids = {int(item['product']) for item in items}
        products = {
            p.pk: p for p in Product.objects.select_for_update().filter(pk__in=product_ids)
        }

        lines = []
        items_price = Decimal('0')
        requested = {}
        for item in items:
            product = products.get(int(item['product']))
            if product is None or product.visibility != Product.VISIBILITY_VISIBLE:
                raise ValidationError(f"Product {item['product']} is not available.", code='product_unavailable')
            qty = int(item['qty'])
            if qty < 1:
                raise ValidationError('Quantity must be at least 1.')
            requested[product.pk] = requested.get(product.pk, 0) + qty
            if requested[product.pk] > product.stock:
                raise ValidationError(
                    f'Insufficient stock for {product.name}. Available: {product.stock}.', code='insufficient_stock',
                )
            price = product.effective_price
            items_price += price * qty
            lines.append(OrderItem(product=product, name=product.name, price=price, qty=qty, image=product.image))

        items_price = _money(items_price)
        computed_total = items_price + tax_price + shipping_price
        if total_price is not None and abs(_money(total_price) - computed_total) > PRICE_TOLERANCE:
            raise ValidationError(
                f'Order total {_money(total_price)} does not match computed total {computed_total}.',
                code='price_mismatch',
            )

        order = Order.objects.create(
            user=user,
            shipping_address=shipping_address['address'],
            shipping_city=shipping_address['city'],
            shipping_postal_code=shipping_address['postal_code'],
            shipping_country=shipping_address['country'],
            payment_method=payment_method,
            items_price=items_price,
            tax_price=tax_price,
            shipping_price=shipping_price,
            total_price=computed_total,
            review_token=secrets.token_hex(32),
        )
        for line in lines:
            line.order = order
        OrderItem.objects.bulk_create(lines)

        for product_id, qty in requested.items():
            Product.objects.filter(pk=product_id).update(stock=F('stock') - qty)

        audit.record_activity(
            user, audit.ORDER_CREATED, f'Created order {order.pk} ({len(lines)} items, total {computed_total})',
            request=request,
        )

    logger.info('Order %s created by user %s total=%s', order.pk, user.pk, computed_total)
    order = order_queryset().get(pk=order.pk)
    return order, review_links(order)


def list_orders_for_user(user):
    """Admins see every order; everyone else only their own. Newest first."""
    queryset = order_queryset()
    if not is_admin(user):
        queryset = queryset.filter(user=user)
    return queryset.order_by('-created_at', '-id')


def admin_order_filter(search=None, status=None, date_from=None, date_to=None, min_amount=None, max_amount=None):
    """Build the ``Q`` used by the admin order listing."""
    query = Q()
    if search:
        search = str(search).strip()
        match = Q(user__username__icontains=search) | Q(user__email__icontains=search)
        match |= Q(user__first_name__icontains=search) | Q(user__last_name__icontains=search)
        if search.isdigit():
            match |= Q(pk=int(search))
        query &= match

    if status and status != 'all':
        if status == 'paid':
            query &= Q(is_paid=True)
        elif status == 'unpaid':
            query &= Q(is_paid=False)
        elif status == 'shipped':
            query &= Q(is_shipped=True)
        elif status == 'unshipped':
            query &= Q(is_shipped=False)
        elif status in state.ORDER_STATUSES:
            query &= Q(order_status=status)
        else:
            raise ValidationError(f'Unknown status filter: {status}')

    if date_from:
        query &= Q(created_at__gte=date_from)
    if date_to:
        query &= Q(created_at__lte=date_to)
    if min_amount is not None:
        query &= Q(total_price__gte=min_amount)
    if max_amount is not None:
        query &= Q(total_price__lte=max_amount)
    return query


def list_admin_orders(params, **filters):
    return execute_paginated_query(
        Order,
        order_queryset().filter(admin_order_filter(**filters)),
        params,
        sort=['-created_at', '-id'],
    )


def get_order_by_id(order_id, requester):
    """Missing orders are 404; orders owned by someone else are 403."""
    order = order_queryset().filter(pk=order_id).first()
    if order is None:
        raise NotFoundError('Order')
    if not (is_admin(requester) or order.is_owned_by(requester)):
        raise ForbiddenError('You do not have access to this order.')
    return order


def _release_stock(order):
    for item in order.items.all():
        Product.objects.filter(pk=item.product_id).update(stock=F('stock') + item.qty)


def _save_updates(order, updates, actor):
    """Apply planned updates; an order that enters cancelled gives its stock back."""
    state.apply_updates(order, updates)
    cancelling = updates.get('order_status') == state.CANCELLED
    if cancelling:
        order.cancelled_by = actor
    order.save()
    if cancelling:
        _release_stock(order)


def _locked_order(order_id):
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise NotFoundError('Order')
    return order


def update_status(order_id, patch, actor, request=None):
    """Apply any subset of is_shipped/is_paid/order_status/tracking_number/admin_notes."""
    with transaction.atomic():
        order = _locked_order(order_id)
        updates = state.plan_status_change(order, patch)
        if updates:
            _save_updates(order, updates, actor)
        audit.record_activity(
            actor,
            audit.ORDER_STATUS_UPDATED,
            f'Updated order {order.pk} status to {order.order_status}',
            target_user=order.user,
            request=request,
        )
    logger.info('Order %s updated by %s: %s', order.pk, actor.pk, sorted(updates))
    return order_queryset().get(pk=order.pk)


def bulk_update_status(order_ids, patch, actor, request=None):
    """Apply one patch to every order in ``order_ids`` in a single transaction.

    Either every order accepts the patch or nothing changes. One audit entry
    summarises the batch. Returns ``{'matchedCount', 'modifiedCount'}``.
    """
    order_ids = list(dict.fromkeys(int(pk) for pk in order_ids))
    if not order_ids:
        raise ValidationError('orderIds must not be empty.')

    with transaction.atomic():
        orders = list(Order.objects.select_for_update().filter(pk__in=order_ids).order_by('pk'))
        missing = sorted(set(order_ids) - {o.pk for o in orders})
        if missing:
            raise NotFoundError(f"Orders {', '.join(str(pk) for pk in missing)}")

        plans = []
        conflicts = {}
        for order in orders:
            try:
                plans.append((order, state.plan_status_change(order, patch)))
            except ConflictError as exc:
                conflicts[str(order.pk)] = str(exc.detail)
        if conflicts:
            raise ConflictError(
                {'message': 'Some orders cannot take this update.', 'orders': conflicts},
                code='invalid_transition',
            )

        modified = 0
        for order, updates in plans:
            if not updates:
                continue
            _save_updates(order, updates, actor)
            modified += 1

        changes = ', '.join(f'{key}={value}' for key, value in sorted(patch.items()))
        audit.record_activity(
            actor,
            audit.ORDER_BULK_UPDATED,
            f'Bulk updated {modified} of {len(orders)} orders ({changes})',
            request=request,
        )

    logger.info('Bulk update by %s: matched=%s modified=%s', actor.pk, len(orders), modified)
    return {'matchedCount': len(orders), 'modifiedCount': modified}


def cancel_order(order_id, reason, actor, request=None):
    """Soft-cancel an order and put its stock back. Shipped orders cannot be cancelled."""
    with transaction.atomic():
        order = _locked_order(order_id)
        if order.order_status == state.CANCELLED:
            raise ConflictError('Order is already cancelled', code='already_cancelled')
        if order.is_shipped:
            raise ConflictError('Cannot cancel shipped order', code='order_shipped')
        state.check_order_transition(order.order_status, state.CANCELLED)

        order.order_status = state.CANCELLED
        order.cancellation_reason = reason or ''
        order.cancelled_by = actor
        order.save()
        _release_stock(order)

        audit.record_activity(
            actor,
            audit.ORDER_CANCELLED,
            f'Cancelled order {order.pk}: {reason}' if reason else f'Cancelled order {order.pk}',
            target_user=order.user,
            request=request,
        )
    logger.info('Order %s cancelled by %s', order.pk, actor.pk)
    return order_queryset().get(pk=order.pk)


def mark_paid(order_id, payment_result, actor, request=None):
    """Record a successful payment. Only the owner or an admin may do this."""
    with transaction.atomic():
        order = _locked_order(order_id)
        if not (is_admin(actor) or order.is_owned_by(actor)):
            raise ForbiddenError('You do not have access to this order.')
        if order.order_status in state.TERMINAL_ORDER_STATUSES:
            raise ConflictError(f'Cannot pay for an order that is {order.order_status}.', code='invalid_transition')
        if order.is_paid:
            raise ConflictError('Order is already paid', code='already_paid')

        order.is_paid = True
        order.payment_result_id = payment_result.get('id', '')
        order.payment_result_status = payment_result.get('status', '')
        order.payment_result_update_time = payment_result.get('update_time', '')
        order.payment_result_email = payment_result.get('email_address', '')
        order.save()

        audit.record_activity(
            actor, audit.ORDER_PAID, f'Marked order {order.pk} as paid', target_user=order.user, request=request,
        )
    logger.info('Order %s paid (payment id %s)', order.pk, order.payment_result_id or '-')
    return order_queryset().get(pk=order.pk)


def update_shipping(order_id, actor, shipping_status=None, carrier=None, tracking_number=None, request=None):
    with transaction.atomic():
        order = _locked_order(order_id)
        updates = state.plan_shipping_change(
            order, shipping_status=shipping_status, carrier=carrier, tracking_number=tracking_number,
        )
        if updates:
            state.apply_updates(order, updates)
            order.save()
        audit.record_activity(
            actor,
            audit.ORDER_SHIPPING_UPDATED,
            f'Updated order {order.pk} shipping to {order.shipping_status}',
            target_user=order.user,
            request=request,
        )
    return order_queryset().get(pk=order.pk)


def add_review(order_id, product_id, rating, comment, review_token, name=None, user=None, request=None):
    """Store a verified review for a product bought in ``order_id``.

    The caller proves the purchase with the order's review token, so no login
    is needed. One review per product per order.
    """
    with transaction.atomic():
        order = Order.objects.select_related('user').filter(pk=order_id).first()
        if order is None:
            raise NotFoundError('Order')
        if not review_token or not secrets.compare_digest(str(review_token), order.review_token):
            raise ForbiddenError('Invalid review token', code='invalid_review_token')
        if not order.items.filter(product_id=product_id).exists():
            raise ValidationError('Product not found in order', code='product_not_in_order')
        if Review.objects.filter(order=order, product_id=product_id).exists():
            raise ConflictError('This product has already been reviewed for this order', code='already_reviewed')

        product = Product.objects.select_for_update().get(pk=product_id)
        reviewer = user if user is not None and user.is_authenticated else None
        display_name = name or order.user.get_full_name() or order.user.username
        review = Review.objects.create(
            product=product,
            user=reviewer or order.user,
            order=order,
            name=display_name,
            rating=rating,
            comment=comment,
        )
        product.refresh_rating()

        audit.record_activity(
            reviewer or order.user, audit.REVIEW_ADDED, f'Added review for product {product.pk}', request=request,
        )
    logger.info('Review %s added for product %s via order %s', review.pk, product.pk, order.pk)
    return review


def order_stats(user):
    """Totals over the requester's orders, or over every order for admins."""
    queryset = Order.objects.all()
    if not is_admin(user):
        queryset = queryset.filter(user=user)
    stats = queryset.aggregate(
        totalOrders=Count('id'),
        totalRevenue=Sum('total_price'),
        averageOrderValue=Avg('total_price'),
        pendingOrders=Count('id', filter=Q(order_status=state.PENDING)),
        shippedOrders=Count('id', filter=Q(is_shipped=True)),
        paidOrders=Count('id', filter=Q(is_paid=True)),
        cancelledOrders=Count('id', filter=Q(order_status=state.CANCELLED)),
    )
    stats['totalRevenue'] = _money(stats['totalRevenue'] or 0)
    stats['averageOrderValue'] = _money(stats['averageOrderValue'] or 0)
    return stats
