"""Order and shipping status machines.

``order_status`` moves forward along ``pending -> confirmed -> processing ->
shipped -> delivered``. ``cancelled`` and ``refunded`` can be reached from any
state that is not terminal, and a delivered order can still be refunded.

``shipping_status`` is a coarser parallel machine:
``pending -> processing -> shipped -> in_transit -> delivered`` with
``failed`` reachable from any non-terminal shipping state. Shipping progress
lifts the order status; the reverse direction only marks the order shipped.
"""

from core.exceptions import ConflictError

PENDING = 'pending'
CONFIRMED = 'confirmed'
PROCESSING = 'processing'
SHIPPED = 'shipped'
DELIVERED = 'delivered'
CANCELLED = 'cancelled'
REFUNDED = 'refunded'

ORDER_STATUS_CHOICES = (
    (PENDING, 'Pending'),
    (CONFIRMED, 'Confirmed'),
    (PROCESSING, 'Processing'),
    (SHIPPED, 'Shipped'),
    (DELIVERED, 'Delivered'),
    (CANCELLED, 'Cancelled'),
    (REFUNDED, 'Refunded'),
)
ORDER_STATUSES = tuple(value for value, _ in ORDER_STATUS_CHOICES)

SHIPPING_PENDING = 'pending'
SHIPPING_PROCESSING = 'processing'
SHIPPING_SHIPPED = 'shipped'
SHIPPING_IN_TRANSIT = 'in_transit'
SHIPPING_DELIVERED = 'delivered'
SHIPPING_FAILED = 'failed'

SHIPPING_STATUS_CHOICES = (
    (SHIPPING_PENDING, 'Pending'),
    (SHIPPING_PROCESSING, 'Processing'),
    (SHIPPING_SHIPPED, 'Shipped'),
    (SHIPPING_IN_TRANSIT, 'In transit'),
    (SHIPPING_DELIVERED, 'Delivered'),
    (SHIPPING_FAILED, 'Failed'),
)
SHIPPING_STATUSES = tuple(value for value, _ in SHIPPING_STATUS_CHOICES)

ORDER_FLOW = (PENDING, CONFIRMED, PROCESSING, SHIPPED, DELIVERED)
SHIPPING_FLOW = (SHIPPING_PENDING, SHIPPING_PROCESSING, SHIPPING_SHIPPED, SHIPPING_IN_TRANSIT, SHIPPING_DELIVERED)


def _forward(flow, current):
    return set(flow[flow.index(current) + 1:])


_ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: _forward(ORDER_FLOW, PENDING) | {CANCELLED, REFUNDED},
    CONFIRMED: _forward(ORDER_FLOW, CONFIRMED) | {CANCELLED, REFUNDED},
    PROCESSING: _forward(ORDER_FLOW, PROCESSING) | {CANCELLED, REFUNDED},
    SHIPPED: {DELIVERED, CANCELLED, REFUNDED},
    DELIVERED: {REFUNDED},
    CANCELLED: set(),
    REFUNDED: set(),
}

_ALLOWED_SHIPPING_TRANSITIONS: dict[str, set[str]] = {
    SHIPPING_PENDING: _forward(SHIPPING_FLOW, SHIPPING_PENDING) | {SHIPPING_FAILED},
    SHIPPING_PROCESSING: _forward(SHIPPING_FLOW, SHIPPING_PROCESSING) | {SHIPPING_FAILED},
    SHIPPING_SHIPPED: _forward(SHIPPING_FLOW, SHIPPING_SHIPPED) | {SHIPPING_FAILED},
    SHIPPING_IN_TRANSIT: {SHIPPING_DELIVERED, SHIPPING_FAILED},
    SHIPPING_DELIVERED: set(),
    SHIPPING_FAILED: set(),
}

TERMINAL_ORDER_STATUSES = frozenset(s for s, targets in _ALLOWED_TRANSITIONS.items() if not targets)


def order_transition_allowed(current, target):
    if current == target:
        return True
    return target in _ALLOWED_TRANSITIONS.get(current, set())


def shipping_transition_allowed(current, target):
    if current == target:
        return True
    return target in _ALLOWED_SHIPPING_TRANSITIONS.get(current, set())


def _order_rank(status):
    return ORDER_FLOW.index(status) if status in ORDER_FLOW else None


def _shipping_rank(status):
    return SHIPPING_FLOW.index(status) if status in SHIPPING_FLOW else None


def check_order_transition(current, target):
    if not order_transition_allowed(current, target):
        raise ConflictError(f'Cannot change order status from {current} to {target}.', code='invalid_transition')


def check_shipping_transition(current, target):
    if not shipping_transition_allowed(current, target):
        raise ConflictError(f'Cannot change shipping status from {current} to {target}.', code='invalid_transition')


def _mark_shipped(order, updates):
    """Flag the order shipped and move its shipping status up to ``shipped``."""
    updates['is_shipped'] = True
    rank = _shipping_rank(updates.get('shipping_status', order.shipping_status))
    if rank is not None and rank < SHIPPING_FLOW.index(SHIPPING_SHIPPED):
        updates['shipping_status'] = SHIPPING_SHIPPED


def plan_status_change(order, patch):
    """Return the field updates ``patch`` implies for ``order``.

    ``patch`` may hold ``is_shipped``, ``is_paid``, ``order_status``,
    ``tracking_number`` and ``admin_notes``. Raises :class:`ConflictError`
    without touching ``order`` when the change is not allowed. Timestamps are
    stamped on save by the order signals.
    """
    updates = {}
    target = patch.get('order_status')

    is_shipped = patch.get('is_shipped')
    if is_shipped is True and not order.is_shipped:
        if order.order_status in TERMINAL_ORDER_STATUSES:
            raise ConflictError(f'Cannot ship an order that is {order.order_status}.', code='invalid_transition')
        _mark_shipped(order, updates)
        rank = _order_rank(order.order_status)
        if target is None and rank is not None and rank < ORDER_FLOW.index(SHIPPED):
            target = SHIPPED
    elif is_shipped is False and order.is_shipped:
        raise ConflictError('A shipped order cannot be marked as not shipped.', code='invalid_transition')

    if target is not None and target != order.order_status:
        check_order_transition(order.order_status, target)
        if target == CANCELLED and (order.is_shipped or updates.get('is_shipped')):
            raise ConflictError('Cannot cancel shipped order.', code='order_shipped')
        updates['order_status'] = target
        if target in (SHIPPED, DELIVERED) and not order.is_shipped:
            _mark_shipped(order, updates)
        if target == DELIVERED:
            updates['is_delivered'] = True
            updates['shipping_status'] = SHIPPING_DELIVERED

    is_paid = patch.get('is_paid')
    if is_paid is not None and is_paid != order.is_paid:
        updates['is_paid'] = is_paid

    for name in ('tracking_number', 'admin_notes'):
        value = patch.get(name)
        if value is not None and value != getattr(order, name):
            updates[name] = value

    return updates


def plan_shipping_change(order, shipping_status=None, carrier=None, tracking_number=None):
    """Return the field updates for a shipping update, lifting the order status when legal."""
    updates = {}
    if carrier is not None and carrier != order.shipping_carrier:
        updates['shipping_carrier'] = carrier
    if tracking_number is not None and tracking_number != order.tracking_number:
        updates['tracking_number'] = tracking_number

    if shipping_status is None or shipping_status == order.shipping_status:
        return updates

    if order.order_status in TERMINAL_ORDER_STATUSES:
        raise ConflictError(f'Cannot update shipping of an order that is {order.order_status}.', code='invalid_transition')
    check_shipping_transition(order.shipping_status, shipping_status)
    updates['shipping_status'] = shipping_status

    if shipping_status in (SHIPPING_SHIPPED, SHIPPING_IN_TRANSIT, SHIPPING_DELIVERED):
        updates['is_shipped'] = True
        if order_transition_allowed(order.order_status, SHIPPED) and _order_rank(order.order_status) < ORDER_FLOW.index(SHIPPED):
            updates['order_status'] = SHIPPED
    if shipping_status == SHIPPING_DELIVERED:
        updates['is_delivered'] = True
        current = updates.get('order_status', order.order_status)
        if order_transition_allowed(current, DELIVERED):
            updates['order_status'] = DELIVERED
    return updates


def apply_updates(order, updates):
    for name, value in updates.items():
        setattr(order, name, value)
    return list(updates)
