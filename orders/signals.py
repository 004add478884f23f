"""Signals stamping order lifecycle timestamps."""

import logging

from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver
from django.utils import timezone

from . import state
from .models import Order

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Order)
def capture_old_state(sender, instance, **kwargs):
    """Remember the stored status fields so the stamps below fire only on change."""
    old = None
    if instance.pk:
        old = Order.objects.filter(pk=instance.pk).values(
            'order_status', 'shipping_status', 'is_paid', 'is_delivered',
        ).first()
    instance._old_state = old or {}


@receiver(pre_save, sender=Order)
def stamp_lifecycle_timestamps(sender, instance, **kwargs):
    """``shipped_at`` when the order first ships; cancellation fields only while cancelled."""
    old = getattr(instance, '_old_state', {})
    now = timezone.now()

    # Forward jumps can skip the ``shipped`` shipping status itself.
    if instance.is_shipped and instance.shipped_at is None:
        instance.shipped_at = now

    if instance.is_delivered and not old.get('is_delivered') and instance.delivered_at is None:
        instance.delivered_at = now

    if instance.is_paid and not old.get('is_paid') and instance.paid_at is None:
        instance.paid_at = now
    elif not instance.is_paid:
        instance.paid_at = None

    if instance.order_status == state.CANCELLED:
        if instance.cancelled_at is None:
            instance.cancelled_at = now
    else:
        instance.cancelled_at = None
        instance.cancellation_reason = ''
        instance.cancelled_by = None


@receiver(post_save, sender=Order)
def log_status_change(sender, instance, created, **kwargs):
    old = getattr(instance, '_old_state', {})
    if created:
        return
    if old.get('order_status') != instance.order_status:
        logger.info('Order %s status %s -> %s', instance.pk, old.get('order_status'), instance.order_status)
    if old.get('shipping_status') != instance.shipping_status:
        logger.info(
            'Order %s shipping %s -> %s', instance.pk, old.get('shipping_status'), instance.shipping_status,
        )
