"""Relative reporting windows (``7d``, ``30d``, ``90d``, ``1y``)."""

from datetime import timedelta

from django.utils import timezone

PERIOD_WINDOWS = {
    '7d': timedelta(days=7),
    '30d': timedelta(days=30),
    '90d': timedelta(days=90),
    '1y': timedelta(days=365),
}

PERIOD_CHOICES = ('none',) + tuple(PERIOD_WINDOWS)


def period_start(period, default=None, now=None):
    """Return the lower ``created_at`` bound for ``period``, or ``None`` for all time.

    Unknown periods fall back to ``default``; with no default they mean all time.
    """
    window = PERIOD_WINDOWS.get(period) or PERIOD_WINDOWS.get(default)
    if window is None:
        return None
    return (now or timezone.now()) - window


def period_filter(period, field='created_at', default=None, now=None):
    start = period_start(period, default=default, now=now)
    return {f'{field}__gte': start} if start is not None else {}
