"""Query-string parsing shared by list and report endpoints."""

from datetime import datetime, time
from decimal import Decimal, InvalidOperation

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import ValidationError


def parse_when(value, end_of_day=False):
    """Parse an ISO date or datetime into an aware datetime.

    A bare date means the start of that day, or its last instant when
    ``end_of_day`` is set.
    """
    if not value:
        return None
    parsed = parse_datetime(value)
    if parsed is not None:
        return parsed if timezone.is_aware(parsed) else timezone.make_aware(parsed)
    day = parse_date(value)
    if day is None:
        raise ValidationError(f'Invalid date: {value}')
    return timezone.make_aware(datetime.combine(day, time.max if end_of_day else time.min))


def parse_number(value, name):
    if value in (None, ''):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f'{name} must be a number.')


def parse_int(value, name, default=None, minimum=None, maximum=None):
    if value in (None, ''):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer.')
    if minimum is not None and number < minimum:
        raise ValidationError(f'{name} must be at least {minimum}.')
    if maximum is not None and number > maximum:
        raise ValidationError(f'{name} must be at most {maximum}.')
    return number
