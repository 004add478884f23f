"""Shipping rate quotes.

Each configured carrier is quoted through ``SHIPPING['RATE_URL']`` when one
is set. A carrier whose live request fails, and every carrier when no URL
is configured, is priced from the static table in settings instead.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_ITEM_WEIGHT_KG = Decimal('0.2')
BASE_WEIGHT_KG = Decimal('2.5')

BOX_TIERS = (
    {'name': 'Small', 'max_items': 3, 'dimensions': {'length': 25, 'width': 20, 'height': 8}},
    {'name': 'Medium', 'max_items': 8, 'dimensions': {'length': 35, 'width': 25, 'height': 10}},
    {'name': 'Large', 'max_items': None, 'dimensions': {'length': 50, 'width': 40, 'height': 20}},
)


def _conf():
    return getattr(settings, 'SHIPPING', {})


def _money(value):
    return Decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def order_metrics(items):
    """Total weight (kg) and item count for ``[{'qty': n, 'weight': kg?}, ...]``."""
    total_weight = Decimal('0')
    total_items = 0
    for item in items:
        qty = int(item.get('qty') or item.get('quantity') or 1)
        weight = Decimal(str(item.get('weight') or DEFAULT_ITEM_WEIGHT_KG))
        total_weight += weight * qty
        total_items += qty
    return total_weight, total_items


def box_tier(item_count):
    for tier in BOX_TIERS:
        if tier['max_items'] is None or item_count <= tier['max_items']:
            return tier
    return BOX_TIERS[-1]


def is_domestic(destination):
    origin = _conf().get('ORIGIN_COUNTRY', '')
    return str(destination.get('country', '')).strip().upper() == str(origin).strip().upper()


def weight_multiplier(total_weight):
    return max(Decimal('1'), total_weight / BASE_WEIGHT_KG)


def table_rate(carrier, destination, total_weight):
    """Quote ``carrier`` from the static table."""
    base = Decimal(str(carrier['base_rate']))
    markup = Decimal('1') + Decimal(str(carrier.get('markup_percentage', 0))) / 100
    if not is_domestic(destination):
        fallback = _conf().get('FALLBACK_RATES', {})
        base = max(base, Decimal(str(fallback.get('international', base))))
    days = (3 if is_domestic(destination) else 7) + int(carrier.get('delay_days', 0))
    return {
        'carrier': carrier['name'],
        'rate': float(_money(base * weight_multiplier(total_weight) * markup)),
        'estimatedDays': days,
        'source': 'table',
    }


def live_rate(session, carrier, destination, total_weight):
    """Ask the rate service for one carrier quote. Raises ``requests.RequestException`` on failure."""
    conf = _conf()
    response = session.post(
        conf['RATE_URL'],
        json={
            'carrier': carrier['name'],
            'origin': {'country': conf.get('ORIGIN_COUNTRY')},
            'destination': destination,
            'weight': float(total_weight),
        },
        timeout=conf.get('TIMEOUT', 5),
    )
    response.raise_for_status()
    payload = response.json()
    try:
        rate = _money(str(payload['rate']))
        days = int(payload.get('estimatedDays', 0))
    except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
        raise requests.RequestException(f'Malformed rate response from {carrier["name"]}') from exc
    markup = Decimal('1') + Decimal(str(carrier.get('markup_percentage', 0))) / 100
    return {
        'carrier': carrier['name'],
        'rate': float(_money(rate * markup)),
        'estimatedDays': days + int(carrier.get('delay_days', 0)),
        'source': 'live',
    }


def shipping_options(items, destination, session=None):
    """Quote every configured carrier for ``items`` shipped to ``destination``.

    Options come back cheapest first.
    """
    if session is None:
        with requests.Session() as own_session:
            return shipping_options(items, destination, session=own_session)

    conf = _conf()
    total_weight, total_items = order_metrics(items)
    tier = box_tier(total_items)
    carriers = conf.get('CARRIERS', [])
    url = conf.get('RATE_URL')

    options = []
    for carrier in carriers:
        quote = None
        if url:
            try:
                quote = live_rate(session, carrier, destination, total_weight)
            except requests.RequestException as exc:
                logger.warning('Live rate for %s failed, using table rate: %s', carrier['name'], exc)
        if quote is None:
            quote = table_rate(carrier, destination, total_weight)
        quote['currency'] = conf.get('CURRENCY', 'CAD')
        quote['boxTier'] = tier['name']
        options.append(quote)

    if not options:
        fallback = conf.get('FALLBACK_RATES', {})
        base = Decimal(str(fallback.get('domestic' if is_domestic(destination) else 'international', '15.99')))
        options.append({
            'carrier': 'Standard Shipping',
            'rate': float(_money(base * weight_multiplier(total_weight))),
            'estimatedDays': 3 if is_domestic(destination) else 7,
            'source': 'table',
            'currency': conf.get('CURRENCY', 'CAD'),
            'boxTier': tier['name'],
        })

    options.sort(key=lambda option: (option['rate'], option['carrier']))
    return {
        'options': options,
        'boxTier': tier,
        'totalWeight': float(_money(total_weight)),
        'totalItems': total_items,
    }
