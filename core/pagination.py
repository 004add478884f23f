"""Shared pagination contract for every list endpoint.

Clients always receive::

    {"success": true, "data": [...], "pagination": {...}, **extra}

Page/limit parsing is permissive: bad or missing values are normalised to
the configured defaults instead of raising.
"""

import math
from dataclasses import dataclass

from django.conf import settings
from rest_framework.pagination import BasePagination
from rest_framework.response import Response


@dataclass(frozen=True)
class PaginationParams:
    page: int
    limit: int
    skip: int


def _defaults():
    conf = getattr(settings, 'PAGINATION', {})
    return {
        'default_page': conf.get('DEFAULT_PAGE', 1),
        'default_limit': conf.get('DEFAULT_LIMIT', 10),
        'max_limit': conf.get('MAX_LIMIT', 100),
        'min_limit': conf.get('MIN_LIMIT', 1),
    }


def _to_int(value, fallback):
    try:
        parsed = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return fallback
    # Zero is treated like a missing value.
    return parsed or fallback


def parse_pagination_params(query, default_page=None, default_limit=None, max_limit=None, min_limit=None):
    """Clamp ``page`` to >= 1 and ``limit`` to ``[min_limit, max_limit]``."""
    conf = _defaults()
    default_page = conf['default_page'] if default_page is None else default_page
    default_limit = conf['default_limit'] if default_limit is None else default_limit
    max_limit = conf['max_limit'] if max_limit is None else max_limit
    min_limit = conf['min_limit'] if min_limit is None else min_limit

    query = query or {}
    page = _to_int(query.get('page'), default_page)
    limit = _to_int(query.get('limit'), default_limit)

    page = max(1, page)
    limit = max(min_limit, min(max_limit, limit))

    return PaginationParams(page=page, limit=limit, skip=(page - 1) * limit)


def create_pagination_meta(page, limit, total):
    total_pages = math.ceil(total / limit) if limit else 0
    has_next_page = page < total_pages
    has_prev_page = page > 1
    return {
        'currentPage': page,
        'itemsPerPage': limit,
        'totalItems': total,
        'totalPages': total_pages,
        'hasNextPage': has_next_page,
        'hasPrevPage': has_prev_page,
        'nextPage': page + 1 if has_next_page else None,
        'prevPage': page - 1 if has_prev_page else None,
        'startIndex': (page - 1) * limit + 1,
        'endIndex': min(page * limit, total),
    }


def create_paginated_response(data, page, limit, total, extra=None):
    body = {
        'success': True,
        'data': data,
        'pagination': create_pagination_meta(page, limit, total),
    }
    body.update(extra or {})
    return body


@dataclass
class PaginatedResult:
    data: list
    total: int
    pagination: dict


def execute_paginated_query(model, query_filter, params, sort=None, populate=None, select=None):
    """Count the filtered set and fetch one page of it.

    ``query_filter`` is a ``Q`` object, a dict of lookups or an existing queryset.
    ``populate`` names relations to join (``select_related`` for forward
    relations, ``prefetch_related`` for the rest) and ``select`` restricts
    the loaded columns.

    The count and the page are two separate reads with no snapshot between
    them, so a concurrent write can leave ``total`` slightly stale.
    """
    if hasattr(query_filter, 'model') and hasattr(query_filter, 'query'):
        queryset = query_filter
    elif isinstance(query_filter, dict):
        queryset = model.objects.filter(**query_filter)
    elif query_filter is not None:
        queryset = model.objects.filter(query_filter)
    else:
        queryset = model.objects.all()

    total = queryset.count()

    page_qs = queryset
    if sort:
        page_qs = page_qs.order_by(*([sort] if isinstance(sort, str) else sort))
    elif not page_qs.ordered:
        page_qs = page_qs.order_by('-pk')
    for relation in populate or ():
        page_qs = _join(page_qs, relation)
    if select:
        page_qs = page_qs.only(*select)

    data = list(page_qs[params.skip:params.skip + params.limit])
    return PaginatedResult(data=data, total=total, pagination=create_pagination_meta(params.page, params.limit, total))


def _join(queryset, relation):
    field_name = relation.split('__', 1)[0]
    field = queryset.model._meta.get_field(field_name)
    if field.many_to_one or (field.one_to_one and field.concrete):
        return queryset.select_related(relation)
    return queryset.prefetch_related(relation)


class StandardResultsSetPagination(BasePagination):
    """DRF adapter that renders list endpoints with the shared envelope."""

    def paginate_queryset(self, queryset, request, view=None):
        self.params = parse_pagination_params(request.query_params)
        if not queryset.ordered:
            queryset = queryset.order_by('-pk')
        self.total = queryset.count()
        return list(queryset[self.params.skip:self.params.skip + self.params.limit])

    def get_paginated_response(self, data):
        return Response(create_paginated_response(data, self.params.page, self.params.limit, self.total))

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'properties': {
                'success': {'type': 'boolean'},
                'data': schema,
                'pagination': {'type': 'object'},
            },
        }
