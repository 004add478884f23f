"""Error taxonomy and the central DRF exception handler.

Domain services raise the classes below; views let them propagate and
``api_exception_handler`` renders one uniform error envelope. Unexpected
exceptions become a generic 500 and are logged server-side only.
"""

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ValidationError(exceptions.APIException):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Validation failed.'
    default_code = 'validation_error'


class AuthenticationError(exceptions.APIException):
    """Missing or invalid credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Authentication credentials were not provided or are invalid.'
    default_code = 'authentication_error'


class ForbiddenError(exceptions.APIException):
    """Role or ownership mismatch."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'


class NotFoundError(exceptions.APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'not_found'

    def __init__(self, resource=None, code=None):
        detail = f'{resource} not found.' if resource else None
        super().__init__(detail=detail, code=code)


class ConflictError(exceptions.APIException):
    """The request is well formed but clashes with the resource's current state."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The request conflicts with the current state of the resource.'
    default_code = 'conflict'


def _message_and_errors(detail):
    if isinstance(detail, dict):
        for value in detail.values():
            message, _ = _message_and_errors(value)
            return message, detail
        return 'Validation failed.', detail
    if isinstance(detail, list):
        if not detail:
            return 'Validation failed.', None
        message, _ = _message_and_errors(detail[0])
        return message, detail
    return str(detail), None


def _error_code(exc):
    codes = exc.get_codes() if hasattr(exc, 'get_codes') else None
    if isinstance(codes, str):
        return codes
    return getattr(exc, 'default_code', 'error')


def api_exception_handler(exc, context):
    """Render every API error as ``{success, message, code[, errors]}``."""
    if isinstance(exc, Http404):
        exc = NotFoundError()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = ForbiddenError()
    elif isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        detail = exc.detail if isinstance(exc.detail, str) else None
        exc = AuthenticationError(detail=str(detail) if detail else None)

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.exception(
            'Unhandled error in %s', view.__class__.__name__ if view is not None else 'unknown view',
        )
        return Response(
            {'success': False, 'message': 'Internal server error', 'code': 'server_error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    message, errors = _message_and_errors(exc.detail)
    body = {'success': False, 'message': message, 'code': _error_code(exc)}
    if errors is not None:
        body['errors'] = errors
        body['code'] = 'validation_error' if response.status_code == 400 else body['code']
    response.data = body
    return response
