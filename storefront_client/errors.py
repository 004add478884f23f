"""Errors raised by the storefront client."""

import requests


class ApiError(Exception):
    """A failed API call.

    ``message`` is the server's ``message`` (or DRF ``detail``) when the body
    carries one, otherwise ``DEFAULT_MESSAGE``.
    """

    DEFAULT_MESSAGE = 'Request failed'

    def __init__(self, message=None, status_code=None, code=None, errors=None):
        self.message = message or self.DEFAULT_MESSAGE
        self.status_code = status_code
        self.code = code
        self.errors = errors
        super().__init__(self.message)

    def __repr__(self):
        return f'ApiError(status_code={self.status_code!r}, code={self.code!r}, message={self.message!r})'

    @classmethod
    def from_response(cls, response: requests.Response) -> 'ApiError':
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return cls(status_code=response.status_code)
        return cls(
            message=body.get('message') or body.get('detail'),
            status_code=response.status_code,
            code=body.get('code'),
            errors=body.get('errors'),
        )

    @property
    def is_unauthorized(self):
        return self.status_code == 401
