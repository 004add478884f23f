"""Python client for the storefront REST API."""

from .client import RefreshInterceptor, StorefrontClient
from .errors import ApiError
from .session import ApiSession

__all__ = ['ApiError', 'ApiSession', 'RefreshInterceptor', 'StorefrontClient']
