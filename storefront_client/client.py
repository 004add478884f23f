"""HTTP client for the storefront API.

Wraps a ``requests.Session``. Every call returns the decoded JSON body or
raises ``ApiError``. Authentication state lives on an ``ApiSession``; the
``RefreshInterceptor`` renews the access token when it has expired and once
more when the server answers 401.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from .errors import ApiError
from .session import ApiSession

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'http://localhost:8000'
DEFAULT_TIMEOUT = 10


class RefreshInterceptor:
    """Token refresh around authenticated requests."""

    def before_request(self, client: 'StorefrontClient') -> None:
        session = client.session
        if session.is_expired() and session.can_refresh:
            logger.debug('Access token expired; refreshing before request')
            client.refresh_tokens()

    def retry_after(self, client: 'StorefrontClient', response: requests.Response) -> bool:
        """Refresh after a 401 and report whether the request should be sent again."""
        if response.status_code != 401 or not client.session.can_refresh:
            return False
        logger.debug('Request rejected with 401; refreshing and retrying once')
        client.refresh_tokens()
        return True


def _clean(params):
    if not params:
        return None
    return {key: value for key, value in params.items() if value is not None}


class StorefrontClient:

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[ApiSession] = None,
        http: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        interceptor: Optional[RefreshInterceptor] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.session = session or ApiSession()
        self.http = http or requests.Session()
        self.http.headers.update({'Accept': 'application/json'})
        self.timeout = timeout
        self.interceptor = interceptor or RefreshInterceptor()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self.http.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(self, method, path, params=None, json=None, auth=True) -> requests.Response:
        headers = self.session.authorization_header() if auth else {}
        try:
            return self.http.request(
                method,
                f'{self.base_url}{path}',
                params=_clean(params),
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning('%s %s failed: %s', method, path, exc)
            raise ApiError() from exc

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.ok:
            raise ApiError.from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(status_code=response.status_code) from exc

    def request(self, method: str, path: str, *, params=None, json=None, auth: bool = True) -> Any:
        if auth:
            self.interceptor.before_request(self)
        response = self._send(method, path, params=params, json=json, auth=auth)
        if auth and self.interceptor.retry_after(self, response):
            response = self._send(method, path, params=params, json=json, auth=auth)
        return self._decode(response)

    def get(self, path, params=None, **kwargs):
        return self.request('GET', path, params=params, **kwargs)

    def post(self, path, json=None, **kwargs):
        return self.request('POST', path, json=json, **kwargs)

    def put(self, path, json=None, **kwargs):
        return self.request('PUT', path, json=json, **kwargs)

    def patch(self, path, json=None, **kwargs):
        return self.request('PATCH', path, json=json, **kwargs)

    def delete(self, path, json=None, **kwargs):
        return self.request('DELETE', path, json=json, **kwargs)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> ApiSession:
        tokens = self.post('/api/users/login/', {'username': username, 'password': password}, auth=False)
        self.session.set_tokens(tokens['access'], tokens.get('refresh'))
        return self.session

    def register(self, username: str, password: str, email: str, **profile) -> dict:
        return self.post(
            '/api/users/register/',
            {'username': username, 'password': password, 'email': email, **profile},
            auth=False,
        )

    def logout(self) -> None:
        self.session.clear()

    def refresh_tokens(self) -> ApiSession:
        """Exchange the refresh token for a new access token.

        A rejected refresh token ends the session.
        """
        try:
            tokens = self.post('/api/users/token/refresh/', {'refresh': self.session.refresh_token}, auth=False)
        except ApiError:
            self.session.clear()
            raise
        self.session.set_tokens(tokens['access'], tokens.get('refresh'))
        return self.session

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def profile(self) -> dict:
        return self.get('/api/users/profile/me/')

    def update_profile(self, **changes) -> dict:
        return self.put('/api/users/profile/me/', changes)

    def addresses(self, address_type: Optional[str] = None) -> List[dict]:
        return self.get('/api/users/profile/addresses/', {'type': address_type})

    def add_address(self, **address) -> dict:
        return self.post('/api/users/profile/addresses/', address)

    def update_address(self, address_id: int, **changes) -> dict:
        return self.patch(f'/api/users/profile/addresses/{address_id}/', changes)

    def delete_address(self, address_id: int) -> None:
        return self.delete(f'/api/users/profile/addresses/{address_id}/')

    def set_default_address(self, address_id: int) -> dict:
        return self.patch(f'/api/users/profile/addresses/{address_id}/set-default/')

    def preferences(self) -> dict:
        return self.get('/api/users/profile/preferences/')

    def update_preferences(self, **changes) -> dict:
        return self.put('/api/users/profile/preferences/', changes)

    def my_activity(self, page: int = 1, limit: int = 10, action: Optional[str] = None) -> dict:
        return self.get('/api/users/profile/activity/', {'page': page, 'limit': limit, 'action': action})

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def products(self, **filters) -> dict:
        return self.get('/api/products/', filters, auth=self.session.is_authenticated)

    def product(self, product_id: int) -> dict:
        return self.get(f'/api/products/{product_id}/', auth=self.session.is_authenticated)

    def create_product(self, **product) -> dict:
        return self.post('/api/products/', product)

    def update_product(self, product_id: int, **changes) -> dict:
        return self.patch(f'/api/products/{product_id}/', changes)

    def delete_product(self, product_id: int) -> None:
        return self.delete(f'/api/products/{product_id}/')

    def categories(self, **params) -> dict:
        return self.get('/api/categories/', params, auth=self.session.is_authenticated)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(
        self,
        items: Iterable[Dict[str, Any]],
        shipping_address: Dict[str, str],
        payment_method: str,
        tax_price=0,
        shipping_price=0,
        total_price=None,
    ) -> dict:
        payload = {
            'orderItems': list(items),
            'shippingAddress': shipping_address,
            'paymentMethod': payment_method,
            'taxPrice': tax_price,
            'shippingPrice': shipping_price,
        }
        if total_price is not None:
            payload['totalPrice'] = total_price
        return self.post('/api/orders/', payload)

    def orders(self, page: int = 1, limit: int = 10) -> dict:
        return self.get('/api/orders/', {'page': page, 'limit': limit})

    def my_orders(self, page: int = 1, limit: int = 10) -> dict:
        return self.get('/api/orders/myorders/', {'page': page, 'limit': limit})

    def admin_orders(self, **filters) -> dict:
        return self.get('/api/orders/admin/', filters)

    def order(self, order_id: int) -> dict:
        return self.get(f'/api/orders/{order_id}/')

    def update_order_status(self, order_id: int, **changes) -> dict:
        return self.put(f'/api/orders/{order_id}/status/', changes)

    def bulk_update_status(self, order_ids: Iterable[int], **changes) -> dict:
        return self.put('/api/orders/bulk/status/', {'orderIds': list(order_ids), **changes})

    def cancel_order(self, order_id: int, reason: str = '') -> dict:
        return self.delete(f'/api/orders/{order_id}/', {'reason': reason})

    def pay_order(self, order_id: int, **payment_result) -> dict:
        return self.put(f'/api/orders/{order_id}/pay/', payment_result)

    def update_shipping(self, order_id: int, **shipping) -> dict:
        return self.put(f'/api/orders/{order_id}/shipping/', shipping)

    def submit_review(
        self, order_id: int, product_id: int, rating: int, comment: str, review_token: str, name: Optional[str] = None,
    ) -> dict:
        payload = {'productId': product_id, 'rating': rating, 'comment': comment, 'reviewToken': review_token}
        if name:
            payload['name'] = name
        return self.post(f'/api/orders/{order_id}/review/', payload, auth=self.session.is_authenticated)

    def order_stats(self) -> dict:
        return self.get('/api/orders/stats/')

    def order_analytics(self, period: str = '30d', group_by: str = 'day') -> dict:
        return self.get('/api/orders/analytics/summary/', {'period': period, 'groupBy': group_by})

    # ------------------------------------------------------------------
    # Shipping
    # ------------------------------------------------------------------

    def shipping_rates(self, items: Iterable[Dict[str, Any]], destination: Dict[str, str]) -> dict:
        return self.post('/api/shipping/rates/', {'orderItems': list(items), 'destination': destination})

    # ------------------------------------------------------------------
    # Back office
    # ------------------------------------------------------------------

    def dashboard_overview(self, period: Optional[str] = None) -> dict:
        return self.get('/api/dashboard/overview/', {'period': period})

    def sales_chart(self, period: str = '30d', group_by: str = 'day') -> dict:
        return self.get('/api/dashboard/sales-chart/', {'period': period, 'groupBy': group_by})

    def top_products(self, limit: int = 5, period: Optional[str] = None) -> dict:
        return self.get('/api/dashboard/top-products/', {'limit': limit, 'period': period})

    def recent_orders(self, limit: int = 5) -> dict:
        return self.get('/api/dashboard/recent-orders/', {'limit': limit})

    def activity_log(self, page: int = 1, limit: int = 10, **filters) -> dict:
        return self.get('/api/dashboard/activity-log/', {'page': page, 'limit': limit, **filters})

    def users(self, **filters) -> dict:
        return self.get('/api/users/admin/', filters)

    def user(self, user_id: int) -> dict:
        return self.get(f'/api/users/admin/{user_id}/')

    def update_user(self, user_id: int, **changes) -> dict:
        return self.put(f'/api/users/admin/{user_id}/', changes)

    def set_user_status(self, user_id: int, status: str, reason: Optional[str] = None) -> dict:
        payload = {'status': status}
        if reason:
            payload['statusReason'] = reason
        return self.patch(f'/api/users/admin/{user_id}/status/', payload)

    def set_user_role(self, user_id: int, role: str) -> dict:
        return self.patch(f'/api/users/admin/{user_id}/role/', {'role': role})

    def delete_user(self, user_id: int) -> dict:
        return self.delete(f'/api/users/admin/{user_id}/')

    def registration_analytics(self, period: str = '30d') -> dict:
        return self.get('/api/users/admin/analytics/registration/', {'period': period})

    def metrics(self) -> dict:
        return self.get('/api/monitoring/metrics/')
