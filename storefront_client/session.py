"""Client-side authentication state."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt


def token_claims(token: str) -> dict:
    """Read a JWT's claims without verifying it; the server does that."""
    return jwt.decode(token, options={'verify_signature': False})


@dataclass
class ApiSession:
    """Access/refresh token pair and the access token's expiry.

    The expiry is read from the access token's ``exp`` claim. A token whose
    claims cannot be read has no known expiry and is refreshed only after the
    server rejects it.
    """

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    claims: dict = field(default_factory=dict)
    leeway: timedelta = timedelta(seconds=30)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    @property
    def user_id(self):
        return self.claims.get('user_id')

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if not self.access_token or self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now + self.leeway >= self.expires_at

    def set_tokens(self, access: str, refresh: Optional[str] = None) -> None:
        self.access_token = access
        if refresh:
            self.refresh_token = refresh
        try:
            self.claims = token_claims(access)
        except jwt.InvalidTokenError:
            self.claims = {}
        exp = self.claims.get('exp')
        self.expires_at = datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.expires_at = None
        self.claims = {}

    def authorization_header(self) -> dict:
        if not self.access_token:
            return {}
        return {'Authorization': f'Bearer {self.access_token}'}
