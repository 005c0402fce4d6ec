"""Upstream IdP response models."""

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from src.ecauth.entities._base import as_utc, utc_now


class UpstreamTokenResponse(BaseModel):
    """OIDC token endpoint response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None  # Lifetime in seconds of the access token
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None

    def expires_at(self, default_lifetime_seconds: int = 3600) -> datetime:
        return utc_now() + timedelta(seconds=self.expires_in or default_lifetime_seconds)


class UpstreamTokens(BaseModel):
    """Upstream credentials as the identity provider keeps them."""

    access_token: str = Field(repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utc_now())


class FederatedIdentity(UpstreamTokens):
    """Result of a completed upstream authorization: who signed in, plus tokens."""

    external_subject: str
    email: str | None = None
