"""External IdP domain entities."""

from datetime import datetime

from pydantic import Field

from src.ecauth.entities._base import Entity, as_utc, utc_now


class ExternalIdpMapping(Entity):
    """Links a local B2C subject to the subject an upstream IdP knows it by."""

    ecauth_subject: str
    external_provider: str
    external_subject: str


class ExternalIdpToken(Entity):
    """Upstream tokens cached for a B2C subject, one row per provider."""

    ecauth_subject: str
    external_provider: str
    access_token: str = Field(repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utc_now())
