"""Access token domain entity."""

from datetime import datetime

from pydantic import Field

from src.ecauth.core.subject import Subject, SubjectType
from src.ecauth.entities._base import Entity, as_utc, utc_now


class AccessToken(Entity):
    """Opaque bearer credential issued on a successful code redemption."""

    token: str = Field(repr=False)
    client_pk: str
    subject: str
    subject_type: SubjectType
    scopes: str | None = None
    expires_at: datetime
    is_revoked: bool = False
    revoked_at: datetime | None = None

    @property
    def principal(self) -> Subject:
        return Subject(self.subject_type, self.subject)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Derived from the clock on every call; never stored."""
        return as_utc(self.expires_at) <= (now or utc_now())
