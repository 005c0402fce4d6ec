"""WebAuthn challenge domain entity."""

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from src.ecauth.core.security import b64url_decode
from src.ecauth.entities._base import Entity, as_utc, utc_now


class CeremonyType(StrEnum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class WebAuthnChallenge(Entity):
    """Single-use ceremony nonce, one live record per session id."""

    challenge: str = Field(description="Base64url encoded challenge bytes")
    session_id: str
    type: CeremonyType
    user_type: str = Field(description="'b2b' or 'b2c'")
    subject: str | None = None
    rp_id: str
    client_pk: str
    expires_at: datetime
    consumed_at: datetime | None = None

    @property
    def challenge_bytes(self) -> bytes:
        return b64url_decode(self.challenge)

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utc_now())
