"""B2B passkey credential domain entity."""

from datetime import datetime

from pydantic import Field

from src.ecauth.core.security import b64url_encode
from src.ecauth.entities._base import Entity


class B2BPasskeyCredential(Entity):
    """One enrolled authenticator of a B2B subject."""

    b2b_subject: str
    credential_id: bytes = Field(description="Raw credential id")
    public_key: bytes = Field(description="CBOR encoded COSE public key")
    sign_count: int = Field(default=0, ge=0)
    aaguid: str | None = None
    device_name: str | None = None
    transports: list[str] = Field(default_factory=list)
    last_used_at: datetime | None = None
    clone_suspected_at: datetime | None = None

    @property
    def credential_id_b64(self) -> str:
        return b64url_encode(self.credential_id)
