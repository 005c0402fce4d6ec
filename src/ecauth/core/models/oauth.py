"""Value objects exchanged between the OAuth services and the HTTP layer."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.ecauth.core.subject import Subject


class AuthorizationState(BaseModel):
    """Everything needed to resume an authorization after the upstream IdP returns.

    Travels as the `state` parameter of the upstream request, signed as a JWT.
    """

    client_id: str = Field(description="Public id of the requesting client")
    redirect_uri: str = Field(description="Client redirect URI, already validated")
    scope: str | None = Field(default=None, description="Requested scope")
    client_state: str | None = Field(default=None, description="Opaque client state")
    nonce: str | None = Field(default=None, description="OIDC nonce for the ID token")
    provider: str = Field(description="Upstream provider key")
    tenant: str = Field(description="Tenant the flow was started under")

    def to_claims(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class RedeemedCode(BaseModel):
    """What a successful code redemption hands to token minting."""

    subject: Subject
    scope: str | None = None
    state: str | None = None
    nonce: str | None = None


class TokenResponse(BaseModel):
    """Token endpoint response body."""

    access_token: str
    token_type: str = "Bearer"
    id_token: str
    expires_in: int


class ValidatedToken(BaseModel):
    """A bearer token that passed validation at call time."""

    subject: Subject
    scope: str | None = None
    client_id: str
    expires_at: datetime

    @property
    def scopes(self) -> set[str]:
        return set((self.scope or "").split())


class CeremonyOptions(BaseModel):
    """Public-key credential options bound to a ceremony session."""

    session_id: str
    options: dict[str, Any]
