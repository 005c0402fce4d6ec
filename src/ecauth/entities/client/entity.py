"""Client domain entities."""

from pydantic import Field

from src.ecauth.entities._base import Entity


class Client(Entity):
    """An OAuth client application registered under one organization."""

    client_id: str = Field(description="Public client identifier")
    client_secret: str = Field(description="Client secret", repr=False)
    app_name: str = Field(description="Application name")
    organization_id: str = Field(description="Owning organization")
    allowed_rp_ids: list[str] = Field(
        default_factory=list, description="WebAuthn relying-party ids this client may use"
    )
    redirect_uris: list[str] = Field(
        default_factory=list, description="Registered redirect URIs (exact match)"
    )

    def allows_redirect_uri(self, redirect_uri: str) -> bool:
        return redirect_uri in self.redirect_uris

    def allows_rp_id(self, rp_id: str) -> bool:
        return rp_id in self.allowed_rp_ids


class RsaKeyPair(Entity):
    """RSA signing key of a client. The private half stays inside the key store."""

    client_pk: str = Field(description="Owning client row id")
    kid: str = Field(description="Key id published in the JWT header")
    public_key_pem: str
    private_key_pem: str = Field(repr=False)
