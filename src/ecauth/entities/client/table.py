"""Client, redirect URI and signing key tables."""

from sqlalchemy import JSON, Column, String, Text, UniqueConstraint
from sqlmodel import Field

from src.ecauth.entities._base import EntityTable


class ClientTable(EntityTable, table=True):
    """Database persistence model for OAuth clients."""

    client_id: str = Field(
        sa_column=Column(String(128), nullable=False, unique=True, index=True)
    )
    client_secret: str = Field(sa_column=Column(String(256), nullable=False))
    app_name: str = Field(sa_column=Column(String(256), nullable=False))
    organization_id: str = Field(foreign_key="organizationtable.id", index=True)
    allowed_rp_ids: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )


class RedirectUriTable(EntityTable, table=True):
    """A redirect URI registered for a client."""

    __table_args__ = (
        UniqueConstraint("client_pk", "uri", name="uq_redirect_uri_client_uri"),
    )

    client_pk: str = Field(foreign_key="clienttable.id", index=True)
    uri: str = Field(sa_column=Column(String(2048), nullable=False))


class RsaKeyPairTable(EntityTable, table=True):
    """RSA key pair owned by exactly one client."""

    client_pk: str = Field(foreign_key="clienttable.id", unique=True, index=True)
    kid: str = Field(sa_column=Column(String(64), nullable=False, unique=True))
    public_key_pem: str = Field(sa_column=Column(Text, nullable=False))
    private_key_pem: str = Field(sa_column=Column(Text, nullable=False))
