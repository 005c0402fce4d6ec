"""External IdP tables."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Column, String, Text, UniqueConstraint
from sqlmodel import Field

from src.ecauth.entities._base import EntityTable


class ExternalIdpMappingTable(EntityTable, table=True):
    __table_args__ = (
        UniqueConstraint(
            "external_provider", "external_subject", name="uq_external_idp_mapping"
        ),
    )

    ecauth_subject: str = Field(foreign_key="ecauthusertable.subject", index=True)
    external_provider: str = Field(sa_column=Column(String(128), nullable=False))
    external_subject: str = Field(sa_column=Column(String(512), nullable=False))


class ExternalIdpTokenTable(EntityTable, table=True):
    __table_args__ = (
        UniqueConstraint(
            "ecauth_subject", "external_provider", name="uq_external_idp_token"
        ),
    )

    ecauth_subject: str = Field(foreign_key="ecauthusertable.subject", index=True)
    external_provider: str = Field(sa_column=Column(String(128), nullable=False))
    access_token: str = Field(sa_column=Column(Text, nullable=False))
    refresh_token: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    expires_at: datetime = Field(sa_type=sa.DateTime(timezone=True), nullable=False)
