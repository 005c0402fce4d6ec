"""Subject backing tables."""

from sqlalchemy import Column, String, UniqueConstraint
from sqlmodel import Field

from src.ecauth.entities._base import EntityTable


class EcAuthUserTable(EntityTable, table=True):
    subject: str = Field(
        sa_column=Column(String(255), nullable=False, unique=True, index=True)
    )
    email_hash: str | None = Field(
        default=None, sa_column=Column(String(64), nullable=True, index=True)
    )
    organization_id: str = Field(foreign_key="organizationtable.id", index=True)


class B2BUserTable(EntityTable, table=True):
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "external_id", name="uq_b2b_user_org_external_id"
        ),
    )

    subject: str = Field(
        sa_column=Column(String(255), nullable=False, unique=True, index=True)
    )
    external_id: str = Field(sa_column=Column(String(255), nullable=False))
    user_type: str = Field(default="admin", sa_column=Column(String(32), nullable=False))
    organization_id: str = Field(foreign_key="organizationtable.id", index=True)


class AccountTable(EntityTable, table=True):
    subject: str = Field(
        sa_column=Column(String(255), nullable=False, unique=True, index=True)
    )
    email: str = Field(sa_column=Column(String(320), nullable=False, unique=True))
    name: str | None = Field(default=None, sa_column=Column(String(256), nullable=True))
    organization_id: str = Field(foreign_key="organizationtable.id", index=True)
