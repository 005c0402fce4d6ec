"""Access token table."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Column, String
from sqlmodel import Field

from src.ecauth.core.subject import SubjectType
from src.ecauth.entities._base import EntityTable


class AccessTokenTable(EntityTable, table=True):
    """Database persistence model for access tokens."""

    token: str = Field(
        sa_column=Column(String(128), nullable=False, unique=True, index=True)
    )
    client_pk: str = Field(foreign_key="clienttable.id", index=True)
    subject: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    subject_type: SubjectType = Field(
        sa_column=Column(sa.Enum(SubjectType, native_enum=False, length=16), nullable=False)
    )
    scopes: str | None = Field(default=None, sa_column=Column(String(1024), nullable=True))
    expires_at: datetime = Field(sa_type=sa.DateTime(timezone=True), nullable=False)
    is_revoked: bool = Field(default=False, nullable=False)
    revoked_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True), nullable=True
    )
