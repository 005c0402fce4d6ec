"""Authorization code table."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, Column, String
from sqlmodel import Field, SQLModel

from src.ecauth.entities._base import utc_now


class AuthorizationCodeTable(SQLModel, table=True):
    """Database persistence model for authorization codes, keyed by the code."""

    __table_args__ = (
        CheckConstraint(
            "(ecauth_subject IS NULL) <> (b2b_subject IS NULL)",
            name="ck_authorization_code_one_subject",
        ),
    )

    code: str = Field(sa_column=Column(String(128), primary_key=True))
    ecauth_subject: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True, index=True)
    )
    b2b_subject: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True, index=True)
    )
    client_pk: str = Field(foreign_key="clienttable.id", index=True)
    redirect_uri: str = Field(sa_column=Column(String(2048), nullable=False))
    scope: str | None = Field(default=None, sa_column=Column(String(1024), nullable=True))
    state: str | None = Field(default=None, sa_column=Column(String(1024), nullable=True))
    nonce: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    expires_at: datetime = Field(sa_type=sa.DateTime(timezone=True), nullable=False)
    is_used: bool = Field(default=False, nullable=False)
    used_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True), nullable=True
    )
    created_at: datetime = Field(
        default_factory=utc_now, sa_type=sa.DateTime(timezone=True), nullable=False
    )
