"""WebAuthn challenge table."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Column, String
from sqlmodel import Field

from src.ecauth.entities._base import EntityTable
from src.ecauth.entities.webauthn_challenge.entity import CeremonyType


class WebAuthnChallengeTable(EntityTable, table=True):
    challenge: str = Field(sa_column=Column(String(128), nullable=False))
    session_id: str = Field(
        sa_column=Column(String(64), nullable=False, unique=True, index=True)
    )
    type: CeremonyType = Field(
        sa_column=Column(sa.Enum(CeremonyType, native_enum=False, length=16), nullable=False)
    )
    user_type: str = Field(sa_column=Column(String(8), nullable=False))
    subject: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    rp_id: str = Field(sa_column=Column(String(253), nullable=False))
    client_pk: str = Field(foreign_key="clienttable.id", index=True)
    expires_at: datetime = Field(sa_type=sa.DateTime(timezone=True), nullable=False)
    consumed_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True), nullable=True
    )
