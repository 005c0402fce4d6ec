"""B2B passkey credential table."""

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import JSON, Column, LargeBinary, String
from sqlmodel import Field

from src.ecauth.entities._base import EntityTable


class B2BPasskeyCredentialTable(EntityTable, table=True):
    b2b_subject: str = Field(foreign_key="b2busertable.subject", index=True)
    credential_id: bytes = Field(
        sa_column=Column(LargeBinary(1023), nullable=False, unique=True, index=True)
    )
    public_key: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    sign_count: int = Field(default=0, sa_type=sa.BigInteger, nullable=False)
    aaguid: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    device_name: str | None = Field(
        default=None, sa_column=Column(String(255), nullable=True)
    )
    transports: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    last_used_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True), nullable=True
    )
    clone_suspected_at: datetime | None = Field(
        default=None, sa_type=sa.DateTime(timezone=True), nullable=True
    )
