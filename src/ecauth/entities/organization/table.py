"""Organization database table model."""

from sqlalchemy import Column, String
from sqlmodel import Field

from src.ecauth.entities._base import EntityTable


class OrganizationTable(EntityTable, table=True):
    """Database persistence model for organizations."""

    code: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    name: str = Field(sa_column=Column(String(256), nullable=False))
    tenant_name: str = Field(
        sa_column=Column(String(128), nullable=False, unique=True, index=True)
    )
    is_sandbox: bool = Field(default=False)
