"""Organization domain entity."""

from pydantic import Field

from src.ecauth.entities._base import Entity


class Organization(Entity):
    """A customer organization. Its tenant name scopes every other entity."""

    code: str = Field(description="Short organization code")
    name: str = Field(description="Display name, also used as WebAuthn RP name")
    tenant_name: str = Field(description="Unique tenant identifier")
    is_sandbox: bool = Field(default=False, description="Sandbox organizations")
