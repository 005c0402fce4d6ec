"""Subject domain entities."""

import uuid

from pydantic import Field

from src.ecauth.entities._base import Entity


def new_subject() -> str:
    return str(uuid.uuid4())


class EcAuthUser(Entity):
    """End customer (B2C) who signs in through a federated IdP."""

    subject: str = Field(default_factory=new_subject)
    email_hash: str | None = Field(default=None, description="SHA-256 of the email")
    organization_id: str


class B2BUser(Entity):
    """Organization admin (B2B) who signs in with passkeys."""

    subject: str = Field(default_factory=new_subject)
    external_id: str = Field(description="Identifier of the user in the client's system")
    user_type: str = Field(default="admin")
    organization_id: str


class Account(Entity):
    """Platform administrator account."""

    subject: str = Field(default_factory=new_subject)
    email: str
    name: str | None = None
    organization_id: str
