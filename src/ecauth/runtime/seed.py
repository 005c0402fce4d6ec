"""Tenant seeding shared by the operator CLI and the test fixtures."""

from dataclasses import dataclass, field

from loguru import logger
from sqlmodel import Session

from src.ecauth.core.security import generate_secure_token
from src.ecauth.core.services.keys import SigningKey, SigningKeyStore
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities.client import Client, ClientRepository
from src.ecauth.entities.organization import (
    Organization,
    find_organization_by_tenant,
    register_organization,
)
from src.ecauth.entities.user import B2BUser, B2BUserRepository


@dataclass
class SeededTenant:
    organization: Organization
    client: Client
    signing_key: SigningKey
    b2b_user: B2BUser | None = None
    created: list[str] = field(default_factory=list)


def seed_tenant(
    session: Session,
    key_store: SigningKeyStore,
    tenant_name: str,
    client_id: str,
    redirect_uris: list[str],
    rp_ids: list[str] | None = None,
    org_name: str | None = None,
    app_name: str | None = None,
    b2b_external_id: str | None = None,
    client_secret: str | None = None,
) -> SeededTenant:
    """Create an organization with one client, its signing key and optionally a B2B admin.

    An existing organization for `tenant_name` is reused; an existing client id is
    an error since its secret cannot be shown again.
    """
    created: list[str] = []
    organization = find_organization_by_tenant(session, tenant_name)
    if organization is None:
        organization = register_organization(
            session,
            Organization(
                code=tenant_name[:64],
                name=org_name or tenant_name,
                tenant_name=tenant_name,
            ),
        )
        created.append("organization")

    scope = TenantScope(tenant_name)
    clients = ClientRepository(session, scope)
    if clients.get_by_client_id(client_id) is not None:
        raise ValueError(f"client {client_id!r} already exists in tenant {tenant_name!r}")

    client = clients.create(
        Client(
            client_id=client_id,
            client_secret=client_secret or generate_secure_token(32),
            app_name=app_name or client_id,
            organization_id=organization.id,
            allowed_rp_ids=list(rp_ids or []),
            redirect_uris=list(redirect_uris),
        )
    )
    created.append("client")
    signing_key = key_store.provision(session, scope, client)
    created.append("signing_key")

    b2b_user = None
    if b2b_external_id:
        users = B2BUserRepository(session, scope)
        b2b_user = users.get_by_external_id(organization.id, b2b_external_id)
        if b2b_user is None:
            b2b_user = users.create(
                B2BUser(external_id=b2b_external_id, organization_id=organization.id)
            )
            created.append("b2b_user")

    logger.bind(tenant=tenant_name, client_id=client_id, created=created).info(
        "Seeded tenant"
    )
    return SeededTenant(
        organization=organization,
        client=client,
        signing_key=signing_key,
        b2b_user=b2b_user,
        created=created,
    )
