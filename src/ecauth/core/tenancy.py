"""Tenant isolation layer.

A `TenantScope` is resolved once per request and handed to every repository.
Repositories derive from `TenantScopedRepository`, whose statement builders
always carry the tenant predicate, so a query without it cannot be built
through the repository API.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from loguru import logger
from sqlalchemy import delete, update
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, SQLModel, select

from src.ecauth.core.errors import TenantUnresolved


@dataclass(frozen=True)
class TenantScope:
    """The tenant resolved for one request. Immutable for its lifetime."""

    tenant_name: str

    def __post_init__(self) -> None:
        if not isinstance(self.tenant_name, str) or not self.tenant_name.strip():
            raise TenantUnresolved("empty tenant name")


def extract_tenant_name(
    headers: Any, header_name: str, resolve_from_host: bool = False
) -> str | None:
    """Pull the candidate tenant name out of request headers.

    The explicit header wins; the leftmost Host label is only used when
    `resolve_from_host` is enabled and the host has a subdomain.
    """
    value = headers.get(header_name)
    if value and value.strip():
        return value.strip()
    if resolve_from_host:
        host = (headers.get("host") or "").split(":", 1)[0]
        labels = host.split(".")
        if len(labels) > 2 and labels[0]:
            return labels[0]
    return None


def resolve_tenant(session: Session, tenant_name: str | None) -> TenantScope:
    """Resolve a tenant name against the organization directory, failing closed."""
    from src.ecauth.entities.organization.table import OrganizationTable

    if not tenant_name:
        logger.bind(security_event=True).warning("tenant.unresolved: no tenant supplied")
        raise TenantUnresolved("no tenant supplied")

    statement = select(OrganizationTable.id).where(
        OrganizationTable.tenant_name == tenant_name
    )
    if session.exec(statement).first() is None:
        logger.bind(security_event=True, tenant=tenant_name).warning(
            "tenant.unresolved: unknown tenant"
        )
        raise TenantUnresolved(f"unknown tenant {tenant_name!r}")
    return TenantScope(tenant_name)


class TenantScopedRepository:
    """Base data-access layer bound to a session and a resolved tenant.

    Subclasses set `table` and implement `_tenant_filter`, which expresses
    how a row of `table` reaches its Organization. All statements are built
    through `_select`, `_update` and `_delete`.
    """

    table: ClassVar[type[SQLModel]]

    def __init__(self, session: Session, tenant: TenantScope) -> None:
        if not isinstance(tenant, TenantScope):
            raise TenantUnresolved("repository constructed without a tenant")
        self._session = session
        self._tenant = tenant

    @property
    def tenant(self) -> TenantScope:
        return self._tenant

    def _tenant_filter(self) -> ColumnElement[bool]:
        raise NotImplementedError

    def _select(self, *entities: Any):
        return select(*(entities or (self.table,))).where(self._tenant_filter())

    # Conditional writes must not pre-select, so session sync is disabled.
    def _update(self):
        return (
            update(self.table)
            .where(self._tenant_filter())
            .execution_options(synchronize_session=False)
        )

    def _delete(self):
        return (
            delete(self.table)
            .where(self._tenant_filter())
            .execution_options(synchronize_session=False)
        )

    def _organization_ids(self):
        from src.ecauth.entities.organization.table import OrganizationTable

        return select(OrganizationTable.id).where(
            OrganizationTable.tenant_name == self._tenant.tenant_name
        )

    def _client_ids(self):
        from src.ecauth.entities.client.table import ClientTable

        return select(ClientTable.id).where(
            ClientTable.organization_id.in_(self._organization_ids())
        )

    def _ecauth_subjects(self):
        from src.ecauth.entities.user.table import EcAuthUserTable

        return select(EcAuthUserTable.subject).where(
            EcAuthUserTable.organization_id.in_(self._organization_ids())
        )

    def _b2b_subjects(self):
        from src.ecauth.entities.user.table import B2BUserTable

        return select(B2BUserTable.subject).where(
            B2BUserTable.organization_id.in_(self._organization_ids())
        )

    def _flush(self) -> None:
        self._session.flush()
