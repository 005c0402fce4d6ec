"""Organization data access."""

from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, select

from src.ecauth.core.tenancy import TenantScopedRepository
from src.ecauth.entities.organization.entity import Organization
from src.ecauth.entities.organization.table import OrganizationTable


def find_organization_by_tenant(session: Session, tenant_name: str) -> Organization | None:
    """Directory lookup used before a tenant is resolved (tenant resolution, seeding)."""
    statement = select(OrganizationTable).where(
        OrganizationTable.tenant_name == tenant_name
    )
    row = session.exec(statement).first()
    if row is None:
        return None
    return Organization.model_validate(row, from_attributes=True)


class OrganizationRepository(TenantScopedRepository):
    """Data-access layer for the caller's own organization."""

    table = OrganizationTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return OrganizationTable.tenant_name == self._tenant.tenant_name

    def get_current(self) -> Organization | None:
        row = self._session.exec(self._select()).first()
        if row is None:
            return None
        return Organization.model_validate(row, from_attributes=True)


def register_organization(session: Session, organization: Organization) -> Organization:
    """Create a new tenant. Administrative path, not reachable from request handlers."""
    row = OrganizationTable(**organization.model_dump())
    session.add(row)
    session.flush()
    return Organization.model_validate(row, from_attributes=True)
