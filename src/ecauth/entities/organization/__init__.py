"""Organization entity package: the tenant boundary."""

from .entity import Organization
from .repository import (
    OrganizationRepository,
    find_organization_by_tenant,
    register_organization,
)
from .table import OrganizationTable

__all__ = [
    "Organization",
    "OrganizationRepository",
    "OrganizationTable",
    "find_organization_by_tenant",
    "register_organization",
]
