"""Tenant-scoped access to the subject backing stores."""

from sqlalchemy import func
from sqlalchemy.sql.elements import ColumnElement

from src.ecauth.core.tenancy import TenantScopedRepository
from src.ecauth.entities.user.entity import Account, B2BUser, EcAuthUser
from src.ecauth.entities.user.table import AccountTable, B2BUserTable, EcAuthUserTable


class _OrganizationOwnedRepository(TenantScopedRepository):
    """Shared plumbing for tables with a direct organization foreign key."""

    def _tenant_filter(self) -> ColumnElement[bool]:
        return self.table.organization_id.in_(self._organization_ids())

    def _ensure_in_tenant(self, organization_id: str) -> None:
        if organization_id not in set(self._session.exec(self._organization_ids()).all()):
            raise ValueError("organization is outside the current tenant")


class EcAuthUserRepository(_OrganizationOwnedRepository):
    """Data-access layer for B2C users."""

    table = EcAuthUserTable

    def get_by_subject(self, subject: str) -> EcAuthUser | None:
        row = self._session.exec(
            self._select().where(EcAuthUserTable.subject == subject)
        ).first()
        if row is None:
            return None
        return EcAuthUser.model_validate(row, from_attributes=True)

    def create(self, user: EcAuthUser) -> EcAuthUser:
        self._ensure_in_tenant(user.organization_id)
        row = EcAuthUserTable(**user.model_dump())
        self._session.add(row)
        self._flush()
        return EcAuthUser.model_validate(row, from_attributes=True)


class B2BUserRepository(_OrganizationOwnedRepository):
    """Data-access layer for B2B admins."""

    table = B2BUserTable

    def get_by_subject(self, subject: str) -> B2BUser | None:
        row = self._session.exec(
            self._select().where(B2BUserTable.subject == subject)
        ).first()
        if row is None:
            return None
        return B2BUser.model_validate(row, from_attributes=True)

    def get_by_external_id(self, organization_id: str, external_id: str) -> B2BUser | None:
        row = self._session.exec(
            self._select().where(
                (B2BUserTable.organization_id == organization_id)
                & (B2BUserTable.external_id == external_id)
            )
        ).first()
        if row is None:
            return None
        return B2BUser.model_validate(row, from_attributes=True)

    def list_subjects_by_organization(self, organization_id: str) -> list[str]:
        statement = self._select(B2BUserTable.subject).where(
            B2BUserTable.organization_id == organization_id
        )
        return list(self._session.exec(statement).all())

    def count_by_organization(self, organization_id: str) -> int:
        statement = self._select(func.count()).where(
            B2BUserTable.organization_id == organization_id
        )
        return self._session.exec(statement).one()

    def create(self, user: B2BUser) -> B2BUser:
        self._ensure_in_tenant(user.organization_id)
        row = B2BUserTable(**user.model_dump())
        self._session.add(row)
        self._flush()
        return B2BUser.model_validate(row, from_attributes=True)


class AccountRepository(_OrganizationOwnedRepository):
    """Data-access layer for platform accounts."""

    table = AccountTable

    def get_by_subject(self, subject: str) -> Account | None:
        row = self._session.exec(
            self._select().where(AccountTable.subject == subject)
        ).first()
        if row is None:
            return None
        return Account.model_validate(row, from_attributes=True)

    def create(self, account: Account) -> Account:
        self._ensure_in_tenant(account.organization_id)
        row = AccountTable(**account.model_dump())
        self._session.add(row)
        self._flush()
        return Account.model_validate(row, from_attributes=True)
