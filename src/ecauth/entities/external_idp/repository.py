"""External IdP data access, scoped through the owning B2C user."""

from datetime import datetime

from sqlalchemy.sql.elements import ColumnElement

from src.ecauth.core.tenancy import TenantScopedRepository
from src.ecauth.entities._base import utc_now
from src.ecauth.entities.external_idp.entity import ExternalIdpMapping, ExternalIdpToken
from src.ecauth.entities.external_idp.table import (
    ExternalIdpMappingTable,
    ExternalIdpTokenTable,
)


class ExternalIdpMappingRepository(TenantScopedRepository):
    table = ExternalIdpMappingTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return ExternalIdpMappingTable.ecauth_subject.in_(self._ecauth_subjects())

    def find(self, provider: str, external_subject: str) -> ExternalIdpMapping | None:
        row = self._session.exec(
            self._select().where(
                (ExternalIdpMappingTable.external_provider == provider)
                & (ExternalIdpMappingTable.external_subject == external_subject)
            )
        ).first()
        if row is None:
            return None
        return ExternalIdpMapping.model_validate(row, from_attributes=True)

    def add(self, mapping: ExternalIdpMapping) -> ExternalIdpMapping:
        if mapping.ecauth_subject not in set(self._session.exec(self._ecauth_subjects()).all()):
            raise ValueError("mapped subject is outside the current tenant")
        row = ExternalIdpMappingTable(**mapping.model_dump())
        self._session.add(row)
        self._flush()
        return mapping


class ExternalIdpTokenRepository(TenantScopedRepository):
    table = ExternalIdpTokenTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return ExternalIdpTokenTable.ecauth_subject.in_(self._ecauth_subjects())

    def get(self, ecauth_subject: str, provider: str) -> ExternalIdpToken | None:
        row = self._session.exec(
            self._select()
            .where(
                (ExternalIdpTokenTable.ecauth_subject == ecauth_subject)
                & (ExternalIdpTokenTable.external_provider == provider)
            )
            .execution_options(populate_existing=True)
        ).first()
        if row is None:
            return None
        return ExternalIdpToken.model_validate(row, from_attributes=True)

    def upsert(self, token: ExternalIdpToken) -> ExternalIdpToken:
        """Insert or replace the cached tokens for (subject, provider)."""
        if token.ecauth_subject not in set(self._session.exec(self._ecauth_subjects()).all()):
            raise ValueError("token subject is outside the current tenant")

        row = self._session.exec(
            self._select().where(
                (ExternalIdpTokenTable.ecauth_subject == token.ecauth_subject)
                & (ExternalIdpTokenTable.external_provider == token.external_provider)
            )
        ).first()
        if row is None:
            row = ExternalIdpTokenTable(**token.model_dump())
        else:
            row.access_token = token.access_token
            row.refresh_token = token.refresh_token
            row.expires_at = token.expires_at
            row.updated_at = utc_now()
        self._session.add(row)
        self._flush()
        return ExternalIdpToken.model_validate(row, from_attributes=True)

    def delete_expired(self, now: datetime) -> int:
        statement = self._delete().where(ExternalIdpTokenTable.expires_at <= now)
        return self._session.execute(statement).rowcount
