"""Access token data access."""

from datetime import datetime

from sqlalchemy.sql.elements import ColumnElement

from src.ecauth.core.tenancy import TenantScopedRepository
from src.ecauth.entities.access_token.entity import AccessToken
from src.ecauth.entities.access_token.table import AccessTokenTable


class AccessTokenRepository(TenantScopedRepository):
    """Data-access layer for access tokens, scoped through the owning client."""

    table = AccessTokenTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return AccessTokenTable.client_pk.in_(self._client_ids())

    def add(self, token: AccessToken) -> AccessToken:
        if token.client_pk not in set(self._session.exec(self._client_ids()).all()):
            raise ValueError("access token client is outside the current tenant")
        row = AccessTokenTable(**token.model_dump())
        self._session.add(row)
        self._flush()
        return token

    def get_by_token(self, token: str) -> AccessToken | None:
        statement = (
            self._select()
            .where(AccessTokenTable.token == token)
            .execution_options(populate_existing=True)
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return AccessToken.model_validate(row, from_attributes=True)

    def revoke(self, token: str, now: datetime) -> int:
        statement = (
            self._update()
            .where(
                (AccessTokenTable.token == token)
                & (AccessTokenTable.is_revoked.is_(False))
            )
            .values(is_revoked=True, revoked_at=now)
        )
        return self._session.execute(statement).rowcount

    def delete_expired(self, now: datetime) -> int:
        statement = self._delete().where(AccessTokenTable.expires_at <= now)
        return self._session.execute(statement).rowcount
