"""Authorization code data access with an atomic mark-used."""

from datetime import datetime

from sqlalchemy.sql.elements import ColumnElement

from src.ecauth.core.tenancy import TenantScopedRepository
from src.ecauth.entities.authorization_code.entity import AuthorizationCode
from src.ecauth.entities.authorization_code.table import AuthorizationCodeTable


class AuthorizationCodeRepository(TenantScopedRepository):
    """Data-access layer for authorization codes, scoped through the owning client."""

    table = AuthorizationCodeTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return AuthorizationCodeTable.client_pk.in_(self._client_ids())

    def add(self, code: AuthorizationCode) -> AuthorizationCode:
        if code.client_pk not in set(self._session.exec(self._client_ids()).all()):
            raise ValueError("authorization code client is outside the current tenant")
        row = AuthorizationCodeTable(**code.model_dump())
        self._session.add(row)
        self._flush()
        return code

    def get(self, code: str) -> AuthorizationCode | None:
        statement = (
            self._select()
            .where(AuthorizationCodeTable.code == code)
            .execution_options(populate_existing=True)
        )
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return AuthorizationCode.model_validate(row, from_attributes=True)

    def mark_used(
        self, code: str, client_pk: str, redirect_uri: str, now: datetime
    ) -> int:
        """Flip `is_used` if and only if every redemption condition holds.

        Returns the number of rows changed: 1 for the single winner, 0 otherwise.
        """
        statement = (
            self._update()
            .where(
                (AuthorizationCodeTable.code == code)
                & (AuthorizationCodeTable.is_used.is_(False))
                & (AuthorizationCodeTable.expires_at > now)
                & (AuthorizationCodeTable.client_pk == client_pk)
                & (AuthorizationCodeTable.redirect_uri == redirect_uri)
            )
            .values(is_used=True, used_at=now)
        )
        return self._session.execute(statement).rowcount

    def delete_expired(self, now: datetime) -> int:
        statement = self._delete().where(AuthorizationCodeTable.expires_at <= now)
        return self._session.execute(statement).rowcount
