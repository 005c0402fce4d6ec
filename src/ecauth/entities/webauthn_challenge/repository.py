"""WebAuthn challenge data access with an atomic consume."""

from datetime import datetime

from sqlalchemy.sql.elements import ColumnElement

from src.ecauth.core.tenancy import TenantScopedRepository
from src.ecauth.entities.webauthn_challenge.entity import WebAuthnChallenge
from src.ecauth.entities.webauthn_challenge.table import WebAuthnChallengeTable


class WebAuthnChallengeRepository(TenantScopedRepository):
    """Data-access layer for ceremony challenges, scoped through the owning client."""

    table = WebAuthnChallengeTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return WebAuthnChallengeTable.client_pk.in_(self._client_ids())

    def replace(self, challenge: WebAuthnChallenge) -> WebAuthnChallenge:
        """Store `challenge`, dropping whatever record the session held before."""
        if challenge.client_pk not in set(self._session.exec(self._client_ids()).all()):
            raise ValueError("challenge client is outside the current tenant")
        self._session.execute(
            self._delete().where(WebAuthnChallengeTable.session_id == challenge.session_id)
        )
        self._session.add(WebAuthnChallengeTable(**challenge.model_dump()))
        self._flush()
        return challenge

    def get_by_session_id(self, session_id: str) -> WebAuthnChallenge | None:
        row = self._session.exec(
            self._select()
            .where(WebAuthnChallengeTable.session_id == session_id)
            .execution_options(populate_existing=True)
        ).first()
        if row is None:
            return None
        return WebAuthnChallenge.model_validate(row, from_attributes=True)

    def mark_consumed(self, session_id: str, now: datetime) -> int:
        statement = (
            self._update()
            .where(
                (WebAuthnChallengeTable.session_id == session_id)
                & (WebAuthnChallengeTable.consumed_at.is_(None))
            )
            .values(consumed_at=now)
        )
        return self._session.execute(statement).rowcount

    def delete_stale(self, now: datetime) -> int:
        """Sweep expired and already consumed challenges."""
        statement = self._delete().where(
            (WebAuthnChallengeTable.expires_at <= now)
            | (WebAuthnChallengeTable.consumed_at.is_not(None))
        )
        return self._session.execute(statement).rowcount
