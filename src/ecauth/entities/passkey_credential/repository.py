"""Passkey credential data access with a monotonic counter update."""

from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import select

from src.ecauth.core.tenancy import TenantScopedRepository
from src.ecauth.entities.passkey_credential.entity import B2BPasskeyCredential
from src.ecauth.entities.passkey_credential.table import B2BPasskeyCredentialTable


class B2BPasskeyCredentialRepository(TenantScopedRepository):
    """Data-access layer for passkeys, scoped through the owning B2B user."""

    table = B2BPasskeyCredentialTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return B2BPasskeyCredentialTable.b2b_subject.in_(self._b2b_subjects())

    def add(self, credential: B2BPasskeyCredential) -> B2BPasskeyCredential:
        if credential.b2b_subject not in set(self._session.exec(self._b2b_subjects()).all()):
            raise ValueError("credential subject is outside the current tenant")
        row = B2BPasskeyCredentialTable(**credential.model_dump())
        self._session.add(row)
        self._flush()
        return credential

    def get_by_credential_id(self, credential_id: bytes) -> B2BPasskeyCredential | None:
        row = self._session.exec(
            self._select()
            .where(B2BPasskeyCredentialTable.credential_id == credential_id)
            .execution_options(populate_existing=True)
        ).first()
        if row is None:
            return None
        return B2BPasskeyCredential.model_validate(row, from_attributes=True)

    def credential_id_taken(self, credential_id: bytes) -> bool:
        """Whether any tenant already holds `credential_id`.

        Credential ids are globally unique, so this guard looks past the tenant
        filter; it only answers yes or no and returns no row data.
        """
        statement = select(B2BPasskeyCredentialTable.id).where(
            B2BPasskeyCredentialTable.credential_id == credential_id
        )
        return self._session.exec(statement).first() is not None

    def list_by_subject(self, b2b_subject: str) -> list[B2BPasskeyCredential]:
        rows = self._session.exec(
            self._select()
            .where(B2BPasskeyCredentialTable.b2b_subject == b2b_subject)
            .order_by(B2BPasskeyCredentialTable.created_at.desc())
        ).all()
        return [B2BPasskeyCredential.model_validate(r, from_attributes=True) for r in rows]

    def count_by_subject(self, b2b_subject: str) -> int:
        statement = self._select(func.count()).where(
            B2BPasskeyCredentialTable.b2b_subject == b2b_subject
        )
        return self._session.exec(statement).one()

    def delete(self, b2b_subject: str, credential_id: bytes) -> int:
        statement = self._delete().where(
            (B2BPasskeyCredentialTable.b2b_subject == b2b_subject)
            & (B2BPasskeyCredentialTable.credential_id == credential_id)
        )
        return self._session.execute(statement).rowcount

    def advance_counter(self, credential_pk: str, new_count: int, now: datetime) -> int:
        """Store `new_count` only if it moves the counter forward.

        Both-zero is accepted for authenticators without a counter. Flagged
        credentials never advance. Returns the number of rows changed.
        """
        stored = B2BPasskeyCredentialTable.sign_count
        moves_forward = stored < new_count
        if new_count == 0:
            moves_forward = or_(moves_forward, stored == 0)
        statement = (
            self._update()
            .where(
                (B2BPasskeyCredentialTable.id == credential_pk)
                & (B2BPasskeyCredentialTable.clone_suspected_at.is_(None))
                & moves_forward
            )
            .values(sign_count=new_count, last_used_at=now)
        )
        return self._session.execute(statement).rowcount

    def flag_clone(self, credential_pk: str, now: datetime) -> int:
        statement = (
            self._update()
            .where(
                (B2BPasskeyCredentialTable.id == credential_pk)
                & (B2BPasskeyCredentialTable.clone_suspected_at.is_(None))
            )
            .values(clone_suspected_at=now)
        )
        return self._session.execute(statement).rowcount
