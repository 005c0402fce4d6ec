"""Client and signing key data access."""

from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import select

from src.ecauth.core.tenancy import TenantScopedRepository
from src.ecauth.entities.client.entity import Client, RsaKeyPair
from src.ecauth.entities.client.table import (
    ClientTable,
    RedirectUriTable,
    RsaKeyPairTable,
)


class ClientRepository(TenantScopedRepository):
    """Data-access layer for OAuth clients of the current tenant."""

    table = ClientTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return ClientTable.organization_id.in_(self._organization_ids())

    def _to_entity(self, row: ClientTable) -> Client:
        uris = self._session.exec(
            select(RedirectUriTable.uri)
            .where(RedirectUriTable.client_pk == row.id)
            .order_by(RedirectUriTable.created_at)
        ).all()
        client = Client.model_validate(row, from_attributes=True)
        client.redirect_uris = list(uris)
        return client

    def get_by_client_id(self, client_id: str) -> Client | None:
        statement = self._select().where(ClientTable.client_id == client_id)
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return self._to_entity(row)

    def get(self, client_pk: str) -> Client | None:
        statement = self._select().where(ClientTable.id == client_pk)
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return self._to_entity(row)

    def create(self, client: Client) -> Client:
        """Persist a client and its redirect URIs inside the current tenant."""
        organization_ids = set(self._session.exec(self._organization_ids()).all())
        if client.organization_id not in organization_ids:
            raise ValueError("client organization is outside the current tenant")

        row = ClientTable(**client.model_dump(exclude={"redirect_uris"}))
        self._session.add(row)
        for uri in dict.fromkeys(client.redirect_uris):
            self._session.add(RedirectUriTable(client_pk=row.id, uri=uri))
        self._flush()
        return self._to_entity(row)


class RsaKeyPairRepository(TenantScopedRepository):
    """Data-access layer for client signing keys."""

    table = RsaKeyPairTable

    def _tenant_filter(self) -> ColumnElement[bool]:
        return RsaKeyPairTable.client_pk.in_(self._client_ids())

    def get_for_client(self, client_pk: str) -> RsaKeyPair | None:
        statement = self._select().where(RsaKeyPairTable.client_pk == client_pk)
        row = self._session.exec(statement).first()
        if row is None:
            return None
        return RsaKeyPair.model_validate(row, from_attributes=True)

    def add(self, key_pair: RsaKeyPair) -> RsaKeyPair:
        client_ids = set(self._session.exec(self._client_ids()).all())
        if key_pair.client_pk not in client_ids:
            raise ValueError("key pair client is outside the current tenant")
        row = RsaKeyPairTable(**key_pair.model_dump())
        self._session.add(row)
        self._flush()
        return RsaKeyPair.model_validate(row, from_attributes=True)
