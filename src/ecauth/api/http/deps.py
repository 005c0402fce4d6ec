"""FastAPI dependency implementations."""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, Request
from sqlmodel import Session

from src.ecauth.api.http.app_data import ApplicationDependencies
from src.ecauth.core.errors import EcAuthError, InvalidClient, Unauthorized
from src.ecauth.core.models import ValidatedToken
from src.ecauth.core.security import constant_time_equals
from src.ecauth.core.services import (
    AuthorizationCodeService,
    ExternalIdentityService,
    FederationAdapter,
    JwtGeneratorService,
    JwtVerificationService,
    PasskeyService,
    SigningKeyStore,
    TokenService,
)
from src.ecauth.core.tenancy import TenantScope, extract_tenant_name, resolve_tenant
from src.ecauth.entities.client import Client, ClientRepository
from src.ecauth.runtime.context import get_config


def _app_deps(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_db_session(request: Request) -> Iterator[Session]:
    """One unit of work per request.

    Domain errors still commit: a consumed challenge or a flagged credential
    must persist even though the request fails.
    """
    with _app_deps(request).database_service.session_scope(
        commit_on=(EcAuthError,)
    ) as session:
        yield session


def get_key_store(request: Request) -> SigningKeyStore:
    """Get the client signing key store."""
    return _app_deps(request).key_store


def get_jwt_generation_service(request: Request) -> JwtGeneratorService:
    """Get the JWT generation service instance."""
    return _app_deps(request).jwt_generation_service


def get_jwt_verify_service(request: Request) -> JwtVerificationService:
    """Get the JWT verification service instance."""
    return _app_deps(request).jwt_verify_service


def get_federation_adapter(request: Request) -> FederationAdapter:
    """Get the upstream IdP adapter."""
    return _app_deps(request).federation_adapter


def get_tenant(request: Request, db: Session = Depends(get_db_session)) -> TenantScope:
    """Resolve the request's tenant; there is no default tenant."""
    cfg = get_config().tenancy
    tenant_name = extract_tenant_name(
        request.headers, cfg.header_name, cfg.resolve_from_host
    )
    return resolve_tenant(db, tenant_name)


# --- per-request services, bound to the session and tenant ---
def get_authorization_code_service(
    db: Session = Depends(get_db_session),
    tenant: TenantScope = Depends(get_tenant),
) -> AuthorizationCodeService:
    return AuthorizationCodeService(db, tenant)


def get_token_service(
    db: Session = Depends(get_db_session),
    tenant: TenantScope = Depends(get_tenant),
    key_store: SigningKeyStore = Depends(get_key_store),
    jwt_generator: JwtGeneratorService = Depends(get_jwt_generation_service),
) -> TokenService:
    return TokenService(db, tenant, key_store, jwt_generator)


def get_passkey_service(
    db: Session = Depends(get_db_session),
    tenant: TenantScope = Depends(get_tenant),
) -> PasskeyService:
    return PasskeyService(db, tenant)


def get_identity_service(
    db: Session = Depends(get_db_session),
    tenant: TenantScope = Depends(get_tenant),
    adapter: FederationAdapter = Depends(get_federation_adapter),
) -> ExternalIdentityService:
    return ExternalIdentityService(db, tenant, adapter)


def get_client_repository(
    db: Session = Depends(get_db_session),
    tenant: TenantScope = Depends(get_tenant),
) -> ClientRepository:
    return ClientRepository(db, tenant)


# --- client authentication ---
def load_client(clients: ClientRepository, client_id: str | None) -> Client:
    """Look up a client of the current tenant by its public id."""
    client = clients.get_by_client_id(client_id) if client_id else None
    if client is None:
        raise InvalidClient("unknown client", client_id=client_id)
    return client


def authenticate_client(
    clients: ClientRepository, client_id: str | None, client_secret: str | None
) -> Client:
    """Confidential client authentication with a constant-time secret check."""
    client = load_client(clients, client_id)
    if not constant_time_equals(client_secret, client.client_secret):
        raise InvalidClient("client secret mismatch", client_id=client_id)
    return client


# --- bearer tokens ---
def get_bearer_token(request: Request) -> str:
    """Extract the Bearer credential from the Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise Unauthorized("missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Authorization header is not a Bearer credential")
    return token.strip()


def get_validated_token(
    token: str = Depends(get_bearer_token),
    token_service: TokenService = Depends(get_token_service),
) -> ValidatedToken:
    return token_service.validate_bearer_token(token)
