"""OAuth2 / OIDC endpoints: authorization, federation callback, token, client JWKS."""

from typing import Any

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from sqlmodel import Session

from src.ecauth.api.http.deps import (
    authenticate_client,
    get_authorization_code_service,
    get_client_repository,
    get_db_session,
    get_federation_adapter,
    get_identity_service,
    get_jwt_generation_service,
    get_jwt_verify_service,
    get_key_store,
    get_tenant,
    get_token_service,
    load_client,
)
from src.ecauth.api.http.redirects import build_redirect_url
from src.ecauth.core.errors import EcAuthError, InvalidGrant, InvalidState, ServerError
from src.ecauth.core.models import AuthorizationState
from src.ecauth.core.services import (
    AuthorizationCodeService,
    ExternalIdentityService,
    FederationAdapter,
    JwtGeneratorService,
    JwtVerificationService,
    SigningKeyStore,
    TokenService,
)
from src.ecauth.core.subject import Subject
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities.client import ClientRepository
from src.ecauth.runtime.context import get_config

router = APIRouter(tags=["oauth"])


@router.get("/authorization")
def authorization(
    client_id: str = Query(...),
    redirect_uri: str = Query(...),
    provider: str = Query(...),
    scope: str | None = Query(default=None),
    state: str | None = Query(default=None),
    nonce: str | None = Query(default=None),
    response_type: str = Query(default="code"),
    tenant: TenantScope = Depends(get_tenant),
    clients: ClientRepository = Depends(get_client_repository),
    adapter: FederationAdapter = Depends(get_federation_adapter),
    jwt_generator: JwtGeneratorService = Depends(get_jwt_generation_service),
) -> RedirectResponse:
    """Start a B2C sign-in: validate the client, then hand off to the upstream IdP."""
    if response_type != "code":
        raise EcAuthError(f"unsupported response_type {response_type!r}")

    client = load_client(clients, client_id)
    # Never redirect anywhere the client has not registered
    if not client.allows_redirect_uri(redirect_uri):
        raise EcAuthError("redirect_uri is not registered", client_id=client_id)
    adapter.provider_config(provider)

    config = get_config()
    if not config.app.state_signing_secret:
        raise ServerError("state signing secret not configured")

    flow_state = AuthorizationState(
        client_id=client.client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        client_state=state,
        nonce=nonce,
        provider=provider,
        tenant=tenant.tenant_name,
    )
    signed_state = jwt_generator.generate_jwt(
        subject=None,
        key=config.app.state_signing_secret,
        claims=flow_state.to_claims(),
        expires_in_seconds=config.authorization_code.state_lifetime_seconds,
        algorithm="HS256",
    )
    logger.bind(client_id=client.client_id, provider=provider).info(
        "Redirecting to upstream provider"
    )
    return RedirectResponse(
        adapter.authorization_url(provider, signed_state, nonce), status_code=302
    )


async def federation_callback(
    request: Request,
    state: str = Query(...),
    tenant: TenantScope = Depends(get_tenant),
    clients: ClientRepository = Depends(get_client_repository),
    adapter: FederationAdapter = Depends(get_federation_adapter),
    verifier: JwtVerificationService = Depends(get_jwt_verify_service),
    identities: ExternalIdentityService = Depends(get_identity_service),
    codes: AuthorizationCodeService = Depends(get_authorization_code_service),
) -> RedirectResponse:
    """Upstream IdP return: link the identity, issue a code, redirect to the client."""
    flow_state = verifier.decode_state(state)
    if flow_state.tenant != tenant.tenant_name:
        logger.bind(
            security_event=True,
            tenant=tenant.tenant_name,
            state_tenant=flow_state.tenant,
        ).warning("federation.state_tenant_mismatch")
        raise InvalidState("state was minted for another tenant")

    client = load_client(clients, flow_state.client_id)
    identity = await adapter.exchange(flow_state.provider, dict(request.query_params))
    user = identities.link_identity(flow_state.provider, identity)

    code = codes.issue_code(
        Subject.b2c(user.subject),
        client,
        flow_state.redirect_uri,
        scope=flow_state.scope,
        client_state=flow_state.client_state,
        nonce=flow_state.nonce,
    )
    return RedirectResponse(
        build_redirect_url(
            flow_state.redirect_uri, code=code.code, state=flow_state.client_state
        ),
        status_code=302,
    )


router.add_api_route(
    get_config().app.federation_callback_path,
    federation_callback,
    methods=["GET"],
    name="federation_callback",
)


@router.post("/token")
def token(
    grant_type: str = Form(...),
    code: str = Form(...),
    redirect_uri: str = Form(...),
    client_id: str = Form(...),
    client_secret: str = Form(...),
    scope: str | None = Form(default=None),
    clients: ClientRepository = Depends(get_client_repository),
    codes: AuthorizationCodeService = Depends(get_authorization_code_service),
    tokens: TokenService = Depends(get_token_service),
) -> JSONResponse:
    """Exchange an authorization code for an access token and ID token."""
    client = authenticate_client(clients, client_id, client_secret)
    redeemed = codes.redeem_code(code, client, redirect_uri, grant_type)

    granted_scope = redeemed.scope
    if scope:
        requested = set(scope.split())
        if not requested <= set((redeemed.scope or "").split()):
            raise InvalidGrant("requested scope exceeds the granted scope")
        granted_scope = scope

    response = tokens.mint_tokens(redeemed.subject, client, granted_scope, redeemed.nonce)
    return JSONResponse(
        content=response.model_dump(),
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )


@router.get("/clients/{client_id}/jwks.json")
def client_jwks(
    client_id: str,
    db: Session = Depends(get_db_session),
    tenant: TenantScope = Depends(get_tenant),
    clients: ClientRepository = Depends(get_client_repository),
    key_store: SigningKeyStore = Depends(get_key_store),
) -> dict[str, Any]:
    """Public signing key of one client, for verifying the ID tokens issued to it."""
    client = load_client(clients, client_id)
    signing_key = key_store.get_signing_key(db, tenant, client)
    return {"keys": [signing_key.public_jwk()]}
