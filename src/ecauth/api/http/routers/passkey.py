"""B2B passkey endpoints: ceremonies and credential management."""

import binascii
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from src.ecauth.api.http.deps import (
    authenticate_client,
    get_authorization_code_service,
    get_client_repository,
    get_passkey_service,
    get_validated_token,
    load_client,
)
from src.ecauth.api.http.redirects import build_redirect_url
from src.ecauth.core.errors import CredentialNotFound, InvalidGrant, Unauthorized
from src.ecauth.core.models import ValidatedToken
from src.ecauth.core.security import b64url_decode
from src.ecauth.core.services import AuthorizationCodeService, PasskeyService
from src.ecauth.core.subject import Subject, SubjectType
from src.ecauth.entities.client import ClientRepository
from src.ecauth.runtime.context import get_config

router = APIRouter(prefix="/b2b/passkey", tags=["passkey"])


class RegisterOptionsRequest(BaseModel):
    client_id: str
    client_secret: str
    rp_id: str
    b2b_subject: str
    display_name: str | None = None


class RegisterVerifyRequest(BaseModel):
    client_id: str
    client_secret: str
    session_id: str
    response: dict[str, Any]
    device_name: str | None = Field(default=None, max_length=255)


class AuthenticateOptionsRequest(BaseModel):
    client_id: str
    rp_id: str
    b2b_subject: str | None = None


class AuthenticateVerifyRequest(BaseModel):
    client_id: str
    session_id: str
    redirect_uri: str
    state: str | None = None
    response: dict[str, Any]


class PasskeySummary(BaseModel):
    credential_id: str
    device_name: str | None
    aaguid: str | None
    transports: list[str]
    created_at: datetime
    last_used_at: datetime | None


def _require_b2b(validated: ValidatedToken) -> str:
    if validated.subject.subject_type is not SubjectType.B2B:
        raise Unauthorized("passkey management requires a B2B subject")
    return validated.subject.subject_id


@router.post("/register/options")
def register_options(
    body: RegisterOptionsRequest,
    clients: ClientRepository = Depends(get_client_repository),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> dict[str, Any]:
    client = authenticate_client(clients, body.client_id, body.client_secret)
    ceremony = passkeys.create_registration_options(
        client, body.rp_id, body.b2b_subject, body.display_name
    )
    return ceremony.model_dump()


@router.post("/register/verify")
def register_verify(
    body: RegisterVerifyRequest,
    clients: ClientRepository = Depends(get_client_repository),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> dict[str, Any]:
    client = authenticate_client(clients, body.client_id, body.client_secret)
    credential = passkeys.verify_registration(
        client, body.session_id, body.response, body.device_name
    )
    return {"success": True, "credential_id": credential.credential_id_b64}


@router.post("/authenticate/options")
def authenticate_options(
    body: AuthenticateOptionsRequest,
    clients: ClientRepository = Depends(get_client_repository),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> dict[str, Any]:
    client = load_client(clients, body.client_id)
    ceremony = passkeys.create_authentication_options(client, body.rp_id, body.b2b_subject)
    return ceremony.model_dump()


@router.post("/authenticate/verify")
def authenticate_verify(
    body: AuthenticateVerifyRequest,
    clients: ClientRepository = Depends(get_client_repository),
    passkeys: PasskeyService = Depends(get_passkey_service),
    codes: AuthorizationCodeService = Depends(get_authorization_code_service),
) -> dict[str, str]:
    """Verify an assertion and answer with the client redirect carrying a fresh code."""
    client = load_client(clients, body.client_id)
    if not client.allows_redirect_uri(body.redirect_uri):
        raise InvalidGrant("redirect_uri is not registered", client_id=client.client_id)

    credential = passkeys.verify_authentication(client, body.session_id, body.response)
    code = codes.issue_code(
        Subject.b2b(credential.b2b_subject),
        client,
        body.redirect_uri,
        scope=get_config().webauthn.b2b_scope,
        client_state=body.state,
    )
    return {
        "redirect_url": build_redirect_url(body.redirect_uri, code=code.code, state=body.state)
    }


@router.get("/list")
def list_passkeys(
    validated: ValidatedToken = Depends(get_validated_token),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> dict[str, list[PasskeySummary]]:
    subject = _require_b2b(validated)
    return {
        "passkeys": [
            PasskeySummary(
                credential_id=c.credential_id_b64,
                device_name=c.device_name,
                aaguid=c.aaguid,
                transports=c.transports,
                created_at=c.created_at,
                last_used_at=c.last_used_at,
            )
            for c in passkeys.list_credentials(subject)
        ]
    }


@router.delete("/{credential_id}", status_code=204)
def delete_passkey(
    credential_id: str,
    validated: ValidatedToken = Depends(get_validated_token),
    passkeys: PasskeyService = Depends(get_passkey_service),
) -> Response:
    subject = _require_b2b(validated)
    try:
        raw_id = b64url_decode(credential_id)
    except (binascii.Error, ValueError) as e:
        raise CredentialNotFound("malformed credential id") from e
    if not passkeys.delete_credential(subject, raw_id):
        raise CredentialNotFound("no such credential for subject")
    return Response(status_code=204)
