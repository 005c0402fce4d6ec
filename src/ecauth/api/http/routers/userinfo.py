"""OIDC userinfo endpoint and the upstream userinfo passthrough."""

from typing import Any

from fastapi import APIRouter, Depends, Query
from loguru import logger

from src.ecauth.api.http.deps import (
    get_identity_service,
    get_token_service,
    get_validated_token,
)
from src.ecauth.core.errors import Unauthorized
from src.ecauth.core.models import ValidatedToken
from src.ecauth.core.services import ExternalIdentityService, TokenService
from src.ecauth.core.subject import SubjectType

router = APIRouter(tags=["oauth"])


@router.api_route("/userinfo", methods=["GET", "POST"])
def userinfo(
    validated: ValidatedToken = Depends(get_validated_token),
    tokens: TokenService = Depends(get_token_service),
) -> dict[str, Any]:
    """Claims about the subject the bearer token was issued to."""
    return tokens.userinfo(validated)


@router.get("/external-userinfo")
async def external_userinfo(
    provider: str = Query(..., min_length=1),
    validated: ValidatedToken = Depends(get_validated_token),
    identities: ExternalIdentityService = Depends(get_identity_service),
) -> dict[str, Any]:
    """Userinfo from the upstream IdP a B2C subject signed in with.

    The cached upstream token is refreshed first when it has expired; the
    response carries the upstream claims plus `provider`.
    """
    if validated.subject.subject_type is not SubjectType.B2C:
        raise Unauthorized("external userinfo requires a B2C subject")
    claims = await identities.fetch_external_userinfo(validated.subject.subject_id, provider)
    logger.bind(provider=provider, client_id=validated.client_id).info(
        "External userinfo served"
    )
    return claims
