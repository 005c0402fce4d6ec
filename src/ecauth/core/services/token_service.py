"""Access token and ID token issuance, bearer validation, subject resolution."""

from collections.abc import Callable
from datetime import timedelta
from typing import Any

from loguru import logger
from sqlmodel import Session

from src.ecauth.core.errors import InvalidGrant, Unauthorized
from src.ecauth.core.models import TokenResponse, ValidatedToken
from src.ecauth.core.security import generate_secure_token
from src.ecauth.core.services.jwt import JwtGeneratorService
from src.ecauth.core.services.keys import SigningKeyStore
from src.ecauth.core.subject import Subject, SubjectType
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities._base import utc_now
from src.ecauth.entities.access_token import AccessToken, AccessTokenRepository
from src.ecauth.entities.client import Client, ClientRepository
from src.ecauth.entities.user import (
    AccountRepository,
    B2BUserRepository,
    EcAuthUserRepository,
)
from src.ecauth.runtime.context import get_config

ProfileResolver = Callable[[str, set[str]], dict[str, Any] | None]


class TokenService:
    """Mints and validates tokens for one tenant.

    Every subject variant resolves against its own backing store; a subject
    that is not found inside the tenant never gets a token.
    """

    def __init__(
        self,
        session: Session,
        tenant: TenantScope,
        key_store: SigningKeyStore,
        jwt_generator: JwtGeneratorService,
    ) -> None:
        self._session = session
        self._tenant = tenant
        self._key_store = key_store
        self._jwt = jwt_generator
        self._access_tokens = AccessTokenRepository(session, tenant)
        self._clients = ClientRepository(session, tenant)
        self._resolvers: dict[SubjectType, ProfileResolver] = {
            SubjectType.B2C: self._b2c_claims,
            SubjectType.B2B: self._b2b_claims,
            SubjectType.ACCOUNT: self._account_claims,
        }

    def mint_tokens(
        self,
        subject: Subject,
        client: Client,
        scope: str | None = None,
        nonce: str | None = None,
    ) -> TokenResponse:
        profile = self.resolve_subject(subject, scope)
        if profile is None:
            raise InvalidGrant(
                "subject does not resolve inside the tenant",
                subject_type=subject.subject_type.value,
            )

        config = get_config().token
        now = utc_now()
        access_token = AccessToken(
            token=generate_secure_token(32),
            client_pk=client.id,
            subject=subject.subject_id,
            subject_type=subject.subject_type,
            scopes=scope,
            created_at=now,
            expires_at=now + timedelta(seconds=config.access_token_lifetime_seconds),
        )
        self._access_tokens.add(access_token)

        signing_key = self._key_store.get_signing_key(self._session, self._tenant, client)
        id_token = self._jwt.generate_id_token(
            subject=subject.subject_id,
            signing_key=signing_key,
            audience=client.client_id,
            subject_type=subject.subject_type.value,
            nonce=nonce,
            **profile,
        )

        logger.bind(
            client_id=client.client_id,
            subject_type=subject.subject_type.value,
            kid=signing_key.kid,
        ).info("Tokens minted")
        return TokenResponse(
            access_token=access_token.token,
            id_token=id_token,
            expires_in=config.access_token_lifetime_seconds,
        )

    def validate_bearer_token(self, token: str | None) -> ValidatedToken:
        if not token:
            raise Unauthorized("missing bearer token")

        record = self._access_tokens.get_by_token(token)
        if record is None:
            raise Unauthorized("unknown access token")
        if record.is_revoked:
            raise Unauthorized("revoked access token")
        if record.is_expired():
            raise Unauthorized("expired access token")

        client = self._clients.get(record.client_pk)
        if client is None:
            raise Unauthorized("access token client no longer exists")

        return ValidatedToken(
            subject=record.principal,
            scope=record.scopes,
            client_id=client.client_id,
            expires_at=record.expires_at,
        )

    def revoke_access_token(self, token: str) -> bool:
        revoked = self._access_tokens.revoke(token, utc_now()) == 1
        if revoked:
            logger.bind(token_prefix=token[:6]).info("Access token revoked")
        return revoked

    def cleanup_expired(self) -> int:
        return self._access_tokens.delete_expired(utc_now())

    def resolve_subject(
        self, subject: Subject, scope: str | None = None
    ) -> dict[str, Any] | None:
        """Profile claims for `subject`, or None if it is not in this tenant."""
        scopes = set((scope or "").split())
        return self._resolvers[subject.subject_type](subject.subject_id, scopes)

    def userinfo(self, validated: ValidatedToken) -> dict[str, Any]:
        profile = self.resolve_subject(validated.subject, validated.scope)
        if profile is None:
            raise Unauthorized("token subject no longer resolves")
        return {
            "sub": validated.subject.subject_id,
            "sub_type": validated.subject.subject_type.value,
            **profile,
        }

    def _b2c_claims(self, subject_id: str, scopes: set[str]) -> dict[str, Any] | None:
        user = EcAuthUserRepository(self._session, self._tenant).get_by_subject(subject_id)
        if user is None:
            return None
        claims: dict[str, Any] = {}
        if "email" in scopes:
            claims["email_verified"] = user.email_hash is not None
        return claims

    def _b2b_claims(self, subject_id: str, scopes: set[str]) -> dict[str, Any] | None:
        user = B2BUserRepository(self._session, self._tenant).get_by_subject(subject_id)
        if user is None:
            return None
        claims: dict[str, Any] = {"org_id": user.organization_id}
        if "profile" in scopes:
            claims["preferred_username"] = user.external_id
        return claims

    def _account_claims(self, subject_id: str, scopes: set[str]) -> dict[str, Any] | None:
        account = AccountRepository(self._session, self._tenant).get_by_subject(subject_id)
        if account is None:
            return None
        claims: dict[str, Any] = {}
        if "email" in scopes:
            claims["email"] = account.email
        if "profile" in scopes and account.name:
            claims["name"] = account.name
        return claims
