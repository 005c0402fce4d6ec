"""Maps upstream identities onto local B2C subjects and keeps their upstream tokens."""

from typing import Any

from loguru import logger
from sqlmodel import Session

from src.ecauth.core.errors import ExternalTokenNotFound, FederationError
from src.ecauth.core.security import hash_email
from src.ecauth.core.services.federation.adapter import FederationAdapter
from src.ecauth.core.services.federation.models import FederatedIdentity, UpstreamTokens
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities._base import utc_now
from src.ecauth.entities.external_idp import (
    ExternalIdpMapping,
    ExternalIdpMappingRepository,
    ExternalIdpToken,
    ExternalIdpTokenRepository,
)
from src.ecauth.entities.organization import OrganizationRepository
from src.ecauth.entities.user import EcAuthUser, EcAuthUserRepository


class ExternalIdentityService:
    def __init__(
        self, session: Session, tenant: TenantScope, adapter: FederationAdapter
    ) -> None:
        self._session = session
        self._tenant = tenant
        self._adapter = adapter
        self._mappings = ExternalIdpMappingRepository(session, tenant)
        self._tokens = ExternalIdpTokenRepository(session, tenant)
        self._users = EcAuthUserRepository(session, tenant)

    def link_identity(self, provider: str, identity: FederatedIdentity) -> EcAuthUser:
        """Find the B2C user behind `identity`, creating user and mapping on first sign-in."""
        mapping = self._mappings.find(provider, identity.external_subject)
        if mapping is not None:
            user = self._users.get_by_subject(mapping.ecauth_subject)
            if user is None:
                raise FederationError("mapping points at a missing user", provider=provider)
        else:
            organization = OrganizationRepository(self._session, self._tenant).get_current()
            if organization is None:
                raise FederationError("tenant has no organization", provider=provider)
            user = self._users.create(
                EcAuthUser(
                    organization_id=organization.id,
                    email_hash=hash_email(identity.email) if identity.email else None,
                )
            )
            self._mappings.add(
                ExternalIdpMapping(
                    ecauth_subject=user.subject,
                    external_provider=provider,
                    external_subject=identity.external_subject,
                )
            )
            logger.bind(provider=provider, tenant=self._tenant.tenant_name).info(
                "Created B2C user for new federated identity"
            )

        self.save_tokens(user.subject, provider, identity)
        return user

    def save_tokens(
        self, ecauth_subject: str, provider: str, tokens: UpstreamTokens
    ) -> ExternalIdpToken:
        return self._tokens.upsert(
            ExternalIdpToken(
                ecauth_subject=ecauth_subject,
                external_provider=provider,
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_at=tokens.expires_at,
            )
        )

    def get_tokens(self, ecauth_subject: str, provider: str) -> ExternalIdpToken | None:
        return self._tokens.get(ecauth_subject, provider)

    async def get_valid_tokens(
        self, ecauth_subject: str, provider: str
    ) -> ExternalIdpToken | None:
        """Cached upstream tokens, refreshed first if they have expired."""
        cached = self._tokens.get(ecauth_subject, provider)
        if cached is None or not cached.is_expired():
            return cached
        if not cached.refresh_token:
            return None
        refreshed = await self._adapter.refresh(provider, cached.refresh_token)
        return self.save_tokens(ecauth_subject, provider, refreshed)

    async def fetch_external_userinfo(
        self, ecauth_subject: str, provider: str
    ) -> dict[str, Any]:
        """Upstream claims for `ecauth_subject`, read with its cached provider token."""
        self._adapter.provider_config(provider)
        tokens = await self.get_valid_tokens(ecauth_subject, provider)
        if tokens is None:
            raise ExternalTokenNotFound(
                "no usable upstream token cached", provider=provider
            )
        claims = await self._adapter.userinfo(provider, tokens.access_token)
        return {**claims, "provider": provider}

    def cleanup_expired(self) -> int:
        return self._tokens.delete_expired(utc_now())
