"""Boundary to upstream OIDC identity providers."""

import base64
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import httpx
from loguru import logger

from src.ecauth.core.errors import EcAuthError, FederationError
from src.ecauth.core.services.federation.models import (
    FederatedIdentity,
    UpstreamTokenResponse,
    UpstreamTokens,
)
from src.ecauth.runtime.config.config_data import OIDCProviderConfig
from src.ecauth.runtime.context import get_config


class FederationAdapter:
    """Talks to the configured upstream providers over HTTP.

    Args:
        transport: Optional httpx transport, e.g. `httpx.MockTransport` in tests
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def provider_config(self, provider: str) -> OIDCProviderConfig:
        provider_config = get_config().oidc.providers.get(provider)
        if provider_config is None:
            raise EcAuthError(f"unknown or disabled provider {provider!r}")
        return provider_config

    def authorization_url(
        self, provider: str, state: str, nonce: str | None = None
    ) -> str:
        """Build the upstream authorization request URL."""
        provider_config = self.provider_config(provider)
        params = {
            "response_type": "code",
            "client_id": provider_config.client_id,
            "redirect_uri": provider_config.redirect_uri,
            "scope": " ".join(provider_config.scopes),
            "state": state,
        }
        if nonce:
            params["nonce"] = nonce
        separator = "&" if "?" in provider_config.authorization_endpoint else "?"
        return f"{provider_config.authorization_endpoint}{separator}{urlencode(params)}"

    async def exchange(
        self, provider: str, authorization_response: Mapping[str, Any]
    ) -> FederatedIdentity:
        """Redeem the upstream code and identify the subject.

        Args:
            provider: Configured provider key
            authorization_response: Query parameters the provider returned with

        Returns:
            The upstream subject identifier and its tokens
        """
        if authorization_response.get("error"):
            raise FederationError(
                f"upstream returned error {authorization_response['error']!r}",
                provider=provider,
            )
        code = authorization_response.get("code")
        if not code:
            raise FederationError("upstream response carries no code", provider=provider)

        provider_config = self.provider_config(provider)
        tokens = await self._token_request(
            provider_config,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": provider_config.redirect_uri,
                "client_id": provider_config.client_id,
            },
        )
        claims = await self._userinfo(provider_config, tokens.access_token)
        external_subject = claims.get("sub")
        if not external_subject:
            raise FederationError("upstream userinfo has no subject", provider=provider)

        logger.bind(provider=provider).info("Upstream authorization exchanged")
        return FederatedIdentity(
            external_subject=str(external_subject),
            email=claims.get("email"),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at(),
        )

    async def refresh(self, provider: str, refresh_token: str) -> UpstreamTokens:
        provider_config = self.provider_config(provider)
        tokens = await self._token_request(
            provider_config,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": provider_config.client_id,
            },
        )
        logger.bind(provider=provider).info("Upstream tokens refreshed")
        return UpstreamTokens(
            access_token=tokens.access_token,
            # Providers that do not rotate refresh tokens omit the field
            refresh_token=tokens.refresh_token or refresh_token,
            expires_at=tokens.expires_at(),
        )

    async def userinfo(self, provider: str, access_token: str) -> dict[str, Any]:
        """Fetch the upstream userinfo claims with a cached upstream access token."""
        return await self._userinfo(self.provider_config(provider), access_token)

    async def _token_request(
        self, provider_config: OIDCProviderConfig, data: dict[str, str]
    ) -> UpstreamTokenResponse:
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        # Add client authentication if client secret is configured
        if provider_config.client_secret:
            credentials = f"{provider_config.client_id}:{provider_config.client_secret}"
            encoded_credentials = base64.b64encode(credentials.encode()).decode()
            headers["Authorization"] = f"Basic {encoded_credentials}"

        payload = await self._send("POST", provider_config.token_endpoint, data=data, headers=headers)
        try:
            return UpstreamTokenResponse.model_validate(payload)
        except ValueError as e:
            raise FederationError(f"malformed upstream token response: {e}") from e

    async def _userinfo(
        self, provider_config: OIDCProviderConfig, access_token: str
    ) -> dict[str, Any]:
        if not provider_config.userinfo_endpoint:
            raise FederationError("provider has no userinfo endpoint")
        return await self._send(
            "GET",
            provider_config.userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def _send(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        timeout = get_config().oidc.http_timeout_seconds
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            logger.bind(url=url, status_code=e.response.status_code).warning(
                "Upstream provider rejected request"
            )
            raise FederationError(f"upstream returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.bind(url=url, error_type=type(e).__name__).warning(
                "Upstream provider unreachable: {}", e
            )
            raise FederationError(f"upstream call failed: {e}") from e

        if not isinstance(body, dict):
            raise FederationError("upstream returned a non-object body")
        return body
