import time
from typing import Any

from authlib.jose import JoseError, jwt
from loguru import logger

from src.ecauth.core.errors import ServerError
from src.ecauth.core.services.keys import SigningKey
from src.ecauth.runtime.config.config_data import ConfigData
from src.ecauth.runtime.context import get_config

_REGISTERED_CLAIMS = {"iss", "sub", "aud", "exp", "iat", "nbf", "jti"}


class JwtGeneratorService:
    """Service for signing the JWTs the identity provider hands out."""

    def generate_jwt(
        self,
        subject: str | None,
        key: str | bytes,
        claims: dict[str, Any] | None = None,
        expires_in_seconds: int = 3600,
        issuer: str | None = None,
        audience: str | list[str] | None = None,
        algorithm: str = "HS256",
        include_jti: bool = True,
        kid: str | None = None,
    ) -> str:
        """Generate a signed JWT using authlib.

        Args:
            subject: Subject (sub) claim, omitted when None
            key: HMAC secret for HS256, or a PEM private key for RS256
            claims: Additional claims to include in the token
            expires_in_seconds: Token lifetime in seconds (default: 1 hour)
            issuer: Issuer (iss) claim (defaults to config issuer)
            audience: Audience (aud) claim, omitted when None
            algorithm: Signing algorithm (default: HS256)
            include_jti: Whether to include a unique JWT ID claim (default: True)
            kid: Optional Key ID for the JWT header

        Returns:
            Signed JWT token string

        Raises:
            ServerError: If the key is missing or signing fails
        """
        from authlib.common.security import generate_token

        config: ConfigData = get_config()

        if not key:
            raise ServerError("JWT signing key not configured")

        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": issuer or config.token.issuer,
            "iat": now,
            "exp": now + expires_in_seconds,
        }
        if subject is not None:
            payload["sub"] = subject
        if audience:
            payload["aud"] = audience
        if include_jti:
            payload["jti"] = generate_token(16)

        if claims:
            payload.update(
                {k: v for k, v in claims.items() if k not in _REGISTERED_CLAIMS}
            )

        try:
            header = {"alg": algorithm, "typ": "JWT"}
            if kid:
                header["kid"] = kid

            token = jwt.encode(header, payload, key)
            return token.decode() if isinstance(token, bytes) else token
        except (JoseError, ValueError) as e:
            logger.bind(algorithm=algorithm, kid=kid).error("JWT encoding failed: {}", e)
            raise ServerError(f"JWT encoding failed: {e}") from e

    def generate_id_token(
        self,
        subject: str,
        signing_key: SigningKey,
        audience: str,
        subject_type: str,
        nonce: str | None = None,
        expires_in_seconds: int | None = None,
        issuer: str | None = None,
        **extra_claims: Any,
    ) -> str:
        """Generate an RS256 ID token signed with a client's own key.

        Example:
            id_token = generate_id_token(
                subject="5f0c...",
                signing_key=key_store.get_signing_key(session, tenant, client),
                audience=client.client_id,
                subject_type="b2b",
                nonce="abc123",
                org_id="org-1",
            )
        """
        config = get_config()
        claims: dict[str, Any] = {"sub_type": subject_type}
        if nonce:
            claims["nonce"] = nonce
        claims.update({k: v for k, v in extra_claims.items() if v is not None})

        return self.generate_jwt(
            subject=subject,
            key=signing_key.private_key_pem,
            claims=claims,
            expires_in_seconds=expires_in_seconds or config.token.id_token_lifetime_seconds,
            issuer=issuer,
            audience=audience,
            algorithm=config.token.signing_algorithm,
            kid=signing_key.kid,
        )
