"""JWT verification service."""

from typing import Any

from authlib.jose import JoseError, JsonWebKey, jwt
from loguru import logger

from src.ecauth.core.errors import EcAuthError, InvalidState, ServerError, Unauthorized
from src.ecauth.core.models import AuthorizationState
from src.ecauth.runtime.context import get_config


class JwtVerificationService:
    def _decode(
        self,
        token: str,
        key: Any,
        claims_options: dict[str, Any] | None = None,
        algorithms: list[str] | None = None,
        error: type[EcAuthError] = InvalidState,
    ) -> dict[str, Any]:
        cfg = get_config()
        try:
            claims = jwt.decode(token, key, claims_options=claims_options)
            if algorithms and claims.header.get("alg") not in algorithms:
                raise JoseError(f"disallowed algorithm {claims.header.get('alg')}")
            claims.validate(leeway=cfg.token.clock_skew_seconds)
        except (JoseError, ValueError) as exc:
            logger.debug("JWT rejected: {}", exc)
            raise error(f"JWT error: {exc}") from exc
        return dict(claims)

    def decode_state(self, token: str, secret: str | None = None) -> AuthorizationState:
        """Verify the HS256 state JWT minted at /authorization and parse it."""
        cfg = get_config()
        secret = secret or cfg.app.state_signing_secret
        if not secret:
            raise ServerError("state signing secret not configured")

        claims = self._decode(
            token,
            secret,
            claims_options={
                "iss": {"essential": True, "value": cfg.token.issuer},
                "exp": {"essential": True},
            },
            algorithms=["HS256"],
        )
        try:
            return AuthorizationState.model_validate(claims)
        except ValueError as exc:
            raise InvalidState(f"state payload malformed: {exc}") from exc

    def verify_id_token(
        self,
        token: str,
        jwk: dict[str, Any],
        audience: str,
        nonce: str | None = None,
    ) -> dict[str, Any]:
        """Verify an ID token against a client's published JWK."""
        cfg = get_config()
        claims_options: dict[str, Any] = {
            "iss": {"essential": True, "value": cfg.token.issuer},
            "aud": {"essential": True, "value": audience},
            "sub": {"essential": True},
            "exp": {"essential": True},
        }
        if nonce is not None:
            claims_options["nonce"] = {"essential": True, "value": nonce}
        return self._decode(
            token,
            JsonWebKey.import_key(jwk),
            claims_options=claims_options,
            algorithms=[cfg.token.signing_algorithm],
            error=Unauthorized,
        )
