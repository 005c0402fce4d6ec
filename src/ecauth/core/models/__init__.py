from .oauth import (
    AuthorizationState,
    CeremonyOptions,
    RedeemedCode,
    TokenResponse,
    ValidatedToken,
)

__all__ = [
    "AuthorizationState",
    "CeremonyOptions",
    "RedeemedCode",
    "TokenResponse",
    "ValidatedToken",
]
