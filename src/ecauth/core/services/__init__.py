"""Core services exports."""

# Database Service
from .authorization_code_service import AuthorizationCodeService
from .database.db_session import DbSessionService

# Federation
from .federation import ExternalIdentityService, FederationAdapter

# JWT Services
from .jwt.jwt_gen import JwtGeneratorService
from .jwt.jwt_verify import JwtVerificationService

# Keys
from .keys import SigningKeyStore
from .token_service import TokenService

# WebAuthn
from .webauthn import PasskeyService, WebAuthnChallengeService

__all__ = [
    "AuthorizationCodeService",
    "DbSessionService",
    "ExternalIdentityService",
    "FederationAdapter",
    "JwtGeneratorService",
    "JwtVerificationService",
    "PasskeyService",
    "SigningKeyStore",
    "TokenService",
    "WebAuthnChallengeService",
]
