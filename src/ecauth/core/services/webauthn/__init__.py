from .challenge_service import WebAuthnChallengeService
from .passkey_service import PasskeyService, load_attested_credential, to_json_safe

__all__ = [
    "PasskeyService",
    "WebAuthnChallengeService",
    "load_attested_credential",
    "to_json_safe",
]
