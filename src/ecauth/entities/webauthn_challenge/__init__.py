"""WebAuthn challenge entity package."""

from .entity import CeremonyType, WebAuthnChallenge
from .repository import WebAuthnChallengeRepository
from .table import WebAuthnChallengeTable

__all__ = [
    "CeremonyType",
    "WebAuthnChallenge",
    "WebAuthnChallengeRepository",
    "WebAuthnChallengeTable",
]
