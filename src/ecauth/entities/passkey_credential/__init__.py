"""B2B passkey credential entity package."""

from .entity import B2BPasskeyCredential
from .repository import B2BPasskeyCredentialRepository
from .table import B2BPasskeyCredentialTable

__all__ = [
    "B2BPasskeyCredential",
    "B2BPasskeyCredentialRepository",
    "B2BPasskeyCredentialTable",
]
