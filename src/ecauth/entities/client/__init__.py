"""Client entity package.

- Client: OAuth client application with its redirect URIs and RP allow-list
- RsaKeyPair: the signing key owned by exactly one client
"""

from .entity import Client, RsaKeyPair
from .repository import ClientRepository, RsaKeyPairRepository
from .table import ClientTable, RedirectUriTable, RsaKeyPairTable

__all__ = [
    "Client",
    "ClientRepository",
    "ClientTable",
    "RedirectUriTable",
    "RsaKeyPair",
    "RsaKeyPairRepository",
    "RsaKeyPairTable",
]
