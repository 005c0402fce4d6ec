"""Per-client signing material.

Every client owns exactly one RSA key pair. ID tokens are signed with the
requesting client's private key and its `kid`; there is no server-wide key.
"""

import threading
from dataclasses import dataclass, field
from typing import Any

from authlib.jose import JsonWebKey
from cachetools import TTLCache
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from loguru import logger
from sqlmodel import Session

from src.ecauth.core.errors import ServerError
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities.client import Client, RsaKeyPair, RsaKeyPairRepository
from src.ecauth.runtime.context import get_config


@dataclass(frozen=True)
class SigningKey:
    """The loaded signing key of one client."""

    client_id: str
    kid: str
    public_key_pem: str
    private_key_pem: str = field(repr=False)

    def public_jwk(self) -> dict[str, Any]:
        jwk = JsonWebKey.import_key(self.public_key_pem, {"kty": "RSA"}).as_dict()
        jwk.update({"kid": self.kid, "use": "sig", "alg": "RS256"})
        return jwk


def generate_rsa_key_pair(client_pk: str, key_size: int | None = None) -> RsaKeyPair:
    """Generate a fresh RSA key pair for a client; the kid is the JWK thumbprint."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size or get_config().token.rsa_key_size,
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("ascii")
    )
    kid = JsonWebKey.import_key(public_pem, {"kty": "RSA"}).thumbprint()
    return RsaKeyPair(
        client_pk=client_pk,
        kid=kid,
        public_key_pem=public_pem,
        private_key_pem=private_pem,
    )


class SigningKeyStore:
    """Looks up client signing keys, caching loaded keys for a short while.

    Cache entries are keyed by (tenant, client row id) so a key loaded for one
    tenant is never served to a lookup made under another.
    """

    def __init__(self, ttl_seconds: int | None = None, maxsize: int = 1024) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else get_config().token.key_cache_ttl_seconds
        self._cache: TTLCache[tuple[str, str], SigningKey] = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.Lock()

    def get_signing_key(
        self, session: Session, tenant: TenantScope, client: Client
    ) -> SigningKey:
        cache_key = (tenant.tenant_name, client.id)
        with self._lock:
            cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        key_pair = RsaKeyPairRepository(session, tenant).get_for_client(client.id)
        if key_pair is None:
            logger.bind(client_id=client.client_id).error("No signing key provisioned")
            raise ServerError(f"no signing key for client {client.client_id}")

        signing_key = SigningKey(
            client_id=client.client_id,
            kid=key_pair.kid,
            public_key_pem=key_pair.public_key_pem,
            private_key_pem=key_pair.private_key_pem,
        )
        with self._lock:
            self._cache[cache_key] = signing_key
        return signing_key

    def provision(
        self, session: Session, tenant: TenantScope, client: Client
    ) -> SigningKey:
        """Generate and persist the key pair of a newly registered client."""
        key_pair = RsaKeyPairRepository(session, tenant).add(generate_rsa_key_pair(client.id))
        logger.bind(client_id=client.client_id, kid=key_pair.kid).info(
            "Provisioned client signing key"
        )
        self.evict(tenant, client)
        return self.get_signing_key(session, tenant, client)

    def evict(self, tenant: TenantScope, client: Client) -> None:
        with self._lock:
            self._cache.pop((tenant.tenant_name, client.id), None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
