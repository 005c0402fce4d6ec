import hashlib
import os
from typing import Any

import httpx
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from fido2.cose import ES256
from fido2.utils import websafe_decode, websafe_encode
from fido2.webauthn import (
    AttestationObject,
    AttestedCredentialData,
    AuthenticatorData,
    CollectedClientData,
)

RP_ID = "localhost"
ORIGIN = "https://localhost"


class SoftwareAuthenticator:
    """A platform authenticator in memory: one ES256 credential, 'none' attestation."""

    def __init__(
        self,
        rp_id: str = RP_ID,
        origin: str = ORIGIN,
        counts: bool = True,
    ) -> None:
        self.rp_id = rp_id
        self.origin = origin
        self.counts = counts
        self.sign_count = 0
        self.credential_id = os.urandom(32)
        self._private_key = ec.generate_private_key(ec.SECP256R1())

    @property
    def credential_id_b64(self) -> str:
        return websafe_encode(self.credential_id)

    def _rp_id_hash(self) -> bytes:
        return hashlib.sha256(self.rp_id.encode("utf-8")).digest()

    def register(self, options: dict[str, Any], challenge: bytes | None = None) -> dict[str, Any]:
        """Answer registration options with an attestation response."""
        client_data = CollectedClientData.create(
            type="webauthn.create",
            challenge=challenge or websafe_decode(options["publicKey"]["challenge"]),
            origin=self.origin,
        )
        credential_data = AttestedCredentialData.create(
            bytes(16),
            self.credential_id,
            ES256.from_cryptography_key(self._private_key.public_key()),
        )
        auth_data = AuthenticatorData.create(
            self._rp_id_hash(),
            AuthenticatorData.FLAG.UP | AuthenticatorData.FLAG.UV | AuthenticatorData.FLAG.AT,
            self.sign_count,
            credential_data,
        )
        attestation_object = AttestationObject.create("none", auth_data, {})
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "response": {
                "clientDataJSON": websafe_encode(client_data),
                "attestationObject": websafe_encode(attestation_object),
                "transports": ["internal"],
            },
        }

    def authenticate(
        self,
        options: dict[str, Any],
        user_handle: bytes | None = None,
        sign_count: int | None = None,
    ) -> dict[str, Any]:
        """Sign the options' challenge; the counter advances unless `sign_count` pins it."""
        if sign_count is None:
            if self.counts:
                self.sign_count += 1
            sign_count = self.sign_count
        client_data = CollectedClientData.create(
            type="webauthn.get",
            challenge=websafe_decode(options["publicKey"]["challenge"]),
            origin=self.origin,
        )
        auth_data = AuthenticatorData.create(
            self._rp_id_hash(),
            AuthenticatorData.FLAG.UP | AuthenticatorData.FLAG.UV,
            sign_count,
        )
        signature = self._private_key.sign(
            bytes(auth_data) + client_data.hash, ec.ECDSA(hashes.SHA256())
        )
        response: dict[str, Any] = {
            "clientDataJSON": websafe_encode(client_data),
            "authenticatorData": websafe_encode(auth_data),
            "signature": websafe_encode(signature),
        }
        if user_handle is not None:
            response["userHandle"] = websafe_encode(user_handle)
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "response": response,
        }


class MockUpstream:
    """Upstream OIDC provider behind `httpx.MockTransport`."""

    def __init__(self, subject: str = "upstream-user-1", email: str | None = "carol@example.com"):
        self.subject = subject
        self.email = email
        self.token_status = 200
        self.refresh_token: str | None = "upstream-refresh"
        self.requests: list[httpx.Request] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/token"):
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            body: dict[str, Any] = {
                "access_token": f"upstream-access-{len(self.requests)}",
                "token_type": "Bearer",
                "expires_in": 3600,
            }
            if self.refresh_token:
                body["refresh_token"] = self.refresh_token
            return httpx.Response(200, json=body)
        if request.url.path.endswith("/userinfo"):
            claims: dict[str, Any] = {"sub": self.subject}
            if self.email:
                claims["email"] = self.email
            return httpx.Response(200, json=claims)
        return httpx.Response(404)
