"""Passkey ceremony engine for B2B subjects.

Options are produced and responses verified with `fido2.server.Fido2Server`,
one server per relying-party id. The ceremony challenge itself lives in the
challenge store, so any process can finish a ceremony another one started.
"""

import uuid
from collections.abc import Mapping
from enum import Enum
from typing import Any

from cryptography.exceptions import InvalidSignature
from fido2 import cbor
from fido2.cose import CoseKey
from fido2.rpid import verify_rp_id
from fido2.server import Fido2Server
from fido2.utils import websafe_decode, websafe_encode
from fido2.webauthn import (
    AttestationConveyancePreference,
    AttestedCredentialData,
    AuthenticatorAttachment,
    AuthenticatorData,
    CollectedClientData,
    PublicKeyCredentialRpEntity,
    PublicKeyCredentialUserEntity,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)
from loguru import logger
from sqlmodel import Session

from src.ecauth.core.errors import (
    AssertionInvalid,
    AttestationInvalid,
    ChallengeMismatch,
    ChallengeNotFound,
    CredentialNotFound,
    EcAuthError,
    PossibleCloneDetected,
    RpIdNotAllowed,
)
from src.ecauth.core.models import CeremonyOptions
from src.ecauth.core.security import b64url_encode, constant_time_equals
from src.ecauth.core.services.webauthn.challenge_service import WebAuthnChallengeService
from src.ecauth.core.subject import SubjectType
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities._base import utc_now
from src.ecauth.entities.client import Client
from src.ecauth.entities.organization import OrganizationRepository
from src.ecauth.entities.passkey_credential import (
    B2BPasskeyCredential,
    B2BPasskeyCredentialRepository,
)
from src.ecauth.entities.user import B2BUserRepository
from src.ecauth.entities.webauthn_challenge import CeremonyType, WebAuthnChallenge
from src.ecauth.runtime.context import get_config

_USER_VERIFICATION = UserVerificationRequirement.PREFERRED
_MALFORMED = (KeyError, TypeError, ValueError)


def to_json_safe(value: Any) -> Any:
    """Recursively turn fido2 option objects into JSON-friendly data."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return b64url_encode(bytes(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {key: to_json_safe(val) for key, val in value.items() if val is not None}
    if isinstance(value, (list, tuple, set)):
        return [to_json_safe(item) for item in value]
    return value


def load_attested_credential(credential: B2BPasskeyCredential) -> AttestedCredentialData:
    """Rebuild the fido2 view of a stored credential."""
    aaguid = uuid.UUID(credential.aaguid).bytes if credential.aaguid else bytes(16)
    public_key = CoseKey.parse(cbor.decode(credential.public_key))
    return AttestedCredentialData.create(aaguid, credential.credential_id, public_key)


class PasskeyService:
    """Registration, authentication and management of B2B passkeys in one tenant."""

    def __init__(self, session: Session, tenant: TenantScope) -> None:
        self._session = session
        self._tenant = tenant
        self._challenges = WebAuthnChallengeService(session, tenant)
        self._credentials = B2BPasskeyCredentialRepository(session, tenant)
        self._users = B2BUserRepository(session, tenant)

    # ------------------------------------------------------------------ options
    def create_registration_options(
        self,
        client: Client,
        rp_id: str,
        b2b_subject: str,
        display_name: str | None = None,
    ) -> CeremonyOptions:
        self._require_rp_id(client, rp_id)
        user = self._users.get_by_subject(b2b_subject)
        if user is None:
            raise CredentialNotFound("unknown B2B subject", subject=b2b_subject)

        challenge = self._challenges.issue_challenge(
            None,
            CeremonyType.REGISTRATION,
            rp_id,
            SubjectType.B2B.value,
            client,
            subject=user.subject,
        )
        existing = [load_attested_credential(c) for c in self._credentials.list_by_subject(user.subject)]
        options, _ = self._server(rp_id).register_begin(
            PublicKeyCredentialUserEntity(
                name=display_name or user.external_id,
                id=user.subject.encode("utf-8"),
                display_name=display_name or user.external_id,
            ),
            existing,
            resident_key_requirement=ResidentKeyRequirement.PREFERRED,
            user_verification=_USER_VERIFICATION,
            authenticator_attachment=AuthenticatorAttachment.PLATFORM,
            challenge=challenge.challenge_bytes,
        )
        return CeremonyOptions(
            session_id=challenge.session_id, options=self._options_json(options)
        )

    def create_authentication_options(
        self, client: Client, rp_id: str, b2b_subject: str | None = None
    ) -> CeremonyOptions:
        self._require_rp_id(client, rp_id)
        allowed: list[AttestedCredentialData] = []
        if b2b_subject:
            if self._users.get_by_subject(b2b_subject) is None:
                raise CredentialNotFound("unknown B2B subject", subject=b2b_subject)
            allowed = [load_attested_credential(c) for c in self._credentials.list_by_subject(b2b_subject)]

        challenge = self._challenges.issue_challenge(
            None,
            CeremonyType.AUTHENTICATION,
            rp_id,
            SubjectType.B2B.value,
            client,
            subject=b2b_subject,
        )
        options, _ = self._server(rp_id).authenticate_begin(
            allowed or None,
            user_verification=_USER_VERIFICATION,
            challenge=challenge.challenge_bytes,
        )
        return CeremonyOptions(
            session_id=challenge.session_id, options=self._options_json(options)
        )

    # ------------------------------------------------------------ verification
    def verify_registration(
        self,
        client: Client,
        session_id: str,
        response: Mapping[str, Any],
        device_name: str | None = None,
    ) -> B2BPasskeyCredential:
        challenge = self._consume(client, session_id, CeremonyType.REGISTRATION)
        self._check_client_data(challenge, response, AttestationInvalid)

        try:
            auth_data = self._server(challenge.rp_id).register_complete(
                self._state(challenge), response
            )
        except _MALFORMED as e:
            raise AttestationInvalid(f"attestation rejected: {e}", session_id=session_id) from e

        credential_data = auth_data.credential_data
        if credential_data is None:
            raise AttestationInvalid("no attested credential data", session_id=session_id)
        credential_id = bytes(credential_data.credential_id)
        if self._credentials.credential_id_taken(credential_id):
            raise AttestationInvalid(
                "credential id already registered", session_id=session_id
            )

        transports = response.get("response", {}).get("transports") or []
        credential = self._credentials.add(
            B2BPasskeyCredential(
                b2b_subject=challenge.subject,
                credential_id=credential_id,
                public_key=cbor.encode(dict(credential_data.public_key)),
                sign_count=auth_data.counter,
                aaguid=str(uuid.UUID(bytes=bytes(credential_data.aaguid))),
                device_name=device_name,
                transports=[str(t) for t in transports],
            )
        )
        logger.bind(
            credential_id=credential.credential_id_b64,
            session_id=session_id,
            client_id=client.client_id,
        ).info("Passkey registered")
        return credential

    def verify_authentication(
        self, client: Client, session_id: str, response: Mapping[str, Any]
    ) -> B2BPasskeyCredential:
        challenge = self._consume(client, session_id, CeremonyType.AUTHENTICATION)

        try:
            raw_id = websafe_decode(response.get("rawId") or response["id"])
        except _MALFORMED as e:
            raise AssertionInvalid(f"malformed credential id: {e}", session_id=session_id) from e

        credential = self._credentials.get_by_credential_id(raw_id)
        if credential is None:
            raise CredentialNotFound("unknown credential", session_id=session_id)
        if challenge.subject and challenge.subject != credential.b2b_subject:
            raise AssertionInvalid("credential belongs to another subject", session_id=session_id)
        self._check_user_handle(credential, response, session_id)
        self._check_client_data(challenge, response, AssertionInvalid)

        if credential.clone_suspected_at is not None:
            self._log_clone(credential, session_id, "credential already flagged")
            raise PossibleCloneDetected(
                "credential is flagged as cloned",
                credential_id=credential.credential_id_b64,
                session_id=session_id,
            )

        try:
            self._server(challenge.rp_id).authenticate_complete(
                self._state(challenge), [load_attested_credential(credential)], response
            )
            new_count = AuthenticatorData(
                websafe_decode(response["response"]["authenticatorData"])
            ).counter
        except (*_MALFORMED, InvalidSignature) as e:
            raise AssertionInvalid(f"assertion rejected: {e}", session_id=session_id) from e

        now = utc_now()
        if self._credentials.advance_counter(credential.id, new_count, now) != 1:
            self._credentials.flag_clone(credential.id, now)
            self._log_clone(
                credential,
                session_id,
                "signature counter did not advance",
                stored_count=credential.sign_count,
                asserted_count=new_count,
            )
            raise PossibleCloneDetected(
                "signature counter replay",
                credential_id=credential.credential_id_b64,
                session_id=session_id,
            )

        logger.bind(
            credential_id=credential.credential_id_b64,
            session_id=session_id,
            client_id=client.client_id,
        ).info("Passkey assertion verified")
        return credential.model_copy(update={"sign_count": new_count, "last_used_at": now})

    # -------------------------------------------------------------- management
    def list_credentials(self, b2b_subject: str) -> list[B2BPasskeyCredential]:
        return self._credentials.list_by_subject(b2b_subject)

    def delete_credential(self, b2b_subject: str, credential_id: bytes) -> bool:
        deleted = self._credentials.delete(b2b_subject, credential_id) == 1
        if deleted:
            logger.bind(credential_id=b64url_encode(credential_id)).info("Passkey deleted")
        return deleted

    def count_credentials(self, b2b_subject: str) -> int:
        return self._credentials.count_by_subject(b2b_subject)

    # ---------------------------------------------------------------- internals
    def _require_rp_id(self, client: Client, rp_id: str) -> None:
        if not client.allows_rp_id(rp_id):
            raise RpIdNotAllowed(
                "rp_id not in client allow-list", client_id=client.client_id, rp_id=rp_id
            )

    def _server(self, rp_id: str) -> Fido2Server:
        organization = OrganizationRepository(self._session, self._tenant).get_current()
        rp_name = organization.name if organization else get_config().webauthn.default_rp_name
        allowed_origins = set(get_config().webauthn.allowed_origins)

        def verify_origin(origin: str) -> bool:
            return origin in allowed_origins or verify_rp_id(rp_id, origin)

        return Fido2Server(
            PublicKeyCredentialRpEntity(name=rp_name, id=rp_id),
            attestation=AttestationConveyancePreference.NONE,
            verify_origin=verify_origin,
        )

    def _options_json(self, options: Any) -> dict[str, Any]:
        data = to_json_safe(dict(options))
        data.setdefault("publicKey", {})["timeout"] = get_config().webauthn.timeout_ms
        return data

    def _state(self, challenge: WebAuthnChallenge) -> dict[str, Any]:
        return {
            "challenge": websafe_encode(challenge.challenge_bytes),
            "user_verification": _USER_VERIFICATION,
        }

    def _consume(
        self, client: Client, session_id: str, ceremony: CeremonyType
    ) -> WebAuthnChallenge:
        challenge = self._challenges.consume_challenge(session_id)
        if challenge.type != ceremony or challenge.client_pk != client.id:
            raise ChallengeNotFound(
                "challenge belongs to another ceremony or client", session_id=session_id
            )
        return challenge

    def _check_client_data(
        self,
        challenge: WebAuthnChallenge,
        response: Mapping[str, Any],
        malformed: type[EcAuthError],
    ) -> None:
        try:
            client_data = CollectedClientData(
                websafe_decode(response["response"]["clientDataJSON"])
            )
            received = bytes(client_data.challenge)
        except _MALFORMED as e:
            raise malformed(f"unreadable client data: {e}") from e
        if not constant_time_equals(received, challenge.challenge_bytes):
            raise ChallengeMismatch(
                "client data challenge differs", session_id=challenge.session_id
            )

    def _check_user_handle(
        self, credential: B2BPasskeyCredential, response: Mapping[str, Any], session_id: str
    ) -> None:
        user_handle = response.get("response", {}).get("userHandle")
        if not user_handle:
            return
        try:
            handle = websafe_decode(user_handle)
        except _MALFORMED as e:
            raise AssertionInvalid(f"malformed user handle: {e}", session_id=session_id) from e
        if not constant_time_equals(handle, credential.b2b_subject.encode("utf-8")):
            raise AssertionInvalid("user handle does not match owner", session_id=session_id)

    def _log_clone(
        self, credential: B2BPasskeyCredential, session_id: str, reason: str, **extra: Any
    ) -> None:
        logger.bind(
            security_event=True,
            tenant=self._tenant.tenant_name,
            credential_id=credential.credential_id_b64,
            session_id=session_id,
            **extra,
        ).warning("passkey.clone_suspected: {}", reason)
