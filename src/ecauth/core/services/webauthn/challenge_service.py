"""WebAuthn challenge store.

A challenge is issued, then either consumed exactly once or left to expire.
Consumption is a conditional UPDATE on `consumed_at IS NULL`; a consumed
record stays consumed even if its expiry check fails afterwards.
"""

import secrets
import uuid
from datetime import timedelta

from loguru import logger
from sqlmodel import Session

from src.ecauth.core.errors import ChallengeExpired, ChallengeNotFound
from src.ecauth.core.security import b64url_encode
from src.ecauth.core.subject import SubjectType
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities._base import utc_now
from src.ecauth.entities.client import Client
from src.ecauth.entities.webauthn_challenge import (
    CeremonyType,
    WebAuthnChallenge,
    WebAuthnChallengeRepository,
)
from src.ecauth.runtime.context import get_config

CHALLENGE_BYTES = 32
_CEREMONY_USER_TYPES = {SubjectType.B2B.value, SubjectType.B2C.value}


class WebAuthnChallengeService:
    def __init__(self, session: Session, tenant: TenantScope) -> None:
        self._challenges = WebAuthnChallengeRepository(session, tenant)

    def issue_challenge(
        self,
        session_id: str | None,
        ceremony_type: CeremonyType | str,
        rp_id: str,
        user_type: str,
        client: Client,
        subject: str | None = None,
    ) -> WebAuthnChallenge:
        """Store a fresh challenge for `session_id`, replacing any earlier one."""
        try:
            ceremony_type = CeremonyType(ceremony_type)
        except ValueError as e:
            raise ValueError(f"unknown ceremony type {ceremony_type!r}") from e
        if user_type not in _CEREMONY_USER_TYPES:
            raise ValueError(f"unknown user type {user_type!r}")
        if (
            ceremony_type is CeremonyType.REGISTRATION
            and user_type == SubjectType.B2B.value
            and not subject
        ):
            raise ValueError("B2B registration requires a subject")

        now = utc_now()
        challenge = WebAuthnChallenge(
            challenge=b64url_encode(secrets.token_bytes(CHALLENGE_BYTES)),
            session_id=session_id or str(uuid.uuid4()),
            type=ceremony_type,
            user_type=user_type,
            subject=subject,
            rp_id=rp_id,
            client_pk=client.id,
            created_at=now,
            expires_at=now + timedelta(seconds=get_config().webauthn.challenge_ttl_seconds),
        )
        self._challenges.replace(challenge)
        logger.bind(
            session_id=challenge.session_id,
            ceremony=ceremony_type.value,
            client_id=client.client_id,
        ).debug("WebAuthn challenge issued")
        return challenge

    def consume_challenge(self, session_id: str) -> WebAuthnChallenge:
        """Mark the session's challenge consumed and return it.

        Raises:
            ChallengeNotFound: no live record for the session (absent or used)
            ChallengeExpired: the record was live but past its expiry
        """
        now = utc_now()
        if not session_id or self._challenges.mark_consumed(session_id, now) != 1:
            raise ChallengeNotFound("no unconsumed challenge", session_id=session_id)

        challenge = self._challenges.get_by_session_id(session_id)
        if challenge is None:
            raise ChallengeNotFound("consumed challenge vanished", session_id=session_id)
        if challenge.is_expired(now):
            raise ChallengeExpired("challenge consumed after expiry", session_id=session_id)
        return challenge

    def get_challenge(self, session_id: str) -> WebAuthnChallenge | None:
        """Peek at a live challenge without consuming it."""
        challenge = self._challenges.get_by_session_id(session_id)
        if challenge is None or challenge.consumed_at is not None or challenge.is_expired():
            return None
        return challenge

    def cleanup_expired(self) -> int:
        removed = self._challenges.delete_stale(utc_now())
        if removed:
            logger.info("Removed {} stale WebAuthn challenges", removed)
        return removed
