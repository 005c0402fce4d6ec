"""Authorization code ledger: issue once, redeem at most once."""

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from src.ecauth.core.errors import InvalidGrant, ServerError
from src.ecauth.core.models import RedeemedCode
from src.ecauth.core.security import generate_secure_token
from src.ecauth.core.subject import Subject, SubjectType
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities._base import utc_now
from src.ecauth.entities.authorization_code import (
    AuthorizationCode,
    AuthorizationCodeRepository,
)
from src.ecauth.entities.client import Client
from src.ecauth.runtime.context import get_config

GRANT_TYPE_AUTHORIZATION_CODE = "authorization_code"


class AuthorizationCodeService:
    """Issues and redeems authorization codes for one tenant.

    Redemption is a single conditional UPDATE. Whoever flips `is_used` wins;
    every other caller, including concurrent ones, gets `InvalidGrant`.
    """

    def __init__(self, session: Session, tenant: TenantScope) -> None:
        self._session = session
        self._codes = AuthorizationCodeRepository(session, tenant)

    def issue_code(
        self,
        subject: Subject,
        client: Client,
        redirect_uri: str,
        scope: str | None = None,
        client_state: str | None = None,
        nonce: str | None = None,
    ) -> AuthorizationCode:
        if not client.allows_redirect_uri(redirect_uri):
            raise InvalidGrant(
                "redirect_uri is not registered for the client",
                client_id=client.client_id,
            )

        if subject.subject_type is SubjectType.B2C:
            subject_columns = {"ecauth_subject": subject.subject_id}
        elif subject.subject_type is SubjectType.B2B:
            subject_columns = {"b2b_subject": subject.subject_id}
        else:
            raise ValueError(f"{subject.subject_type} subjects cannot receive codes")

        now = utc_now()
        code = AuthorizationCode(
            code=generate_secure_token(32),
            client_pk=client.id,
            redirect_uri=redirect_uri,
            scope=scope,
            state=client_state,
            nonce=nonce,
            expires_at=now + timedelta(seconds=get_config().authorization_code.lifetime_seconds),
            created_at=now,
            **subject_columns,
        )
        self._codes.add(code)
        logger.bind(
            client_id=client.client_id,
            subject_type=subject.subject_type.value,
            code_prefix=code.code[:6],
        ).info("Authorization code issued")
        return code

    def redeem_code(
        self,
        code: str,
        client: Client,
        redirect_uri: str,
        grant_type: str = GRANT_TYPE_AUTHORIZATION_CODE,
    ) -> RedeemedCode:
        """Atomically consume `code` for `client` and `redirect_uri`.

        Must be the first write of its unit of work: a failed attempt is
        rolled back before the single retry.
        """
        if grant_type != GRANT_TYPE_AUTHORIZATION_CODE:
            raise InvalidGrant(f"unsupported grant_type {grant_type!r}")
        if not code:
            raise InvalidGrant("empty authorization code")

        now = utc_now()
        if not self._mark_used(code, client, redirect_uri, now):
            reason = self._diagnose(code, client, redirect_uri, now)
            logger.bind(
                client_id=client.client_id, code_prefix=code[:6], reason=reason
            ).info("Authorization code redemption refused")
            raise InvalidGrant(f"authorization code refused: {reason}")

        record = self._codes.get(code)
        if record is None:
            raise ServerError("redeemed authorization code could not be read back")

        logger.bind(client_id=client.client_id, code_prefix=code[:6]).info(
            "Authorization code redeemed"
        )
        return RedeemedCode(
            subject=record.subject,
            scope=record.scope,
            state=record.state,
            nonce=record.nonce,
        )

    def cleanup_expired(self) -> int:
        return self._codes.delete_expired(utc_now())

    def _mark_used(
        self, code: str, client: Client, redirect_uri: str, now: datetime
    ) -> bool:
        for attempt in (1, 2):
            try:
                return self._codes.mark_used(code, client.id, redirect_uri, now) == 1
            except OperationalError as e:
                self._session.rollback()
                if attempt == 2:
                    logger.bind(client_id=client.client_id).error(
                        "Authorization code update failed twice: {}", e
                    )
                    raise ServerError("authorization code update failed") from e
                logger.bind(client_id=client.client_id).warning(
                    "Transient failure redeeming authorization code, retrying: {}", e
                )
        return False

    def _diagnose(
        self, code: str, client: Client, redirect_uri: str, now: datetime
    ) -> str:
        """Why redemption failed. For the log only, never for the caller."""
        record = self._codes.get(code)
        if record is None:
            return "unknown_code"
        if record.is_used:
            return "already_used"
        if record.is_expired(now):
            return "expired"
        if record.client_pk != client.id:
            return "client_mismatch"
        if record.redirect_uri != redirect_uri:
            return "redirect_uri_mismatch"
        return "lost_race"
