"""Authorization code ledger tests: issuance, single redemption, expiry and races."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, create_engine

from src.ecauth.core.errors import InvalidGrant, ServerError
from src.ecauth.core.services import AuthorizationCodeService, SigningKeyStore
from src.ecauth.core.services.database import DbManageService
from src.ecauth.core.subject import Subject, SubjectType
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities.authorization_code import AuthorizationCodeRepository
from src.ecauth.runtime.config.config_data import AuthorizationCodeConfig, ConfigData
from src.ecauth.runtime.context import with_context
from src.ecauth.runtime.seed import seed_tenant
from tests.fixtures.core import ACME_REDIRECT


def _b2b_subject(acme) -> Subject:
    return Subject.b2b(acme.b2b_user.subject)


class TestIssueCode:
    """Issuing codes binds them to a client, a redirect URI and one subject."""

    def test_issue_code_for_b2b_subject(self, code_service, acme):
        """A fresh code is unused, carries the subject and expires in the future."""
        code = code_service.issue_code(
            _b2b_subject(acme), acme.client, ACME_REDIRECT, scope="openid", client_state="s1"
        )

        assert len(code.code) >= 43
        assert code.b2b_subject == acme.b2b_user.subject
        assert code.ecauth_subject is None
        assert code.is_used is False
        assert not code.is_expired()
        assert code.subject.subject_type is SubjectType.B2B

    def test_codes_are_unique(self, code_service, acme):
        codes = {
            code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT).code
            for _ in range(20)
        }
        assert len(codes) == 20

    def test_unregistered_redirect_uri_rejected(self, code_service, acme):
        with pytest.raises(InvalidGrant):
            code_service.issue_code(
                _b2b_subject(acme), acme.client, "https://evil.test/callback"
            )

    def test_account_subjects_cannot_receive_codes(self, code_service, acme):
        with pytest.raises(ValueError):
            code_service.issue_code(Subject.account("acct-1"), acme.client, ACME_REDIRECT)


class TestRedeemCode:
    """Redemption succeeds once, for the right client and redirect URI, before expiry."""

    def test_redeem_returns_subject_scope_and_nonce(self, code_service, acme):
        code = code_service.issue_code(
            _b2b_subject(acme),
            acme.client,
            ACME_REDIRECT,
            scope="openid b2b",
            client_state="xyz",
            nonce="n-1",
        )

        redeemed = code_service.redeem_code(code.code, acme.client, ACME_REDIRECT)

        assert redeemed.subject == _b2b_subject(acme)
        assert redeemed.scope == "openid b2b"
        assert redeemed.state == "xyz"
        assert redeemed.nonce == "n-1"

    def test_second_redemption_fails(self, code_service, acme):
        """A code is single use even for the same legitimate client."""
        code = code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)
        code_service.redeem_code(code.code, acme.client, ACME_REDIRECT)

        with pytest.raises(InvalidGrant):
            code_service.redeem_code(code.code, acme.client, ACME_REDIRECT)

    def test_redirect_uri_mismatch_fails_and_leaves_code_unused(
        self, code_service, session, acme, acme_scope
    ):
        code = code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)

        with pytest.raises(InvalidGrant):
            code_service.redeem_code(code.code, acme.client, ACME_REDIRECT + "/other")

        stored = AuthorizationCodeRepository(session, acme_scope).get(code.code)
        assert stored.is_used is False

    def test_unknown_and_empty_codes_fail(self, code_service, acme):
        with pytest.raises(InvalidGrant):
            code_service.redeem_code("not-a-code", acme.client, ACME_REDIRECT)
        with pytest.raises(InvalidGrant):
            code_service.redeem_code("", acme.client, ACME_REDIRECT)

    def test_wrong_grant_type_fails(self, code_service, acme):
        code = code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)
        with pytest.raises(InvalidGrant):
            code_service.redeem_code(
                code.code, acme.client, ACME_REDIRECT, grant_type="client_credentials"
            )

    def test_expired_code_fails(self, code_service, acme):
        """Expiry is checked against the clock at redemption time."""
        with with_context(
            ConfigData(authorization_code=AuthorizationCodeConfig(lifetime_seconds=-1))
        ):
            code = code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)

        assert code.is_expired()
        with pytest.raises(InvalidGrant):
            code_service.redeem_code(code.code, acme.client, ACME_REDIRECT)

    def test_code_of_another_client_fails(self, session, key_store, code_service, acme, acme_scope):
        """A second client of the same tenant cannot redeem the first client's code."""
        other = seed_tenant(
            session,
            key_store,
            tenant_name=acme_scope.tenant_name,
            client_id="acme-mobile",
            redirect_uris=[ACME_REDIRECT],
        )
        code = code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)

        with pytest.raises(InvalidGrant):
            code_service.redeem_code(code.code, other.client, ACME_REDIRECT)

    def test_transient_failure_is_retried_once(self, code_service, session, acme):
        code = code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)
        session.commit()
        real_mark_used = AuthorizationCodeRepository.mark_used
        calls = []

        def flaky(repo, *args):
            calls.append(args)
            if len(calls) == 1:
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
            return real_mark_used(repo, *args)

        with patch.object(AuthorizationCodeRepository, "mark_used", flaky):
            redeemed = code_service.redeem_code(code.code, acme.client, ACME_REDIRECT)

        assert len(calls) == 2
        assert redeemed.subject == _b2b_subject(acme)

    def test_persistent_failure_surfaces_as_server_error(self, code_service, acme):
        code = code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)

        with patch.object(
            AuthorizationCodeRepository,
            "mark_used",
            side_effect=OperationalError("UPDATE", {}, Exception("disk I/O error")),
        ) as mark_used:
            with pytest.raises(ServerError):
                code_service.redeem_code(code.code, acme.client, ACME_REDIRECT)

        assert mark_used.call_count == 2

    def test_cleanup_removes_only_expired_codes(self, code_service, acme):
        live = code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)
        with with_context(
            ConfigData(authorization_code=AuthorizationCodeConfig(lifetime_seconds=-1))
        ):
            code_service.issue_code(_b2b_subject(acme), acme.client, ACME_REDIRECT)

        assert code_service.cleanup_expired() == 1
        assert code_service.redeem_code(live.code, acme.client, ACME_REDIRECT)


class TestConcurrentRedemption:
    """Parallel redemptions of one code against a file-backed database."""

    def test_exactly_one_winner(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        DbManageService(engine).create_all()
        scope = TenantScope("race")

        with Session(engine, expire_on_commit=False) as setup:
            seeded = seed_tenant(
                setup,
                SigningKeyStore(),
                tenant_name="race",
                client_id="race-client",
                redirect_uris=[ACME_REDIRECT],
                b2b_external_id="racer",
            )
            code = AuthorizationCodeService(setup, scope).issue_code(
                Subject.b2b(seeded.b2b_user.subject), seeded.client, ACME_REDIRECT
            )
            setup.commit()

        def redeem(_: int) -> str:
            with Session(engine, expire_on_commit=False) as session:
                try:
                    AuthorizationCodeService(session, scope).redeem_code(
                        code.code, seeded.client, ACME_REDIRECT
                    )
                    session.commit()
                    return "won"
                except InvalidGrant:
                    session.rollback()
                    return "lost"

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(redeem, range(16)))

        assert outcomes.count("won") == 1
        assert outcomes.count("lost") == 15
        engine.dispose()
