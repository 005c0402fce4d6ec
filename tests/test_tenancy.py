"""Tenant isolation: every read and write is confined to the resolved tenant."""

import pytest
from sqlmodel import Session

from src.ecauth.core.errors import ChallengeNotFound, InvalidGrant, TenantUnresolved, Unauthorized
from src.ecauth.core.services import (
    AuthorizationCodeService,
    PasskeyService,
    TokenService,
    WebAuthnChallengeService,
)
from src.ecauth.core.subject import Subject
from src.ecauth.core.tenancy import TenantScope, extract_tenant_name, resolve_tenant
from src.ecauth.entities.client import ClientRepository
from src.ecauth.entities.organization import OrganizationRepository
from src.ecauth.entities.user import B2BUser, B2BUserRepository
from src.ecauth.entities.webauthn_challenge import CeremonyType
from tests.fixtures.core import ACME_CLIENT_ID, ACME_REDIRECT, GLOBEX_CLIENT_ID
from tests.utils import RP_ID, SoftwareAuthenticator


class TestTenantResolution:
    """There is no default tenant; anything unresolved fails closed."""

    def test_known_tenant_resolves(self, session, acme):
        assert resolve_tenant(session, "acme") == TenantScope("acme")

    @pytest.mark.parametrize("tenant_name", [None, "", "initech"])
    def test_missing_or_unknown_tenant_fails(self, session, acme, tenant_name):
        with pytest.raises(TenantUnresolved):
            resolve_tenant(session, tenant_name)

    def test_empty_scope_is_rejected(self):
        with pytest.raises(TenantUnresolved):
            TenantScope("  ")

    def test_repository_requires_scope(self, session: Session):
        with pytest.raises(TenantUnresolved):
            ClientRepository(session, "acme")

    def test_header_wins_over_host(self):
        headers = {"X-Tenant-Name": " acme ", "host": "globex.ecauth.test"}
        assert extract_tenant_name(headers, "X-Tenant-Name", resolve_from_host=True) == "acme"

    def test_host_fallback_only_when_enabled(self):
        headers = {"host": "globex.ecauth.test:8443"}
        assert extract_tenant_name(headers, "X-Tenant-Name") is None
        assert extract_tenant_name(headers, "X-Tenant-Name", resolve_from_host=True) == "globex"
        assert extract_tenant_name({"host": "localhost"}, "X-Tenant-Name", True) is None


class TestCrossTenantReads:
    def test_clients_of_other_tenants_are_invisible(self, session, acme_scope, globex_scope):
        assert ClientRepository(session, acme_scope).get_by_client_id(ACME_CLIENT_ID)
        assert ClientRepository(session, globex_scope).get_by_client_id(ACME_CLIENT_ID) is None
        assert ClientRepository(session, acme_scope).get_by_client_id(GLOBEX_CLIENT_ID) is None

    def test_organization_is_the_callers_own(self, session, acme, globex_scope):
        assert OrganizationRepository(session, globex_scope).get_current().tenant_name == "globex"

    def test_b2b_users_of_other_tenants_are_invisible(self, session, acme, globex_scope):
        users = B2BUserRepository(session, globex_scope)
        assert users.get_by_subject(acme.b2b_user.subject) is None
        assert users.list_subjects_by_organization(acme.organization.id) == []
        assert users.count_by_organization(acme.organization.id) == 0

    def test_code_of_another_tenant_cannot_be_redeemed(
        self, session, acme, acme_scope, globex_scope
    ):
        code = AuthorizationCodeService(session, acme_scope).issue_code(
            Subject.b2b(acme.b2b_user.subject), acme.client, ACME_REDIRECT
        )

        with pytest.raises(InvalidGrant):
            AuthorizationCodeService(session, globex_scope).redeem_code(
                code.code, acme.client, ACME_REDIRECT
            )
        # Still redeemable inside its own tenant
        assert AuthorizationCodeService(session, acme_scope).redeem_code(
            code.code, acme.client, ACME_REDIRECT
        )

    def test_access_token_of_another_tenant_is_unknown(
        self, session, key_store, jwt_generator, acme, acme_scope, globex_scope
    ):
        response = TokenService(session, acme_scope, key_store, jwt_generator).mint_tokens(
            Subject.b2b(acme.b2b_user.subject), acme.client
        )

        with pytest.raises(Unauthorized):
            TokenService(session, globex_scope, key_store, jwt_generator).validate_bearer_token(
                response.access_token
            )

    def test_challenge_of_another_tenant_cannot_be_consumed(
        self, session, acme, acme_scope, globex_scope
    ):
        issued = WebAuthnChallengeService(session, acme_scope).issue_challenge(
            None, CeremonyType.AUTHENTICATION, RP_ID, "b2b", acme.client
        )

        with pytest.raises(ChallengeNotFound):
            WebAuthnChallengeService(session, globex_scope).consume_challenge(issued.session_id)
        assert WebAuthnChallengeService(session, acme_scope).get_challenge(issued.session_id)

    def test_passkey_of_another_tenant_is_not_found(self, session, acme, globex, acme_scope, globex_scope):
        authenticator = SoftwareAuthenticator()
        acme_passkeys = PasskeyService(session, acme_scope)
        ceremony = acme_passkeys.create_registration_options(
            acme.client, RP_ID, acme.b2b_user.subject
        )
        acme_passkeys.verify_registration(
            acme.client, ceremony.session_id, authenticator.register(ceremony.options)
        )

        globex_passkeys = PasskeyService(session, globex_scope)
        assert globex_passkeys.list_credentials(acme.b2b_user.subject) == []
        assert globex_passkeys.delete_credential(
            acme.b2b_user.subject, authenticator.credential_id
        ) is False
        assert acme_passkeys.count_credentials(acme.b2b_user.subject) == 1


class TestCrossTenantWrites:
    def test_code_for_foreign_client_is_refused(self, session, acme, globex_scope):
        with pytest.raises(ValueError):
            AuthorizationCodeService(session, globex_scope).issue_code(
                Subject.b2b(acme.b2b_user.subject), acme.client, ACME_REDIRECT
            )

    def test_user_in_foreign_organization_is_refused(self, session, acme, globex_scope):
        with pytest.raises(ValueError):
            B2BUserRepository(session, globex_scope).create(
                B2BUser(external_id="mallory", organization_id=acme.organization.id)
            )

    def test_challenge_for_foreign_client_is_refused(self, session, acme, globex_scope):
        with pytest.raises(ValueError):
            WebAuthnChallengeService(session, globex_scope).issue_challenge(
                None, CeremonyType.AUTHENTICATION, RP_ID, "b2b", acme.client
            )

    def test_foreign_tenant_cannot_revoke(
        self, session, key_store, jwt_generator, acme, acme_scope, globex_scope
    ):
        acme_tokens = TokenService(session, acme_scope, key_store, jwt_generator)
        response = acme_tokens.mint_tokens(Subject.b2b(acme.b2b_user.subject), acme.client)

        globex_tokens = TokenService(session, globex_scope, key_store, jwt_generator)
        assert globex_tokens.revoke_access_token(response.access_token) is False
        assert acme_tokens.validate_bearer_token(response.access_token)
