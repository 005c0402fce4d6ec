"""Infrastructure tests: configuration, context overrides, sessions, logging and the CLI."""

import json
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from loguru import logger
from sqlmodel import Session
from typer.testing import CliRunner

from src.cli import app as cli_app
from src.ecauth.api.utils.app_startup import configure_logging
from src.ecauth.core.errors import InvalidGrant
from src.ecauth.core.security import (
    b64url_decode,
    b64url_encode,
    constant_time_equals,
    generate_secure_token,
    hash_email,
)
from src.ecauth.core.tenancy import TenantScope
from src.ecauth.entities.client import ClientRepository
from src.ecauth.entities.organization import (
    Organization,
    find_organization_by_tenant,
    register_organization,
)
from src.ecauth.runtime.config.config_data import (
    ConfigData,
    LoggingConfig,
    TokenConfig,
    WebAuthnConfig,
)
from src.ecauth.runtime.config.config_template import load_templated_yaml, substitute_env_vars
from src.ecauth.runtime.context import get_config, with_context
from tests.fixtures.core import ACME, ACME_CLIENT_ID

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config.yaml"

PROVIDER_TEMPLATE = """
      {name}:
        enabled: {enabled}
        dev_only: {dev_only}
        issuer: https://{name}.test
        authorization_endpoint: https://{name}.test/authorize
        token_endpoint: https://{name}.test/token
        client_id: ecauth
        client_secret: secret
        redirect_uri: https://ecauth.test/auth/callback"""


def _write_config(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(body)
    return path


def _providers_config(tmp_path: Path) -> Path:
    providers = "".join(
        PROVIDER_TEMPLATE.format(name=name, enabled=enabled, dev_only=dev_only)
        for name, enabled, dev_only in [
            ("corp", "true", "false"),
            ("retired", "false", "false"),
            ("mock", "true", "true"),
        ]
    )
    return _write_config(
        tmp_path,
        "config:\n"
        "  app:\n"
        "    environment: ${APP_ENVIRONMENT:-development}\n"
        "  oidc:\n"
        "    providers:" + providers + "\n",
    )


class TestEnvironmentSubstitution:
    """Placeholders in config.yaml are resolved from the environment."""

    def test_default_used_when_unset(self):
        """Test ${VAR:-default} falls back to the default."""
        with patch.dict(os.environ, {}, clear=True):
            assert substitute_env_vars("url: ${DB_URL:-sqlite://}") == "url: sqlite://"

    def test_environment_wins_over_default(self):
        with patch.dict(os.environ, {"DB_URL": "postgresql://db/ecauth"}, clear=True):
            assert substitute_env_vars("${DB_URL:-sqlite://}") == "postgresql://db/ecauth"

    def test_empty_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert substitute_env_vars('secret: "${SECRET:-}"') == 'secret: ""'

    def test_required_variable_missing(self):
        """Test ${VAR} raises when the variable is unset."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="STATE_SECRET"):
                substitute_env_vars("${STATE_SECRET}")

    def test_required_variable_with_message(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="set a signing secret"):
                substitute_env_vars("${STATE_SECRET:?set a signing secret}")

        with patch.dict(os.environ, {"STATE_SECRET": "s3cret"}, clear=True):
            assert substitute_env_vars("${STATE_SECRET:?set a signing secret}") == "s3cret"

    def test_comment_lines_are_not_substituted(self):
        """Test placeholder syntax documented in a comment needs no variable."""
        text = "# Values support ${VAR} substitution.\n  # ${OTHER:?never read}\nport: ${PORT:-8000}\n"
        with patch.dict(os.environ, {}, clear=True):
            assert substitute_env_vars(text) == (
                "# Values support ${VAR} substitution.\n  # ${OTHER:?never read}\nport: 8000\n"
            )


class TestConfigLoading:
    def test_disabled_and_dev_only_providers(self, tmp_path):
        """Test disabled providers are dropped, and dev-only ones only outside development."""
        path = _providers_config(tmp_path)

        with patch.dict(os.environ, {"APP_ENVIRONMENT": "development"}):
            assert set(load_templated_yaml(path).oidc.providers) == {"corp", "mock"}

        with patch.dict(os.environ, {"APP_ENVIRONMENT": "production"}):
            config = load_templated_yaml(path)
        assert set(config.oidc.providers) == {"corp"}
        assert config.app.environment == "production"

    def test_environment_prefixed_overrides(self, tmp_path):
        """Test PRODUCTION_<NAME> overrides <NAME> when running in production."""
        path = _write_config(
            tmp_path,
            "config:\n  token:\n    issuer: ${TOKEN_ISSUER:-https://dev.ecauth.test}\n",
        )
        env = {
            "APP_ENVIRONMENT": "production",
            "TOKEN_ISSUER": "https://staging.ecauth.test",
            "PRODUCTION_TOKEN_ISSUER": "https://ecauth.test",
        }
        with patch.dict(os.environ, env):
            assert load_templated_yaml(path).token.issuer == "https://ecauth.test"

    def test_empty_file(self, tmp_path):
        path = _write_config(tmp_path, "")
        with pytest.raises(ValueError):
            load_templated_yaml(path)

    def test_invalid_value(self, tmp_path):
        path = _write_config(tmp_path, "config:\n  app:\n    environment: staging\n")
        with patch.dict(os.environ, {"APP_ENVIRONMENT": "development"}):
            with pytest.raises(ValueError, match="Invalid configuration"):
                load_templated_yaml(path)

    def test_repository_config_loads_with_clean_environment(self):
        """Test the shipped config.yaml needs no environment variables."""
        with patch.dict(os.environ, {}, clear=True):
            config = load_templated_yaml(REPO_CONFIG)

        assert config.app.environment == "development"
        assert config.app.state_signing_secret
        assert config.tenancy.header_name == "X-Tenant-Name"
        assert "mock-openid-provider" in config.oidc.providers
        assert "google" not in config.oidc.providers

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_templated_yaml(tmp_path / "absent.yaml")

    def test_sqlite_connection_string_is_unchanged(self):
        config = ConfigData()
        assert config.database.connection_string == config.database.url


class TestContextOverrides:
    """with_context overlays explicitly set fields and restores on exit."""

    def test_override_merges_and_restores(self):
        before = get_config()

        with with_context(ConfigData(token=TokenConfig(access_token_lifetime_seconds=5))):
            current = get_config()
            assert current.token.access_token_lifetime_seconds == 5
            assert current.token.issuer == before.token.issuer
            assert current.webauthn == before.webauthn

        assert get_config() is before

    def test_nested_overrides(self):
        with with_context(ConfigData(webauthn=WebAuthnConfig(challenge_ttl_seconds=30))):
            with with_context(ConfigData(token=TokenConfig(id_token_lifetime_seconds=10))):
                assert get_config().webauthn.challenge_ttl_seconds == 30
                assert get_config().token.id_token_lifetime_seconds == 10
            assert get_config().token.id_token_lifetime_seconds != 10

    def test_none_is_a_no_op(self):
        before = get_config()
        with with_context(None):
            assert get_config() is before

    def test_rejects_other_types(self):
        with pytest.raises(ValueError):
            with with_context({"token": {}}):
                pass


class TestSecurityPrimitives:
    def test_secure_tokens_are_unpadded_and_unique(self):
        tokens = {generate_secure_token() for _ in range(50)}

        assert len(tokens) == 50
        assert all("=" not in t and len(t) == 43 for t in tokens)

    def test_b64url_tolerates_missing_padding(self):
        raw = b"\x00\x01\xfe\xff"
        assert b64url_encode(raw) == "AAH-_w"
        assert b64url_decode("AAH-_w") == raw

    @pytest.mark.parametrize(
        ("left", "right", "expected"),
        [
            ("secret", "secret", True),
            ("secret", "Secret", False),
            (b"secret", "secret", True),
            (None, "secret", False),
            ("secret", None, False),
        ],
    )
    def test_constant_time_equals(self, left, right, expected):
        assert constant_time_equals(left, right) is expected

    def test_email_hash_is_normalised(self):
        assert hash_email(" Carol@Example.COM ") == hash_email("carol@example.com")
        assert hash_email("carol@example.com") != hash_email("dave@example.com")


class TestSessionScope:
    """Unit-of-work semantics of DbSessionService.session_scope."""

    def _register(self, session: Session, tenant: str) -> None:
        register_organization(
            session, Organization(code=tenant, name=tenant.title(), tenant_name=tenant)
        )

    def test_commits_on_success(self, db_service, session):
        with db_service.session_scope() as db:
            self._register(db, "initech")

        assert find_organization_by_tenant(session, "initech") is not None

    def test_rolls_back_on_failure(self, db_service, session):
        with pytest.raises(RuntimeError):
            with db_service.session_scope() as db:
                self._register(db, "initech")
                raise RuntimeError("boom")

        assert find_organization_by_tenant(session, "initech") is None

    def test_commits_expected_errors(self, db_service, session):
        """Test writes persist when the error is listed in commit_on."""
        with pytest.raises(InvalidGrant):
            with db_service.session_scope(commit_on=(InvalidGrant,)) as db:
                self._register(db, "initech")
                raise InvalidGrant("rejected after a write")

        assert find_organization_by_tenant(session, "initech") is not None

    def test_health_check(self, db_service):
        assert db_service.health_check() is True

    def test_health_check_failure(self, db_service):
        with patch(
            "src.ecauth.core.services.database.db_session.text",
            side_effect=RuntimeError("down"),
        ):
            assert db_service.health_check() is False

    def test_pool_status(self, db_service):
        status = db_service.get_pool_status()
        assert set(status) == {"size", "checked_in", "checked_out", "overflow"}


class TestLogging:
    def test_security_events_get_their_own_file(self, tmp_path):
        """Test only security events reach the security log, as JSON."""
        app_log = tmp_path / "logs" / "ecauth.log"
        security_log = tmp_path / "logs" / "security.log"
        config = ConfigData(
            logging=LoggingConfig(
                level="INFO", format="json", file=str(app_log), security_file=str(security_log)
            )
        )

        try:
            with with_context(config):
                configure_logging()
                logger.info("request.start")
                logger.bind(security_event=True, tenant="acme").warning(
                    "passkey.clone_suspected: signature counter did not advance"
                )
                # Drains the enqueued file sinks
                logger.remove()
        finally:
            logger.add(sys.stderr)

        security_lines = security_log.read_text().splitlines()
        assert len(security_lines) == 1
        record = json.loads(security_lines[0])["record"]
        assert record["extra"]["tenant"] == "acme"
        assert record["message"].startswith("passkey.clone_suspected")

        messages = [json.loads(line)["record"]["message"] for line in app_log.read_text().splitlines()]
        assert "request.start" in messages


runner = CliRunner()


class TestCli:
    """Operator commands run against the test database."""

    def test_init(self, db_service):
        with patch("src.cli.db_commands.DbSessionService", return_value=db_service):
            result = runner.invoke(cli_app, ["db", "init"])

        assert result.exit_code == 0
        assert "Database tables created" in result.output

    def test_seed(self, db_service, session):
        args = [
            "db", "seed",
            "--tenant", "initech",
            "--client-id", "initech-web",
            "--redirect-uri", "https://initech.test/callback",
            "--rp-id", "initech.test",
            "--b2b-user", "peter@initech.test",
        ]
        with patch("src.cli.db_commands.DbSessionService", return_value=db_service):
            result = runner.invoke(cli_app, args)

        assert result.exit_code == 0, result.output
        organization = find_organization_by_tenant(session, "initech")
        assert organization is not None
        client = ClientRepository(session, TenantScope("initech")).get_by_client_id("initech-web")
        assert client.allowed_rp_ids == ["initech.test"]
        assert client.client_secret in result.output

    def test_seed_existing_client_fails(self, db_service, acme):
        args = [
            "db", "seed",
            "--tenant", ACME,
            "--client-id", ACME_CLIENT_ID,
            "--redirect-uri", "https://portal.acme.test/other",
        ]
        with patch("src.cli.db_commands.DbSessionService", return_value=db_service):
            result = runner.invoke(cli_app, args)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_cleanup(self, db_service, acme):
        with patch("src.cli.db_commands.DbSessionService", return_value=db_service):
            result = runner.invoke(cli_app, ["db", "cleanup", "--tenant", ACME])

        assert result.exit_code == 0, result.output
        assert "Authorization codes" in result.output

    def test_cleanup_unknown_tenant(self, db_service):
        with patch("src.cli.db_commands.DbSessionService", return_value=db_service):
            result = runner.invoke(cli_app, ["db", "cleanup", "--tenant", "nobody"])

        assert result.exit_code == 1
