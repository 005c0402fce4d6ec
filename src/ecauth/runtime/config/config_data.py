"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field, computed_field


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "https://localhost"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(default=["*"])


class OIDCProviderConfig(BaseModel):
    """Upstream OIDC provider used to federate B2C subjects."""

    authorization_endpoint: str = Field(description="OIDC authorization endpoint URL")
    token_endpoint: str = Field(description="OIDC token endpoint URL")
    userinfo_endpoint: str | None = Field(
        default=None, description="OIDC userinfo endpoint URL"
    )
    issuer: str = Field(description="OIDC issuer URL")
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "profile", "email"],
        description="OIDC scopes to request during authentication",
    )
    client_id: str = Field(description="Client ID for the OIDC provider")
    client_secret: str = Field(description="Client secret for the OIDC provider")
    redirect_uri: str = Field(description="Redirect URI for this provider")
    enabled: bool = Field(default=True, description="Enable this provider")
    dev_only: bool = Field(
        default=False, description="Enable this provider only in development"
    )


class OIDCConfig(BaseModel):
    """Upstream federation configuration."""

    providers: dict[str, OIDCProviderConfig] = Field(
        default_factory=dict, description="OIDC provider configurations"
    )
    http_timeout_seconds: float = Field(
        default=10.0, description="Timeout for calls to upstream providers"
    )


class TokenConfig(BaseModel):
    """Issued token settings."""

    issuer: str = Field(
        default="https://ecauth.example.com", description="Issuer of ID tokens"
    )
    access_token_lifetime_seconds: int = Field(
        default=3600, description="Lifetime of opaque access tokens"
    )
    id_token_lifetime_seconds: int = Field(
        default=3600, description="Lifetime of signed ID tokens"
    )
    signing_algorithm: Literal["RS256"] = Field(
        default="RS256", description="Asymmetric algorithm for ID tokens"
    )
    rsa_key_size: int = Field(default=2048, description="Generated RSA key size")
    key_cache_ttl_seconds: int = Field(
        default=300, description="How long loaded client keys stay cached"
    )
    clock_skew_seconds: int = Field(
        default=30, description="Leeway applied when verifying JWT time claims"
    )


class AuthorizationCodeConfig(BaseModel):
    """Authorization code ledger settings."""

    lifetime_seconds: int = Field(
        default=600, description="Authorization code lifetime in seconds"
    )
    state_lifetime_seconds: int = Field(
        default=600, description="Lifetime of the signed federation state"
    )


class WebAuthnConfig(BaseModel):
    """Passkey ceremony settings."""

    challenge_ttl_seconds: int = Field(
        default=300, description="Challenge lifetime in seconds"
    )
    allowed_origins: list[str] = Field(
        default_factory=list,
        description="Extra origins accepted besides those matching the RP id",
    )
    default_rp_name: str = Field(
        default="EcAuth", description="RP name when the organization has none"
    )
    timeout_ms: int = Field(
        default=60000, description="Ceremony timeout advertised to the browser"
    )
    b2b_scope: str = Field(
        default="openid b2b", description="Scope attached to passkey-issued codes"
    )


class TenancyConfig(BaseModel):
    """Tenant resolution settings."""

    header_name: str = Field(
        default="X-Tenant-Name", description="Header carrying the tenant name"
    )
    resolve_from_host: bool = Field(
        default=False,
        description="Fall back to the leftmost Host label when the header is absent",
    )


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str | None = Field(default="logs/ecauth.log", description="Log file path")
    security_file: str | None = Field(
        default=None, description="Separate JSON file for security events"
    )
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./ecauth.db",
        description="Database connection URL",
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    environment_mode: str = Field(
        default="development", description="Environment mode: development or production"
    )
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")
    password_env_var: str | None = Field(
        default=None,
        description="Environment variable name containing database password",
    )
    password_file: str | None = Field(
        default=None,
        description="Path to file containing database password",
    )

    @computed_field
    @property
    def password(self) -> str | None:
        """
        Get the database password from the appropriate source.
        1. In development or test mode, parse it from the URL if present
        2. In production mode, read it from the mounted secrets file or the
            environment variable named by `password_env_var`
        """
        from sqlalchemy.engine import make_url

        if self.environment_mode in ("development", "test"):
            return make_url(self.url).password
        elif self.environment_mode == "production":
            if self.password_file:
                try:
                    with open(self.password_file) as f:
                        return f.read().strip()
                except OSError as e:
                    raise ValueError(
                        "Failed to read database password from file."
                    ) from e
            elif self.password_env_var:
                import os

                password = os.getenv(self.password_env_var)
                if password:
                    return password
                raise ValueError(
                    f"Environment variable {self.password_env_var} not set"
                )
            # SQLite and trust-authenticated servers have no password
            return make_url(self.url).password
        else:
            raise ValueError(
                "Invalid environment_mode; must be 'development', 'production', or 'test'"
            )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the database connection string with password if provided."""
        from sqlalchemy.engine import make_url

        base_url = make_url(self.url)
        if base_url.get_backend_name() == "sqlite":
            return self.url

        resolved_password = self.password
        if base_url.password and self.environment_mode == "production":
            logger.warning(
                "Database URL contains a password in production mode; "
                "consider using a secrets file or environment variable."
            )
        if resolved_password and resolved_password != base_url.password:
            base_url = base_url.set(password=resolved_password)
        return base_url.render_as_string(hide_password=False)


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")
    state_signing_secret: str | None = Field(
        default=None, description="Secret for signing the federation state parameter"
    )
    federation_callback_path: str = Field(
        default="/auth/callback", description="Path the upstream IdP returns to"
    )
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )

    @property
    def base_url(self) -> str:
        """Construct the base URL from host and port."""
        scheme = "https" if self.environment == "production" else "http"
        return f"{scheme}://{self.host}:{self.port}"


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    oidc: OIDCConfig = Field(
        default_factory=OIDCConfig, description="Upstream federation configuration"
    )
    token: TokenConfig = Field(
        default_factory=TokenConfig, description="Token issuance configuration"
    )
    authorization_code: AuthorizationCodeConfig = Field(
        default_factory=AuthorizationCodeConfig,
        description="Authorization code configuration",
    )
    webauthn: WebAuthnConfig = Field(
        default_factory=WebAuthnConfig, description="Passkey configuration"
    )
    tenancy: TenancyConfig = Field(
        default_factory=TenancyConfig, description="Tenant resolution configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
