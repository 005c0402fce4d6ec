"""Configuration template substitution utilities."""

import os
import re
from pathlib import Path

import yaml
from loguru import logger
from pydantic import ValidationError

from src.ecauth.runtime.config.config_data import ConfigData

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(text: str) -> str:
    """
    Substitute environment variable placeholders in text.

    Supports formats:
    - ${VAR_NAME} - required variable (raises error if missing)
    - ${VAR_NAME:-default} - optional with default value
    - ${VAR_NAME:?error_message} - required with custom error message

    Whole-line YAML comments are left untouched.
    """
    def replacer(match: re.Match[str]) -> str:
        var_expr = match.group(1)

        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return os.getenv(var_name, default)

        if ":?" in var_expr:
            var_name, error_msg = var_expr.split(":?", 1)
            value = os.getenv(var_name)
            if value is None:
                raise ValueError(f"Required environment variable {var_name}: {error_msg}")
            return value

        value = os.getenv(var_expr)
        if value is None:
            raise ValueError(f"Required environment variable {var_expr} not set")
        return value

    # Comment lines may document the placeholder syntax itself
    return "".join(
        line if line.lstrip().startswith("#") else _PLACEHOLDER.sub(replacer, line)
        for line in text.splitlines(keepends=True)
    )


def _environment_overrides(env_mode: str) -> dict[str, str]:
    """Collect `<ENV>_NAME` variables as overrides for `NAME`."""
    prefix = f"{env_mode.upper()}_"
    return {
        name[len(prefix):]: value
        for name, value in os.environ.items()
        if name.startswith(prefix)
    }


def load_templated_yaml(file_path: Path) -> ConfigData:
    """
    Load a YAML file with environment variable substitution.

    Args:
        file_path: Path to the YAML file

    Returns:
        Parsed YAML with environment variables substituted

    Raises:
        ValueError: If required environment variables are missing
        FileNotFoundError: If the YAML file doesn't exist
    """
    with open(file_path) as f:
        content = f.read()

    env_mode = os.getenv("APP_ENVIRONMENT", "development")
    logger.info("Loading configuration for environment: {}", env_mode)

    overrides = _environment_overrides(env_mode)
    if overrides:
        logger.info("Applying environment-specific overrides: {}", sorted(overrides))
        os.environ.update(overrides)

    substituted_content = substitute_env_vars(content)

    try:
        loaded = yaml.safe_load(substituted_content)
        if not loaded:
            raise ValueError("Failed to parse YAML")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e

    try:
        config = ConfigData(**(loaded.get("config") or {}))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    # Drop providers that are switched off or restricted to development
    enabled_providers = {}
    for name, provider in config.oidc.providers.items():
        if not provider.enabled:
            logger.info("Skipping disabled OIDC provider '{}'", name)
            continue
        if provider.dev_only and env_mode not in ("development", "test"):
            logger.info("Skipping OIDC provider '{}' in non-development environment", name)
            continue
        enabled_providers[name] = provider
    config.oidc.providers = enabled_providers

    if not config.oidc.providers:
        logger.warning("No upstream OIDC providers are enabled; B2C federation is off")

    return config
