"""Schema management for the identity provider tables."""

from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel


def register_tables() -> None:
    """Import every table module so SQLModel.metadata knows about it."""
    from src.ecauth.entities.access_token import AccessTokenTable  # noqa: F401
    from src.ecauth.entities.authorization_code import AuthorizationCodeTable  # noqa: F401
    from src.ecauth.entities.client import (  # noqa: F401
        ClientTable,
        RedirectUriTable,
        RsaKeyPairTable,
    )
    from src.ecauth.entities.external_idp import (  # noqa: F401
        ExternalIdpMappingTable,
        ExternalIdpTokenTable,
    )
    from src.ecauth.entities.organization import OrganizationTable  # noqa: F401
    from src.ecauth.entities.passkey_credential import B2BPasskeyCredentialTable  # noqa: F401
    from src.ecauth.entities.user import (  # noqa: F401
        AccountTable,
        B2BUserTable,
        EcAuthUserTable,
    )
    from src.ecauth.entities.webauthn_challenge import WebAuthnChallengeTable  # noqa: F401


class DbManageService:
    def __init__(self, engine: Engine):
        self._engine = engine

    def create_all(self) -> None:
        """Create all database tables."""
        register_tables()
        SQLModel.metadata.create_all(self._engine)
        logger.info("Database initialized with tables.")

    def drop_all(self) -> None:
        register_tables()
        SQLModel.metadata.drop_all(self._engine)
        logger.warning("All identity provider tables dropped.")
