from dataclasses import dataclass

from src.ecauth.core.services import (
    DbSessionService,
    FederationAdapter,
    JwtGeneratorService,
    JwtVerificationService,
    SigningKeyStore,
)


@dataclass
class ApplicationDependencies:
    database_service: DbSessionService
    key_store: SigningKeyStore
    jwt_generation_service: JwtGeneratorService
    jwt_verify_service: JwtVerificationService
    federation_adapter: FederationAdapter
