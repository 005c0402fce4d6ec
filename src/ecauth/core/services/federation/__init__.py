from .adapter import FederationAdapter
from .identity_service import ExternalIdentityService
from .models import FederatedIdentity, UpstreamTokenResponse, UpstreamTokens

__all__ = [
    "ExternalIdentityService",
    "FederatedIdentity",
    "FederationAdapter",
    "UpstreamTokenResponse",
    "UpstreamTokens",
]
