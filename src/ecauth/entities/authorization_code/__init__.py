"""Authorization code entity package."""

from .entity import AuthorizationCode
from .repository import AuthorizationCodeRepository
from .table import AuthorizationCodeTable

__all__ = ["AuthorizationCode", "AuthorizationCodeRepository", "AuthorizationCodeTable"]
