"""Access token entity package."""

from .entity import AccessToken
from .repository import AccessTokenRepository
from .table import AccessTokenTable

__all__ = ["AccessToken", "AccessTokenRepository", "AccessTokenTable"]
