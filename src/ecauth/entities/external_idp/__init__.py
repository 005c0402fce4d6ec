"""External IdP linkage: subject mappings and cached upstream tokens."""

from .entity import ExternalIdpMapping, ExternalIdpToken
from .repository import ExternalIdpMappingRepository, ExternalIdpTokenRepository
from .table import ExternalIdpMappingTable, ExternalIdpTokenTable

__all__ = [
    "ExternalIdpMapping",
    "ExternalIdpMappingRepository",
    "ExternalIdpMappingTable",
    "ExternalIdpToken",
    "ExternalIdpTokenRepository",
    "ExternalIdpTokenTable",
]
