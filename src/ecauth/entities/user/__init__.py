"""Subject backing stores: B2C users, B2B admins and platform accounts."""

from .entity import Account, B2BUser, EcAuthUser
from .repository import AccountRepository, B2BUserRepository, EcAuthUserRepository
from .table import AccountTable, B2BUserTable, EcAuthUserTable

__all__ = [
    "Account",
    "AccountRepository",
    "AccountTable",
    "B2BUser",
    "B2BUserRepository",
    "B2BUserTable",
    "EcAuthUser",
    "EcAuthUserRepository",
    "EcAuthUserTable",
]
