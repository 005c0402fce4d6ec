"""Shared pytest fixtures: database, seeded tenants, services and the app client."""

from .core import *  # noqa: F401,F403
from .services import *  # noqa: F401,F403
