"""EcAuth identity provider.

Multi-tenant OAuth2 / OpenID Connect authorization server with federated B2C
sign-in and WebAuthn passkeys for B2B organization admins.
"""

__version__ = "0.1.0"
