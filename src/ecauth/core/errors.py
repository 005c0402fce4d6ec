"""Error taxonomy for the identity provider.

Every error carries the HTTP status and OAuth error code it is rendered with.
The message passed to the constructor is internal detail: it is logged by the
API layer and never echoed to the caller, who only sees `public_description`.
"""

from typing import ClassVar


class EcAuthError(Exception):
    """Base class for client-visible identity provider errors."""

    status_code: ClassVar[int] = 400
    error: ClassVar[str] = "invalid_request"
    public_description: ClassVar[str] = "The request could not be processed."
    security_event: ClassVar[bool] = False

    def __init__(self, detail: str | None = None, **context: object) -> None:
        super().__init__(detail or self.public_description)
        self.detail = detail or self.public_description
        self.context = context


class InvalidGrant(EcAuthError):
    """Bad, expired or reused authorization code, or client/redirect mismatch."""

    error = "invalid_grant"
    public_description = "The authorization grant is invalid."


class InvalidClient(EcAuthError):
    status_code = 401
    error = "invalid_client"
    public_description = "Client authentication failed."


class Unauthorized(EcAuthError):
    """Missing, unknown, revoked or expired bearer token."""

    status_code = 401
    error = "invalid_token"
    public_description = "The access token is invalid."


class TenantUnresolved(EcAuthError):
    error = "invalid_request"
    public_description = "The tenant could not be resolved."
    security_event = True


class RpIdNotAllowed(EcAuthError):
    public_description = "The relying party id is not allowed for this client."


class ChallengeNotFound(EcAuthError):
    public_description = "The ceremony session is unknown or already used."


class ChallengeExpired(EcAuthError):
    public_description = "The ceremony session has expired; start again."


class ChallengeMismatch(EcAuthError):
    public_description = "The response does not match the issued challenge."


class AttestationInvalid(EcAuthError):
    public_description = "The passkey registration could not be verified."


class AssertionInvalid(EcAuthError):
    status_code = 401
    error = "access_denied"
    public_description = "The passkey assertion could not be verified."


class PossibleCloneDetected(EcAuthError):
    status_code = 403
    error = "access_denied"
    public_description = "The passkey assertion could not be verified."
    security_event = True


class CredentialNotFound(EcAuthError):
    status_code = 404
    public_description = "The credential was not found."


class FederationError(EcAuthError):
    status_code = 502
    error = "server_error"
    public_description = "The upstream identity provider could not be reached."


class ServerError(EcAuthError):
    status_code = 500
    error = "server_error"
    public_description = "An internal error occurred."


class InvalidState(EcAuthError):
    """Tampered, expired or cross-tenant federation state."""

    public_description = "The authorization state is invalid or has expired."


class ExternalTokenNotFound(EcAuthError):
    """No usable upstream token is cached for the subject and provider."""

    status_code = 404
    error = "not_found"
    public_description = "No upstream user information is available for this provider."
