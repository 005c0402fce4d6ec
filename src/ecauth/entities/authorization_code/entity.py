"""Authorization code domain entity."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from src.ecauth.core.subject import Subject, SubjectType
from src.ecauth.entities._base import as_utc, utc_now


class AuthorizationCode(BaseModel):
    """A single-use, time-boxed grant bound to one client and redirect URI."""

    code: str = Field(description="Opaque high-entropy code value")
    ecauth_subject: str | None = None
    b2b_subject: str | None = None
    client_pk: str
    redirect_uri: str
    scope: str | None = None
    state: str | None = None
    nonce: str | None = None
    expires_at: datetime
    is_used: bool = False
    used_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _exactly_one_subject(self) -> "AuthorizationCode":
        if (self.ecauth_subject is None) == (self.b2b_subject is None):
            raise ValueError("exactly one of ecauth_subject and b2b_subject must be set")
        return self

    @property
    def subject(self) -> Subject:
        if self.b2b_subject is not None:
            return Subject(SubjectType.B2B, self.b2b_subject)
        return Subject(SubjectType.B2C, self.ecauth_subject)

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utc_now())
