"""Subject identity shared by every token and code the server issues."""

from dataclasses import dataclass
from enum import StrEnum


class SubjectType(StrEnum):
    """Which backing store a subject identifier belongs to."""

    B2C = "b2c"
    B2B = "b2b"
    ACCOUNT = "account"


@dataclass(frozen=True)
class Subject:
    """Tagged subject identifier: the variant plus its opaque id."""

    subject_type: SubjectType
    subject_id: str

    def __post_init__(self) -> None:
        if not self.subject_id:
            raise ValueError("subject_id must not be empty")

    @classmethod
    def b2c(cls, subject_id: str) -> "Subject":
        return cls(SubjectType.B2C, subject_id)

    @classmethod
    def b2b(cls, subject_id: str) -> "Subject":
        return cls(SubjectType.B2B, subject_id)

    @classmethod
    def account(cls, subject_id: str) -> "Subject":
        return cls(SubjectType.ACCOUNT, subject_id)
