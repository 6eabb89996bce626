"""
Validation outcome shared by every workflow step
"""

from typing import List, Optional, Iterable
from pydantic import BaseModel, Field, computed_field

from app.models.enums import ValidationReasonCode


class ValidationReason(BaseModel):
    """A single violated rule"""
    code: ValidationReasonCode
    message: str
    field: Optional[str] = None


class ValidationOutcome(BaseModel):
    """Valid when there are no reasons, Invalid(reasons) otherwise"""
    reasons: List[ValidationReason] = Field(default_factory=list)

    @computed_field
    @property
    def is_valid(self) -> bool:
        return not self.reasons

    @property
    def messages(self) -> List[str]:
        return [reason.message for reason in self.reasons]

    @property
    def codes(self) -> List[ValidationReasonCode]:
        return [reason.code for reason in self.reasons]

    def has_code(self, code: ValidationReasonCode) -> bool:
        return any(reason.code == code for reason in self.reasons)

    @classmethod
    def valid(cls) -> "ValidationOutcome":
        return cls()

    @classmethod
    def from_reasons(cls, reasons: Iterable[ValidationReason]) -> "ValidationOutcome":
        return cls(reasons=list(reasons))
