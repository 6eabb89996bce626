"""
Pydantic schemas for prerequisite resolution and external license verification
"""

from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import date, datetime
import uuid

from app.models.enums import LicenseCategory, ApplicationType, ApplicationStatus


class ExternalLicenseClaim(BaseModel):
    """License the applicant asserts they hold but which is not in the system"""
    category: LicenseCategory
    license_number: Optional[str] = None
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    issuing_authority: Optional[str] = None

    # Set only by manual clerk confirmation
    verified: bool = False
    is_required: bool = Field(default=True, description="Blocking claim needed to satisfy a prerequisite")
    is_auto_populated: bool = False
    required_for_category: Optional[LicenseCategory] = None

    verification_notes: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None

    def is_expired(self, as_of: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < as_of

    def as_unverified(self) -> "ExternalLicenseClaim":
        """Copy with any asserted verification removed"""
        return self.model_copy(update={"verified": False, "verified_by": None, "verified_at": None})


class SystemLicense(BaseModel):
    """In-system application that confirms a held category"""
    application_id: Optional[uuid.UUID] = None
    category: LicenseCategory
    status: ApplicationStatus


class LicenseVerificationState(BaseModel):
    """Everything known about the licenses an applicant holds"""
    person_id: Optional[uuid.UUID] = None
    requires_verification: bool = False
    system_licenses: List[SystemLicense] = Field(default_factory=list)
    external_licenses: List[ExternalLicenseClaim] = Field(default_factory=list)
    all_authorized_categories: List[LicenseCategory] = Field(default_factory=list)


class PrerequisiteCheckResult(BaseModel):
    """Outcome of prerequisite resolution for one category / application type"""
    license_category: Optional[LicenseCategory] = None
    application_type: Optional[ApplicationType] = None
    required_categories: List[LicenseCategory] = Field(default_factory=list)
    missing_categories: List[LicenseCategory] = Field(default_factory=list)
    has_completed: bool = False
    has_on_hold: bool = False
    can_proceed: bool = False
    requires_external: bool = True
    lookup_failed: bool = False


# API request / response schemas
class PrerequisiteCheckRequest(BaseModel):
    """Request body for the prerequisite check endpoint"""
    person_id: uuid.UUID
    application_type: ApplicationType
    license_category: LicenseCategory
    external_licenses: List[ExternalLicenseClaim] = Field(default_factory=list)
    as_of: Optional[date] = None


class PrerequisiteCheckResponse(BaseModel):
    """Prerequisite check result with the verification state it produced"""
    result: PrerequisiteCheckResult
    verification_state: LicenseVerificationState
    lookup_failed: bool = False
    message: Optional[str] = None
