"""
Pydantic schemas for Application Management in Madagascar License System
Handles validation and serialization for the data collected by the application workflow
"""

from typing import List, Optional, Dict
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, date
from decimal import Decimal
import uuid

from app.models.enums import (
    LicenseCategory, ApplicationType, ApplicationStatus, ReplacementReason,
    ProfessionalPermitCategory, StepKind
)
from app.schemas.verification import ExternalLicenseClaim, LicenseVerificationState, PrerequisiteCheckResult
from app.schemas.validation import ValidationOutcome
from app.schemas.fee import FeeCalculation


# Medical Information Schemas for health assessment
class VisionTestData(BaseModel):
    """Vision test data for driving fitness assessment"""
    visual_acuity_right_eye: Optional[str] = Field(None, description="e.g., '20/20', '6/6'")
    visual_acuity_left_eye: Optional[str] = Field(None, description="e.g., '20/20', '6/6'")
    visual_acuity_binocular: Optional[str] = Field(None, description="e.g., '20/20', '6/6'")
    corrective_lenses_required: bool = False
    corrective_lenses_type: Optional[str] = Field(None, description="GLASSES, CONTACT_LENSES, BOTH")

    color_vision_normal: bool = True
    visual_field_normal: bool = True
    night_vision_adequate: bool = True

    vision_meets_standards: bool = True
    vision_restrictions: List[str] = Field(default_factory=list)


class MedicalConditions(BaseModel):
    """Medical conditions assessment for driving fitness"""
    epilepsy: bool = False
    epilepsy_controlled: bool = False
    heart_condition: bool = False
    diabetes: bool = False
    diabetes_controlled: bool = False
    alcohol_dependency: bool = False
    medications_affecting_driving: bool = False
    medication_details: Optional[str] = None


class MedicalInformation(BaseModel):
    """Medical assessment for license application"""
    vision_test: Optional[VisionTestData] = None
    medical_conditions: Optional[MedicalConditions] = None

    # Explicit answer required when the assessment is mandatory, so None means "not recorded"
    medical_clearance: Optional[bool] = Field(None, description="Overall medical clearance for driving")
    medical_restrictions: List[str] = Field(default_factory=list, description="Any restrictions to be placed on license")
    medical_notes: Optional[str] = None
    examined_by: Optional[str] = Field(None, description="Name of medical examiner")
    examination_date: Optional[date] = None


class ApplicantDeclarations(BaseModel):
    """Declarations made on the application details step"""
    previous_refusal: bool = Field(default=False, description="Prior refusal or suspension of a license")
    refusal_details: Optional[str] = None


class ParentalConsent(BaseModel):
    """Reference to a captured consent document, never its content"""
    consent_document_reference: Optional[str] = None
    guardian_name: Optional[str] = None


class NoticeOfChange(BaseModel):
    """Replacement / renewal details"""
    reason: Optional[ReplacementReason] = None
    police_station: Optional[str] = None
    police_reference_number: Optional[str] = None
    date_of_change: Optional[date] = None
    notes: Optional[str] = None


class BiometricCapture(BaseModel):
    """Presence of captured biometric artifacts"""
    photo_reference: Optional[str] = None
    signature_reference: Optional[str] = None
    fingerprint_reference: Optional[str] = None


# Submission sink contract
class SubmissionPayload(BaseModel):
    """Finalized application handed to the submission sink"""
    person_id: uuid.UUID
    location_id: Optional[uuid.UUID] = None
    application_type: ApplicationType
    license_category: LicenseCategory
    professional_permit_categories: List[ProfessionalPermitCategory] = Field(default_factory=list)
    medical_information: Optional[MedicalInformation] = None
    notice_of_change: Optional[NoticeOfChange] = None
    total_amount: Decimal = Decimal("0")
    authorized_categories: List[LicenseCategory] = Field(default_factory=list)
    external_licenses: List[ExternalLicenseClaim] = Field(default_factory=list)


class SubmissionResult(BaseModel):
    """What the submission sink reports back"""
    application_id: uuid.UUID
    application_number: Optional[str] = None
    status: ApplicationStatus
    submitted_date: Optional[datetime] = None


# API request / response schemas
class ApplicationWorkflowRequest(BaseModel):
    """Complete set of workflow inputs, validated server side"""
    person_id: Optional[uuid.UUID] = None
    application_type: ApplicationType
    license_category: Optional[LicenseCategory] = None
    location_id: Optional[uuid.UUID] = None
    professional_permit_categories: List[ProfessionalPermitCategory] = Field(default_factory=list)
    declarations: ApplicantDeclarations = Field(default_factory=ApplicantDeclarations)
    parental_consent: Optional[ParentalConsent] = None
    notice_of_change: Optional[NoticeOfChange] = None
    medical_information: Optional[MedicalInformation] = None
    biometrics: BiometricCapture = Field(default_factory=BiometricCapture)
    external_licenses: List[ExternalLicenseClaim] = Field(default_factory=list)
    as_of: Optional[date] = None

    @field_validator('license_category', mode='before')
    @classmethod
    def validate_license_category(cls, v):
        """Accept the bare category code ("B", "1") as well as the enum"""
        if v == "":
            return None
        return v


class EligibilityValidationResponse(BaseModel):
    """Per-step validation of a complete workflow"""
    is_valid: bool
    steps: List[StepKind]
    step_outcomes: Dict[StepKind, ValidationOutcome]
    prerequisite_result: Optional[PrerequisiteCheckResult] = None
    verification_state: Optional[LicenseVerificationState] = None
    fee_calculation: Optional[FeeCalculation] = None
    lookup_failed: bool = False


class StepListResponse(BaseModel):
    """Ordered step list for an application type"""
    application_type: ApplicationType
    steps: List[StepKind]
    display_names: List[str]
