"""
Eligibility Validator for Madagascar License System
Turns applicant, category and declaration data into per-concern pass/fail reasons

Every check returns a list of ValidationReason and never short-circuits,
so a step can report all of its problems at once.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional
import uuid

from dateutil.relativedelta import relativedelta

from app.core.config import get_settings
from app.models.enums import (
    LicenseCategory, ApplicationType, ProfessionalPermitCategory, ReplacementReason,
    ValidationReasonCode, CATEGORY_DEFERRED_TYPES, AGE_EXEMPT_TYPES
)
from app.schemas.application import (
    ApplicantDeclarations, ParentalConsent, NoticeOfChange, MedicalInformation, BiometricCapture
)
from app.schemas.fee import FeeCalculation
from app.schemas.validation import ValidationReason, ValidationOutcome
from app.schemas.verification import LicenseVerificationState, PrerequisiteCheckResult
from app.services.category_rules import CategoryRuleRegistry, get_registry

Code = ValidationReasonCode

LEARNER_PERMIT_APPLICATION_TYPES = frozenset({
    ApplicationType.LEARNERS_PERMIT,
    ApplicationType.LEARNERS_PERMIT_DUPLICATE,
})


def calculate_age(birth_date: Optional[date], as_of: Optional[date] = None) -> Optional[int]:
    """Completed calendar years between birth date and as_of, None when unknown"""
    if birth_date is None:
        return None
    return relativedelta(as_of or date.today(), birth_date).years


@dataclass
class EligibilityContext:
    """Everything the validator looks at for one application"""
    application_type: Optional[ApplicationType] = None
    license_category: Optional[LicenseCategory] = None
    person_id: Optional[uuid.UUID] = None
    birth_date: Optional[date] = None
    professional_permit_categories: List[ProfessionalPermitCategory] = field(default_factory=list)
    declarations: ApplicantDeclarations = field(default_factory=ApplicantDeclarations)
    parental_consent: Optional[ParentalConsent] = None
    notice_of_change: Optional[NoticeOfChange] = None
    medical_information: Optional[MedicalInformation] = None
    biometrics: BiometricCapture = field(default_factory=BiometricCapture)
    prerequisite_result: Optional[PrerequisiteCheckResult] = None
    verification_state: Optional[LicenseVerificationState] = None
    fee_calculation: Optional[FeeCalculation] = None
    as_of: date = field(default_factory=date.today)

    @property
    def age(self) -> Optional[int]:
        return calculate_age(self.birth_date, self.as_of)


class EligibilityValidator:
    """Independent eligibility checks over an EligibilityContext"""

    def __init__(self, registry: Optional[CategoryRuleRegistry] = None, settings=None):
        self.registry = registry or get_registry()
        self.settings = settings or get_settings()

    def check_applicant(self, ctx: EligibilityContext) -> List[ValidationReason]:
        if ctx.person_id is None:
            return [ValidationReason(code=Code.APPLICANT, message="Applicant must be selected", field="person_id")]
        return []

    def check_category_selection(self, ctx: EligibilityContext) -> List[ValidationReason]:
        reasons = []
        if ctx.application_type is None:
            reasons.append(ValidationReason(
                code=Code.CATEGORY_SELECTION, message="Application type must be selected", field="application_type"
            ))
            return reasons

        if ctx.license_category is None:
            if ctx.application_type not in CATEGORY_DEFERRED_TYPES:
                reasons.append(ValidationReason(
                    code=Code.CATEGORY_SELECTION, message="License category must be selected", field="license_category"
                ))
            return reasons

        rule = self.registry.get_rule(ctx.license_category)
        if ctx.application_type in LEARNER_PERMIT_APPLICATION_TYPES:
            if not rule.allows_learner_permit:
                reasons.append(ValidationReason(
                    code=Code.CATEGORY_SELECTION,
                    message=f"Category {rule.category.value} cannot be obtained as a learner's permit",
                    field="license_category",
                ))
        elif self.registry.is_learner_permit_category(ctx.license_category):
            reasons.append(ValidationReason(
                code=Code.CATEGORY_SELECTION,
                message=f"Learner's permit class {rule.category.value} is only valid for learner's permit applications",
                field="license_category",
            ))
        return reasons

    def check_age(self, ctx: EligibilityContext) -> List[ValidationReason]:
        if ctx.license_category is None or ctx.application_type in AGE_EXEMPT_TYPES:
            return []
        rule = self.registry.get_rule(ctx.license_category)
        age = ctx.age
        if age is None:
            return [ValidationReason(
                code=Code.AGE,
                message="Birth date unknown: cannot confirm minimum age",
                field="birth_date",
            )]
        if age < rule.minimum_age:
            return [ValidationReason(
                code=Code.AGE,
                message=f"Minimum age for category {rule.category.value} is {rule.minimum_age} (applicant is {age})",
                field="license_category",
            )]
        return []

    def requires_parental_consent(self, ctx: EligibilityContext) -> bool:
        age = ctx.age
        return age is None or age < self.settings.PARENTAL_CONSENT_AGE

    def check_parental_consent(self, ctx: EligibilityContext) -> List[ValidationReason]:
        if not self.requires_parental_consent(ctx):
            return []
        consent = ctx.parental_consent
        if consent is None or not consent.consent_document_reference:
            return [ValidationReason(
                code=Code.PARENTAL_CONSENT,
                message=f"Parental consent document required for applicants under {self.settings.PARENTAL_CONSENT_AGE}",
                field="parental_consent",
            )]
        return []

    def check_refusal_declaration(self, ctx: EligibilityContext) -> List[ValidationReason]:
        declarations = ctx.declarations
        if declarations.previous_refusal and not (declarations.refusal_details or "").strip():
            return [ValidationReason(
                code=Code.DECLARATION,
                message="Details of the previous refusal or suspension are required",
                field="refusal_details",
            )]
        return []

    def medical_categories(self, ctx: EligibilityContext) -> Optional[List[LicenseCategory]]:
        """
        Categories the medical mandate is judged on.

        The selected category; when the type defers the choice, every category the
        applicant is authorized for through held licenses or verified claims. None
        means the holdings could not be established.
        """
        if ctx.license_category is not None:
            return [ctx.license_category]
        state = ctx.verification_state
        if ctx.application_type not in CATEGORY_DEFERRED_TYPES or state is None:
            return []
        if state.requires_verification:
            return None
        return list(state.all_authorized_categories)

    def is_medical_mandatory(self, ctx: EligibilityContext) -> bool:
        if ctx.application_type == ApplicationType.PROFESSIONAL_LICENSE:
            return True
        categories = self.medical_categories(ctx)
        if categories is None:
            # Unknown holdings cannot prove exemption
            return True
        if any(self.registry.requires_medical_always(c) for c in categories):
            return True
        if any(self.registry.requires_medical_60_plus(c) for c in categories):
            age = ctx.age
            # Unknown age cannot prove exemption
            return age is None or age >= self.settings.MEDICAL_AGE_THRESHOLD
        return False

    def check_medical(self, ctx: EligibilityContext) -> List[ValidationReason]:
        if not self.is_medical_mandatory(ctx):
            return []
        medical = ctx.medical_information
        if medical is None:
            return [ValidationReason(
                code=Code.MEDICAL, message="Medical assessment is required", field="medical_information"
            )]

        reasons = []
        if medical.vision_test is None or not medical.vision_test.visual_acuity_binocular:
            reasons.append(ValidationReason(
                code=Code.MEDICAL, message="Binocular visual acuity result is required",
                field="vision_test.visual_acuity_binocular",
            ))
        if medical.medical_clearance is None:
            reasons.append(ValidationReason(
                code=Code.MEDICAL, message="Medical clearance decision is required", field="medical_clearance"
            ))
        if not (medical.examined_by or "").strip():
            reasons.append(ValidationReason(
                code=Code.MEDICAL, message="Medical examiner name is required", field="examined_by"
            ))
        if medical.examination_date is None:
            reasons.append(ValidationReason(
                code=Code.MEDICAL, message="Examination date is required", field="examination_date"
            ))
        return reasons

    def check_verification(self, ctx: EligibilityContext) -> List[ValidationReason]:
        state = ctx.verification_state
        if state is None or not state.requires_verification:
            return []
        reasons = []
        for claim in state.external_licenses:
            if not claim.is_required:
                continue
            if not claim.verified:
                reasons.append(ValidationReason(
                    code=Code.VERIFICATION,
                    message=f"External license for category {claim.category.value} must be verified",
                    field="external_licenses",
                ))
            elif claim.is_expired(ctx.as_of):
                reasons.append(ValidationReason(
                    code=Code.VERIFICATION,
                    message=f"Verified external license for category {claim.category.value} is expired",
                    field="external_licenses",
                ))
        return reasons

    def check_prerequisites(self, ctx: EligibilityContext) -> List[ValidationReason]:
        result = ctx.prerequisite_result
        if result is None or result.can_proceed:
            return []
        if self.check_verification(ctx):
            # Already explained by the outstanding external licenses
            return []
        missing = ", ".join(c.value for c in result.missing_categories) or "unknown"
        if result.lookup_failed:
            message = "Existing licenses could not be confirmed; retry the lookup or verify externally"
        else:
            message = f"Prerequisite categories not held: {missing}"
        return [ValidationReason(code=Code.PREREQUISITE, message=message, field="license_category")]

    def check_professional_categories(self, ctx: EligibilityContext) -> List[ValidationReason]:
        if ctx.application_type != ApplicationType.PROFESSIONAL_LICENSE:
            return []
        selected = list(ctx.professional_permit_categories)
        if not selected:
            return [ValidationReason(
                code=Code.PROFESSIONAL_CATEGORY,
                message="at least one professional permit category required",
                field="professional_permit_categories",
            )]

        reasons = []
        age = ctx.age
        for category in selected:
            rule = self.registry.get_professional_rule(category)
            if age is None or age < rule.minimum_age:
                reasons.append(ValidationReason(
                    code=Code.PROFESSIONAL_CATEGORY,
                    message=(
                        f"Minimum age for professional permit category {category.value} "
                        f"({rule.display_name}) is {rule.minimum_age}"
                    ),
                    field="professional_permit_categories",
                ))
            for required in rule.requires:
                if required not in selected:
                    reasons.append(ValidationReason(
                        code=Code.PROFESSIONAL_CATEGORY,
                        message=f"Professional permit category {category.value} requires category {required.value}",
                        field="professional_permit_categories",
                    ))
        return reasons

    def check_notice_of_change(self, ctx: EligibilityContext) -> List[ValidationReason]:
        notice = ctx.notice_of_change
        if notice is None or notice.reason is None:
            return [ValidationReason(
                code=Code.NOTICE_OF_CHANGE, message="Reason for the notice of change is required", field="reason"
            )]
        reasons = []
        if notice.reason == ReplacementReason.THEFT:
            if not notice.police_station:
                reasons.append(ValidationReason(
                    code=Code.NOTICE_OF_CHANGE, message="Police station is required for theft", field="police_station"
                ))
            if not notice.police_reference_number:
                reasons.append(ValidationReason(
                    code=Code.NOTICE_OF_CHANGE, message="Police reference number is required for theft",
                    field="police_reference_number",
                ))
        if notice.reason == ReplacementReason.CHANGE_OF_PARTICULARS and notice.date_of_change is None:
            reasons.append(ValidationReason(
                code=Code.NOTICE_OF_CHANGE, message="Date of change is required", field="date_of_change"
            ))
        return reasons

    def check_biometrics(self, ctx: EligibilityContext) -> List[ValidationReason]:
        if not ctx.biometrics.photo_reference:
            return [ValidationReason(code=Code.BIOMETRIC, message="Photo is required", field="photo")]
        return []

    def check_fees(self, ctx: EligibilityContext) -> List[ValidationReason]:
        if ctx.fee_calculation is None or ctx.fee_calculation.is_empty:
            return [ValidationReason(code=Code.FEE_SELECTION, message="select applicable fees", field="fees")]
        return []

    def validate_application_details(self, ctx: EligibilityContext) -> ValidationOutcome:
        """All checks for the application details step"""
        reasons = []
        reasons += self.check_category_selection(ctx)
        reasons += self.check_age(ctx)
        reasons += self.check_parental_consent(ctx)
        reasons += self.check_refusal_declaration(ctx)
        reasons += self.check_professional_categories(ctx)
        reasons += self.check_verification(ctx)
        reasons += self.check_prerequisites(ctx)
        return ValidationOutcome.from_reasons(reasons)

    def validate(self, ctx: EligibilityContext) -> ValidationOutcome:
        """Eligibility decision: application details plus the medical mandate"""
        outcome = self.validate_application_details(ctx)
        return ValidationOutcome.from_reasons(outcome.reasons + self.check_medical(ctx))
