"""
Workflow Step Sequencer for Madagascar License System
State machine over the type-dependent list of application steps

The step list is derived from the application type on every access; the state
only holds an index into it. Forward movement is gated on step validation,
backward movement is free. Changing the application type or category discards
data from steps that no longer apply and re-runs prerequisite resolution.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Sequence, Union
import uuid

import structlog

from app.core.config import get_settings
from app.core.exceptions import ExternalLookupError, WorkflowStateError
from app.models.enums import (
    LicenseCategory, ApplicationType, ProfessionalPermitCategory, StepKind,
    ValidationReasonCode, CATEGORY_DEFERRED_TYPES, NOTICE_OF_CHANGE_TYPES, STEP_DISPLAY_NAMES
)
from app.schemas.application import (
    ApplicantDeclarations, ParentalConsent, NoticeOfChange, MedicalInformation,
    BiometricCapture, SubmissionPayload, SubmissionResult
)
from app.schemas.fee import FeeCalculation
from app.schemas.validation import ValidationReason, ValidationOutcome
from app.schemas.verification import ExternalLicenseClaim, LicenseVerificationState, PrerequisiteCheckResult
from app.services.category_rules import CategoryRuleRegistry, get_registry
from app.services.eligibility_validator import EligibilityContext, EligibilityValidator
from app.services.fee_calculator import calculate_application_fees
from app.services.prerequisite_resolver import PrerequisiteResolver

logger = structlog.get_logger()

SubmissionSink = Callable[[SubmissionPayload], SubmissionResult]


def build_step_list(application_type: Optional[ApplicationType]) -> List[StepKind]:
    """Ordered steps for an application type"""
    steps = [StepKind.APPLICANT, StepKind.APPLICATION_DETAILS]
    if application_type in NOTICE_OF_CHANGE_TYPES:
        steps.append(StepKind.NOTICE_OF_CHANGE)
    steps += [StepKind.MEDICAL, StepKind.BIOMETRIC, StepKind.REVIEW]
    return steps


@dataclass
class WorkflowState:
    """One in-progress application; private to a single session"""
    person_id: Optional[uuid.UUID] = None
    birth_date: Optional[date] = None
    application_type: Optional[ApplicationType] = None
    selected_category: Optional[LicenseCategory] = None
    location_id: Optional[uuid.UUID] = None
    professional_permit_categories: List[ProfessionalPermitCategory] = field(default_factory=list)
    declarations: ApplicantDeclarations = field(default_factory=ApplicantDeclarations)
    parental_consent: Optional[ParentalConsent] = None
    notice_of_change: Optional[NoticeOfChange] = None
    medical_information: Optional[MedicalInformation] = None
    biometrics: BiometricCapture = field(default_factory=BiometricCapture)

    prerequisite_result: Optional[PrerequisiteCheckResult] = None
    verification_state: Optional[LicenseVerificationState] = None
    lookup_error: Optional[str] = None

    fee_schedule: Optional[Sequence] = None
    fee_calculation: Optional[FeeCalculation] = None

    current_step_index: int = 0
    per_step_errors: Dict[StepKind, List[ValidationReason]] = field(default_factory=dict)
    as_of: Optional[date] = None

    submission: Optional[SubmissionResult] = None

    @property
    def ordered_steps(self) -> List[StepKind]:
        return build_step_list(self.application_type)

    @property
    def current_step(self) -> StepKind:
        return self.ordered_steps[self.current_step_index]

    @property
    def is_submitted(self) -> bool:
        return self.submission is not None

    @property
    def evaluation_date(self) -> date:
        return self.as_of or date.today()


class WorkflowStepSequencer:
    """Defined transitions over a WorkflowState"""

    def __init__(
        self,
        resolver: PrerequisiteResolver,
        validator: Optional[EligibilityValidator] = None,
        registry: Optional[CategoryRuleRegistry] = None,
        submission_sink: Optional[SubmissionSink] = None,
        settings=None,
    ):
        self.registry = registry or resolver.registry or get_registry()
        self.resolver = resolver
        self.settings = settings or get_settings()
        self.validator = validator or EligibilityValidator(self.registry, self.settings)
        self.submission_sink = submission_sink

    # Lifecycle

    def new_workflow(self, as_of: Optional[date] = None) -> WorkflowState:
        return WorkflowState(as_of=as_of)

    def _ensure_open(self, state: WorkflowState) -> None:
        if state.is_submitted:
            raise WorkflowStateError("Application has already been submitted")

    def effective_category(self, state: WorkflowState) -> Optional[LicenseCategory]:
        """Selected category, or the fallback for types that defer the choice"""
        if state.selected_category is not None:
            return state.selected_category
        if state.application_type in CATEGORY_DEFERRED_TYPES:
            return LicenseCategory(self.settings.DEFAULT_FALLBACK_CATEGORY)
        return None

    # Selection transitions

    def select_applicant(self, state: WorkflowState, person_id: uuid.UUID, birth_date: Optional[date]) -> None:
        self._ensure_open(state)
        if person_id != state.person_id:
            # Resolution belonged to the previous applicant
            state.prerequisite_result = None
            state.verification_state = None
            state.lookup_error = None
        state.person_id = person_id
        state.birth_date = birth_date
        state.per_step_errors.pop(StepKind.APPLICANT, None)

    async def select_application_type(
        self, state: WorkflowState, application_type: ApplicationType
    ) -> Optional[PrerequisiteCheckResult]:
        self._ensure_open(state)
        previous_steps = state.ordered_steps
        previous_step = previous_steps[state.current_step_index]
        if application_type != ApplicationType.PROFESSIONAL_LICENSE:
            state.professional_permit_categories = []
        state.application_type = application_type
        self._apply_step_change(state, previous_steps, previous_step)
        return await self._resolve(state)

    async def select_license_category(
        self, state: WorkflowState, category: Optional[LicenseCategory]
    ) -> Optional[PrerequisiteCheckResult]:
        self._ensure_open(state)
        if category is not None:
            self.registry.get_rule(category)
        previous_steps = state.ordered_steps
        previous_step = previous_steps[state.current_step_index]
        state.selected_category = category
        self._apply_step_change(state, previous_steps, previous_step)
        return await self._resolve(state)

    async def refresh_prerequisites(self, state: WorkflowState) -> Optional[PrerequisiteCheckResult]:
        """Re-run resolution, e.g. after a transient lookup failure"""
        self._ensure_open(state)
        return await self._resolve(state)

    def _apply_step_change(self, state: WorkflowState, previous_steps: List[StepKind], previous_step: StepKind) -> None:
        steps = state.ordered_steps
        for removed in set(previous_steps) - set(steps):
            if removed == StepKind.NOTICE_OF_CHANGE:
                state.notice_of_change = None
        state.per_step_errors = {}
        if previous_step in steps:
            state.current_step_index = steps.index(previous_step)
        else:
            state.current_step_index = steps.index(StepKind.APPLICATION_DETAILS)
        if state.fee_schedule is not None:
            self._recalculate_fees(state)

    async def _resolve(self, state: WorkflowState) -> Optional[PrerequisiteCheckResult]:
        if state.person_id is None:
            state.prerequisite_result = None
            state.lookup_error = None
            return None
        if state.selected_category is None:
            state.prerequisite_result = None
            if state.application_type in CATEGORY_DEFERRED_TYPES:
                await self._resolve_held(state)
            else:
                state.lookup_error = None
            return None
        try:
            result, verification_state = await self.resolver.resolve(
                state.person_id,
                state.selected_category,
                state.application_type,
                existing_state=state.verification_state,
                as_of=state.evaluation_date,
            )
            state.lookup_error = None
        except ExternalLookupError as e:
            result, verification_state = e.check_result, e.verification_state
            state.lookup_error = str(e)
        state.prerequisite_result = result
        state.verification_state = verification_state
        return result

    async def _resolve_held(self, state: WorkflowState) -> None:
        """Held categories stand in for the selection on types that defer it"""
        try:
            state.verification_state = await self.resolver.resolve_held(
                state.person_id, existing_state=state.verification_state, as_of=state.evaluation_date
            )
            state.lookup_error = None
        except ExternalLookupError as e:
            state.verification_state = e.verification_state
            state.lookup_error = str(e)

    def _uses_held_categories(self, state: WorkflowState) -> bool:
        return state.selected_category is None and state.application_type in CATEGORY_DEFERRED_TYPES

    def select_professional_categories(
        self, state: WorkflowState, categories: Sequence[ProfessionalPermitCategory]
    ) -> List[ProfessionalPermitCategory]:
        self._ensure_open(state)
        if state.application_type != ApplicationType.PROFESSIONAL_LICENSE:
            raise WorkflowStateError("Professional permit categories only apply to professional permit applications")
        state.professional_permit_categories = self.registry.expand_professional_categories(categories)
        return state.professional_permit_categories

    def toggle_professional_category(
        self, state: WorkflowState, category: ProfessionalPermitCategory
    ) -> List[ProfessionalPermitCategory]:
        """Selecting D also selects G; deselecting G also deselects D"""
        selected = state.professional_permit_categories
        if category in selected:
            self._ensure_open(state)
            state.professional_permit_categories = self.registry.drop_professional_category(selected, category)
            return state.professional_permit_categories
        return self.select_professional_categories(state, selected + [category])

    # Step data transitions

    def record_declarations(self, state: WorkflowState, declarations: ApplicantDeclarations) -> None:
        self._ensure_open(state)
        state.declarations = declarations

    def record_parental_consent(self, state: WorkflowState, consent: Optional[ParentalConsent]) -> None:
        self._ensure_open(state)
        state.parental_consent = consent

    def record_notice_of_change(self, state: WorkflowState, notice: NoticeOfChange) -> None:
        self._ensure_open(state)
        if StepKind.NOTICE_OF_CHANGE not in state.ordered_steps:
            raise WorkflowStateError("Notice of change does not apply to this application type")
        state.notice_of_change = notice

    def record_medical_information(self, state: WorkflowState, medical_information: Optional[MedicalInformation]) -> None:
        self._ensure_open(state)
        state.medical_information = medical_information

    def record_biometrics(self, state: WorkflowState, biometrics: BiometricCapture) -> None:
        self._ensure_open(state)
        state.biometrics = biometrics

    def select_location(self, state: WorkflowState, location_id: uuid.UUID) -> None:
        self._ensure_open(state)
        state.location_id = location_id

    # External license verification

    def add_external_claim(self, state: WorkflowState, claim: ExternalLicenseClaim) -> LicenseVerificationState:
        """
        Add an applicant-asserted claim, replacing an unverified placeholder for the same category.

        The claim always enters unverified; only verify_external_claim records a clerk's confirmation.
        """
        self._ensure_open(state)
        claim = claim.as_unverified().model_copy(update={"is_auto_populated": False})
        current = state.verification_state or LicenseVerificationState(person_id=state.person_id)
        claims = []
        for existing in current.external_licenses:
            if existing.category == claim.category and existing.is_auto_populated and not existing.verified:
                claim = claim.model_copy(update={
                    "is_required": True, "required_for_category": existing.required_for_category
                })
                continue
            claims.append(existing)
        claims.append(claim)
        state.verification_state = current.model_copy(update={"external_licenses": claims})
        self._reevaluate(state)
        return state.verification_state

    def verify_external_claim(
        self,
        state: WorkflowState,
        category: LicenseCategory,
        *,
        verified_by: str,
        license_number: Optional[str] = None,
        issue_date: Optional[date] = None,
        expiry_date: Optional[date] = None,
        issuing_authority: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ExternalLicenseClaim:
        """Clerk confirmation of an external license"""
        self._ensure_open(state)
        current = state.verification_state
        claims = list(current.external_licenses) if current else []
        for index, claim in enumerate(claims):
            if claim.category == category:
                break
        else:
            raise WorkflowStateError(f"No external license claim for category {category.value}")

        update = {
            "verified": True,
            "is_auto_populated": False,
            "verified_by": verified_by,
            "verified_at": datetime.utcnow(),
            "verification_notes": notes,
        }
        for name, value in (
            ("license_number", license_number),
            ("issue_date", issue_date),
            ("expiry_date", expiry_date),
            ("issuing_authority", issuing_authority),
        ):
            if value is not None:
                update[name] = value
        claims[index] = claims[index].model_copy(update=update)
        state.verification_state = current.model_copy(update={"external_licenses": claims})
        self._reevaluate(state)

        logger.info(
            "External license verified",
            person_id=str(state.person_id) if state.person_id else None,
            license_category=category.value,
            verified_by=verified_by,
        )
        return claims[index]

    def _reevaluate(self, state: WorkflowState) -> None:
        if state.prerequisite_result is not None and state.prerequisite_result.license_category is not None:
            state.prerequisite_result, state.verification_state = self.resolver.reevaluate(
                state.prerequisite_result, state.verification_state, as_of=state.evaluation_date
            )
        elif self._uses_held_categories(state) and state.verification_state is not None:
            state.verification_state = self.resolver.reevaluate_held(
                state.verification_state, as_of=state.evaluation_date
            )

    # Validation and navigation

    def context(self, state: WorkflowState) -> EligibilityContext:
        return EligibilityContext(
            application_type=state.application_type,
            license_category=state.selected_category,
            person_id=state.person_id,
            birth_date=state.birth_date,
            professional_permit_categories=list(state.professional_permit_categories),
            declarations=state.declarations,
            parental_consent=state.parental_consent,
            notice_of_change=state.notice_of_change,
            medical_information=state.medical_information,
            biometrics=state.biometrics,
            prerequisite_result=state.prerequisite_result,
            verification_state=state.verification_state,
            fee_calculation=state.fee_calculation,
            as_of=state.evaluation_date,
        )

    def _step_kind(self, state: WorkflowState, step: Union[StepKind, int, None]) -> StepKind:
        steps = state.ordered_steps
        if step is None:
            return steps[state.current_step_index]
        if isinstance(step, StepKind):
            if step not in steps:
                raise WorkflowStateError(f"Step {step.value} does not apply to this application type")
            return step
        if not 0 <= step < len(steps):
            raise WorkflowStateError(f"Step index {step} out of range")
        return steps[step]

    def _step_reasons(self, state: WorkflowState, kind: StepKind) -> List[ValidationReason]:
        ctx = self.context(state)
        if kind == StepKind.APPLICANT:
            return self.validator.check_applicant(ctx)
        if kind == StepKind.APPLICATION_DETAILS:
            reasons = self.validator.validate_application_details(ctx).reasons
            if ctx.license_category is not None and ctx.person_id is not None and ctx.prerequisite_result is None:
                reasons.append(ValidationReason(
                    code=ValidationReasonCode.PREREQUISITE,
                    message="Prerequisites have not been checked for this applicant",
                    field="license_category",
                ))
            if ctx.person_id is not None and self._uses_held_categories(state) and state.verification_state is None:
                reasons.append(ValidationReason(
                    code=ValidationReasonCode.PREREQUISITE,
                    message="Held licenses have not been checked for this applicant",
                    field="person_id",
                ))
            return reasons
        if kind == StepKind.NOTICE_OF_CHANGE:
            return self.validator.check_notice_of_change(ctx)
        if kind == StepKind.MEDICAL:
            return self.validator.check_medical(ctx)
        if kind == StepKind.BIOMETRIC:
            return self.validator.check_biometrics(ctx)

        reasons = self.validator.check_fees(ctx)
        for earlier in state.ordered_steps[:state.ordered_steps.index(StepKind.REVIEW)]:
            outcome = self.validate_step(state, earlier)
            if not outcome.is_valid:
                reasons.append(ValidationReason(
                    code=outcome.reasons[0].code,
                    message=f"{STEP_DISPLAY_NAMES[earlier]} has unresolved issues",
                    field=earlier.value,
                ))
        return reasons

    def validate_step(self, state: WorkflowState, step: Union[StepKind, int, None] = None) -> ValidationOutcome:
        """Run the step's checks and record the reasons"""
        kind = self._step_kind(state, step)
        reasons = self._step_reasons(state, kind)
        state.per_step_errors[kind] = reasons
        return ValidationOutcome.from_reasons(reasons)

    def can_advance(self, state: WorkflowState, step: Union[StepKind, int, None] = None) -> bool:
        """True once the step has been validated with no reasons recorded"""
        kind = self._step_kind(state, step)
        return kind in state.per_step_errors and not state.per_step_errors[kind]

    def advance(self, state: WorkflowState) -> bool:
        self._ensure_open(state)
        if not self.validate_step(state).is_valid:
            return False
        if state.current_step_index >= len(state.ordered_steps) - 1:
            return False
        state.current_step_index += 1
        return True

    def go_back(self, state: WorkflowState) -> bool:
        if state.current_step_index == 0:
            return False
        state.current_step_index -= 1
        return True

    def go_to_step(self, state: WorkflowState, step: Union[StepKind, int]) -> bool:
        """Jump backwards freely; jump forwards only across valid steps"""
        target = state.ordered_steps.index(self._step_kind(state, step))
        if target <= state.current_step_index:
            state.current_step_index = target
            return True
        self._ensure_open(state)
        while state.current_step_index < target:
            if not self.advance(state):
                return False
        return True

    # Fees and submission

    def _recalculate_fees(self, state: WorkflowState) -> FeeCalculation:
        category = self.effective_category(state)
        state.fee_calculation = calculate_application_fees(
            state.application_type,
            [category] if category is not None else [],
            state.fee_schedule or [],
            as_of=state.evaluation_date,
        )
        return state.fee_calculation

    def calculate_fees(self, state: WorkflowState, fee_schedule: Sequence) -> FeeCalculation:
        self._ensure_open(state)
        state.fee_schedule = list(fee_schedule)
        return self._recalculate_fees(state)

    def build_payload(self, state: WorkflowState) -> SubmissionPayload:
        verification = state.verification_state
        return SubmissionPayload(
            person_id=state.person_id,
            location_id=state.location_id,
            application_type=state.application_type,
            license_category=self.effective_category(state),
            professional_permit_categories=list(state.professional_permit_categories),
            medical_information=state.medical_information,
            notice_of_change=state.notice_of_change,
            total_amount=state.fee_calculation.total_amount if state.fee_calculation else 0,
            authorized_categories=verification.all_authorized_categories if verification else [],
            external_licenses=verification.external_licenses if verification else [],
        )

    def submit(self, state: WorkflowState) -> SubmissionResult:
        """Validate the review step and hand the application to the submission sink"""
        self._ensure_open(state)
        if self.submission_sink is None:
            raise WorkflowStateError("No submission sink configured")

        outcome = self.validate_step(state, StepKind.REVIEW)
        if not outcome.is_valid:
            raise WorkflowStateError("Application is not ready for submission", outcome=outcome)

        result = self.submission_sink(self.build_payload(state))
        state.submission = result
        state.current_step_index = len(state.ordered_steps) - 1

        logger.info(
            "Application submitted",
            person_id=str(state.person_id),
            application_id=str(result.application_id),
            application_type=state.application_type.value,
            status=result.status.value,
        )
        return result
