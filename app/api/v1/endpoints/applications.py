"""
Application Workflow Endpoints for Madagascar License System
Prerequisite checks, eligibility validation, fee calculation and submission

The server replays the submitted workflow inputs through the same sequencer the
clerk UI uses, so every decision is re-validated before anything is persisted.
"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.database import get_db
from app.core.exceptions import ExternalLookupError, WorkflowStateError
from app.crud import person as crud_person, fee_structure as crud_fee_structure
from app.crud import applications_lookup, submission_sink
from app.models.enums import ApplicationType, StepKind
from app.schemas.application import (
    ApplicationWorkflowRequest, EligibilityValidationResponse, SubmissionResult
)
from app.schemas.fee import FeeCalculation, FeeCalculationRequest
from app.schemas.verification import (
    ExternalLicenseClaim, LicenseVerificationState, PrerequisiteCheckRequest, PrerequisiteCheckResponse
)
from app.services.category_rules import get_registry
from app.services.fee_calculator import calculate_application_fees
from app.services.prerequisite_resolver import PrerequisiteResolver
from app.services.workflow_sequencer import WorkflowState, WorkflowStepSequencer

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_birth_date(db: Session, person_id) -> Optional[date]:
    try:
        return crud_person.get_birth_date(db, person_id=person_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Person {person_id} not found"
        )


def _clerk_confirmed(claim: ExternalLicenseClaim) -> ExternalLicenseClaim:
    """A claim stays verified only when it names the verifying clerk"""
    if claim.verified and claim.verified_by:
        return claim.model_copy(update={"verified_at": claim.verified_at or datetime.utcnow()})
    return claim.as_unverified()


def get_sequencer(db: Session = Depends(get_db)) -> WorkflowStepSequencer:
    """Sequencer wired to this request's database session"""
    registry = get_registry()
    return WorkflowStepSequencer(
        resolver=PrerequisiteResolver(applications_lookup(db), registry),
        registry=registry,
        submission_sink=submission_sink(db),
    )


async def replay_workflow(
    db: Session, sequencer: WorkflowStepSequencer, request: ApplicationWorkflowRequest
) -> WorkflowState:
    """Drive a fresh workflow through the request's inputs using the sequencer transitions"""
    state = sequencer.new_workflow(as_of=request.as_of)

    if request.person_id is not None:
        birth_date = await run_in_threadpool(_get_birth_date, db, request.person_id)
        sequencer.select_applicant(state, request.person_id, birth_date)

    for claim in request.external_licenses:
        sequencer.add_external_claim(state, claim)
        if claim.verified and claim.verified_by:
            sequencer.verify_external_claim(
                state, claim.category, verified_by=claim.verified_by, notes=claim.verification_notes
            )

    await sequencer.select_application_type(state, request.application_type)
    if request.license_category is not None:
        await sequencer.select_license_category(state, request.license_category)

    if request.application_type == ApplicationType.PROFESSIONAL_LICENSE:
        sequencer.select_professional_categories(state, request.professional_permit_categories)
    sequencer.record_declarations(state, request.declarations)
    sequencer.record_parental_consent(state, request.parental_consent)
    if request.notice_of_change is not None and StepKind.NOTICE_OF_CHANGE in state.ordered_steps:
        sequencer.record_notice_of_change(state, request.notice_of_change)
    sequencer.record_medical_information(state, request.medical_information)
    sequencer.record_biometrics(state, request.biometrics)
    if request.location_id is not None:
        sequencer.select_location(state, request.location_id)

    fee_schedule = await run_in_threadpool(crud_fee_structure.get_effective_fees, db)
    sequencer.calculate_fees(state, fee_schedule)
    return state


@router.post("/prerequisites/check", response_model=PrerequisiteCheckResponse)
async def check_prerequisites(
    request: PrerequisiteCheckRequest,
    db: Session = Depends(get_db),
    sequencer: WorkflowStepSequencer = Depends(get_sequencer),
) -> PrerequisiteCheckResponse:
    """
    Check whether the applicant already holds the categories required for a category.

    A failed applications lookup still returns 200 with the fail-closed result
    (can_proceed=False, requires_external=True) and lookup_failed=True.
    """
    await run_in_threadpool(_get_birth_date, db, request.person_id)
    existing_state = LicenseVerificationState(
        person_id=request.person_id,
        external_licenses=[_clerk_confirmed(claim) for claim in request.external_licenses],
    )
    try:
        result, verification_state = await sequencer.resolver.resolve(
            request.person_id,
            request.license_category,
            request.application_type,
            existing_state=existing_state,
            as_of=request.as_of,
        )
    except ExternalLookupError as e:
        logger.warning(f"Prerequisite lookup failed for person {request.person_id}: {e}")
        return PrerequisiteCheckResponse(
            result=e.check_result,
            verification_state=e.verification_state,
            lookup_failed=True,
            message="Existing licenses could not be retrieved; external verification required",
        )

    return PrerequisiteCheckResponse(result=result, verification_state=verification_state)


@router.post("/validate", response_model=EligibilityValidationResponse)
async def validate_application(
    request: ApplicationWorkflowRequest,
    db: Session = Depends(get_db),
    sequencer: WorkflowStepSequencer = Depends(get_sequencer),
) -> EligibilityValidationResponse:
    """Validate every step of a workflow and report all reasons per step"""
    state = await replay_workflow(db, sequencer, request)
    outcomes = {step: sequencer.validate_step(state, step) for step in state.ordered_steps}
    return EligibilityValidationResponse(
        is_valid=all(outcome.is_valid for outcome in outcomes.values()),
        steps=state.ordered_steps,
        step_outcomes=outcomes,
        prerequisite_result=state.prerequisite_result,
        verification_state=state.verification_state,
        fee_calculation=state.fee_calculation,
        lookup_failed=state.lookup_error is not None,
    )


@router.post("/fees/calculate", response_model=FeeCalculation)
def calculate_fees(request: FeeCalculationRequest, db: Session = Depends(get_db)) -> FeeCalculation:
    """Fee line items and total for an application type and categories"""
    return calculate_application_fees(
        request.application_type,
        request.license_categories,
        crud_fee_structure.get_effective_fees(db),
    )


@router.post("/submit", response_model=SubmissionResult, status_code=status.HTTP_201_CREATED)
async def submit_application(
    request: ApplicationWorkflowRequest,
    db: Session = Depends(get_db),
    sequencer: WorkflowStepSequencer = Depends(get_sequencer),
) -> SubmissionResult:
    """Re-validate the full workflow and submit it (DRAFT -> SUBMITTED)"""
    state = await replay_workflow(db, sequencer, request)
    try:
        result = await run_in_threadpool(sequencer.submit, state)
    except WorkflowStateError as e:
        if e.outcome is not None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "message": str(e),
                    "step_errors": {
                        step.value: [reason.model_dump(mode="json") for reason in reasons]
                        for step, reasons in state.per_step_errors.items() if reasons
                    },
                }
            )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    logger.info(f"Application {result.application_number} submitted for person {request.person_id}")
    return result
