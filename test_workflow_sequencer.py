"""
Test Workflow Step Sequencer
Step lists, gated navigation, type/category changes, verification and submission
"""

import asyncio
import uuid
from decimal import Decimal

import pytest

from app.core.exceptions import UnknownCategory, WorkflowStateError
from app.models.enums import (
    LicenseCategory as C, ApplicationType, ApplicationStatus, ProfessionalPermitCategory as P,
    ReplacementReason, StepKind, ValidationReasonCode as Code
)
from app.schemas.application import BiometricCapture, NoticeOfChange, SubmissionResult
from app.schemas.verification import ExternalLicenseClaim
from app.services.category_rules import CategoryRuleRegistry, CATEGORY_RULE_TABLE
from app.services.prerequisite_resolver import PrerequisiteResolver
from app.services.workflow_sequencer import WorkflowStepSequencer, build_step_list
from conftest import AS_OF, FakeApplicationsLookup, born_years_ago, default_fee_schedule, held

PERSON_ID = uuid.uuid4()
PHOTO = BiometricCapture(photo_reference="photo-001")


class RecordingSink:
    """Submission sink that keeps the payloads it receives"""

    def __init__(self):
        self.payloads = []

    def __call__(self, payload):
        self.payloads.append(payload)
        return SubmissionResult(
            application_id=uuid.uuid4(),
            application_number="NL-2026-000001",
            status=ApplicationStatus.SUBMITTED,
        )


def make_sequencer(registry, applications=None, error=None, sink=None):
    lookup = FakeApplicationsLookup(applications, error)
    sequencer = WorkflowStepSequencer(
        PrerequisiteResolver(lookup, registry), registry=registry, submission_sink=sink
    )
    return sequencer, lookup


def start(sequencer, application_type, category=None, age=30):
    state = sequencer.new_workflow(as_of=AS_OF)
    sequencer.select_applicant(state, PERSON_ID, born_years_ago(age))
    asyncio.run(sequencer.select_application_type(state, application_type))
    if category is not None:
        asyncio.run(sequencer.select_license_category(state, category))
    return state


def test_step_lists_per_application_type():
    assert build_step_list(ApplicationType.NEW_LICENSE) == [
        StepKind.APPLICANT, StepKind.APPLICATION_DETAILS, StepKind.MEDICAL, StepKind.BIOMETRIC, StepKind.REVIEW
    ]
    for application_type in (
        ApplicationType.RENEWAL, ApplicationType.LEARNERS_PERMIT_DUPLICATE, ApplicationType.PROFESSIONAL_LICENSE
    ):
        assert build_step_list(application_type)[2] == StepKind.NOTICE_OF_CHANGE
    assert StepKind.NOTICE_OF_CHANGE not in build_step_list(ApplicationType.REPLACEMENT)


def test_simple_new_license_without_prerequisites():
    table = {category: dict(fields) for category, fields in CATEGORY_RULE_TABLE.items()}
    table[C.B]["requires_learner_permit"] = False
    registry = CategoryRuleRegistry(rule_table=table)
    sequencer, lookup = make_sequencer(registry)

    state = start(sequencer, ApplicationType.NEW_LICENSE, C.B, age=20)

    assert StepKind.NOTICE_OF_CHANGE not in state.ordered_steps
    assert sequencer.validate_step(state, StepKind.APPLICATION_DETAILS).is_valid is True
    assert lookup.calls == []


def test_forward_movement_is_gated_and_backward_is_free(registry):
    sequencer, _ = make_sequencer(registry, [held(C.LEARNERS_2)])
    state = sequencer.new_workflow(as_of=AS_OF)
    asyncio.run(sequencer.select_application_type(state, ApplicationType.NEW_LICENSE))

    assert sequencer.advance(state) is False
    assert [r.code for r in state.per_step_errors[StepKind.APPLICANT]] == [Code.APPLICANT]
    assert sequencer.can_advance(state) is False

    sequencer.select_applicant(state, PERSON_ID, born_years_ago(30))
    assert sequencer.advance(state) is True
    assert state.current_step == StepKind.APPLICATION_DETAILS

    assert sequencer.advance(state) is False
    recorded = state.per_step_errors[StepKind.APPLICATION_DETAILS]
    assert [r.code for r in recorded] == [Code.CATEGORY_SELECTION]

    assert sequencer.go_back(state) is True
    assert state.current_step == StepKind.APPLICANT
    assert state.per_step_errors[StepKind.APPLICATION_DETAILS] == recorded
    assert sequencer.go_back(state) is False


def test_validate_step_accepts_an_index(registry):
    sequencer, _ = make_sequencer(registry)
    state = sequencer.new_workflow(as_of=AS_OF)

    assert sequencer.validate_step(state, 0).codes == [Code.APPLICANT]
    with pytest.raises(WorkflowStateError):
        sequencer.validate_step(state, 9)


def test_go_to_step_stops_at_first_invalid_step(registry):
    sequencer, _ = make_sequencer(registry, [held(C.LEARNERS_2)])
    state = start(sequencer, ApplicationType.NEW_LICENSE, C.B)

    assert sequencer.go_to_step(state, StepKind.REVIEW) is False
    assert state.current_step == StepKind.BIOMETRIC

    assert sequencer.go_to_step(state, StepKind.APPLICANT) is True
    assert state.current_step_index == 0


def test_switching_renewal_to_new_license_discards_notice_of_change(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.RENEWAL)
    sequencer.record_notice_of_change(state, NoticeOfChange(reason=ReplacementReason.LOSS))
    assert sequencer.go_to_step(state, StepKind.NOTICE_OF_CHANGE) is True

    asyncio.run(sequencer.select_application_type(state, ApplicationType.NEW_LICENSE))

    assert StepKind.NOTICE_OF_CHANGE not in state.ordered_steps
    assert state.notice_of_change is None
    assert state.current_step == StepKind.APPLICATION_DETAILS
    assert state.person_id == PERSON_ID
    assert state.birth_date == born_years_ago(30)
    assert state.per_step_errors == {}


def test_current_step_is_kept_when_it_still_applies(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.RENEWAL)
    sequencer.record_notice_of_change(state, NoticeOfChange(reason=ReplacementReason.LOSS))
    assert sequencer.go_to_step(state, StepKind.MEDICAL) is True

    asyncio.run(sequencer.select_application_type(state, ApplicationType.REPLACEMENT))

    assert state.current_step == StepKind.MEDICAL


def test_notice_of_change_rejected_when_step_absent(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.NEW_LICENSE)

    with pytest.raises(WorkflowStateError):
        sequencer.record_notice_of_change(state, NoticeOfChange(reason=ReplacementReason.LOSS))


def test_changing_category_re_resolves_prerequisites(registry):
    sequencer, lookup = make_sequencer(registry)
    state = start(sequencer, ApplicationType.RENEWAL, C.B2)
    assert [claim.category for claim in state.verification_state.external_licenses] == [C.B]

    asyncio.run(sequencer.select_license_category(state, C.A2))

    # held licenses on type selection, then B2, then A2
    assert len(lookup.calls) == 3
    assert state.prerequisite_result.required_categories == [C.A1]
    assert [claim.category for claim in state.verification_state.external_licenses] == [C.A1]


def test_unknown_category_selection_is_fatal(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.NEW_LICENSE)

    with pytest.raises(UnknownCategory):
        asyncio.run(sequencer.select_license_category(state, "Z"))


def test_lookup_failure_then_refresh(registry):
    sequencer, lookup = make_sequencer(registry, error=ConnectionError("database unavailable"))
    state = start(sequencer, ApplicationType.RENEWAL, C.B2)

    assert state.lookup_error is not None
    assert state.prerequisite_result.can_proceed is False
    assert state.prerequisite_result.requires_external is True
    assert Code.VERIFICATION in sequencer.validate_step(state, StepKind.APPLICATION_DETAILS).codes

    lookup.error = None
    lookup.applications = [held(C.B)]
    result = asyncio.run(sequencer.refresh_prerequisites(state))

    assert result.can_proceed is True
    assert state.lookup_error is None
    assert state.verification_state.external_licenses == []
    assert sequencer.validate_step(state, StepKind.APPLICATION_DETAILS).is_valid is True


def test_clerk_verification_unblocks_application_details(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.RENEWAL, C.B2)
    assert state.prerequisite_result.requires_external is True

    claim = sequencer.verify_external_claim(
        state, C.B, verified_by="clerk01", license_number="MG-0001", issuing_authority="ATT"
    )

    assert claim.verified is True
    assert claim.license_number == "MG-0001"
    assert state.prerequisite_result.can_proceed is True
    assert state.verification_state.requires_verification is False
    assert sequencer.validate_step(state, StepKind.APPLICATION_DETAILS).is_valid is True

    with pytest.raises(WorkflowStateError):
        sequencer.verify_external_claim(state, C.D, verified_by="clerk01")


def test_added_claim_replaces_placeholder(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.RENEWAL, C.B2)

    sequencer.add_external_claim(state, ExternalLicenseClaim(category=C.B, license_number="ZA-778", is_required=False))

    [claim] = state.verification_state.external_licenses
    assert claim.license_number == "ZA-778"
    assert claim.is_required is True
    assert claim.is_auto_populated is False
    assert state.prerequisite_result.can_proceed is False

    sequencer.verify_external_claim(state, C.B, verified_by="clerk01")
    assert state.prerequisite_result.can_proceed is True


def test_self_asserted_verification_does_not_satisfy_prerequisite(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.NEW_LICENSE, C.C1)

    sequencer.add_external_claim(state, ExternalLicenseClaim(category=C.B, verified=True, verified_by="applicant"))

    [claim] = state.verification_state.external_licenses
    assert claim.verified is False
    assert claim.verified_by is None
    assert claim.verified_at is None
    assert state.prerequisite_result.can_proceed is False
    assert sequencer.validate_step(state, StepKind.APPLICATION_DETAILS).is_valid is False


def test_renewal_medical_mandate_follows_held_categories(registry):
    sequencer, _ = make_sequencer(registry, [held(C.D)])
    state = start(sequencer, ApplicationType.RENEWAL, age=65)

    assert state.selected_category is None
    assert C.D in state.verification_state.all_authorized_categories
    assert Code.MEDICAL in sequencer.validate_step(state, StepKind.MEDICAL).codes

    young = start(sequencer, ApplicationType.RENEWAL, age=30)
    assert Code.MEDICAL in sequencer.validate_step(young, StepKind.MEDICAL).codes


def test_renewal_medical_threshold_uses_held_categories(registry):
    sequencer, _ = make_sequencer(registry, [held(C.B2)])

    assert sequencer.validate_step(start(sequencer, ApplicationType.RENEWAL, age=59), StepKind.MEDICAL).is_valid is True
    state = start(sequencer, ApplicationType.RENEWAL, age=60)
    assert Code.MEDICAL in sequencer.validate_step(state, StepKind.MEDICAL).codes

    sequencer, _ = make_sequencer(registry, [held(C.A)])
    assert sequencer.validate_step(start(sequencer, ApplicationType.RENEWAL, age=70), StepKind.MEDICAL).is_valid is True


def test_renewal_holdings_include_clerk_verified_claims(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.RENEWAL)
    assert sequencer.validate_step(state, StepKind.MEDICAL).is_valid is True

    sequencer.add_external_claim(state, ExternalLicenseClaim(category=C.D1, verified=True))
    assert state.verification_state.all_authorized_categories == []
    assert sequencer.validate_step(state, StepKind.MEDICAL).is_valid is True

    sequencer.verify_external_claim(state, C.D1, verified_by="clerk01")
    assert C.D1 in state.verification_state.all_authorized_categories
    assert Code.MEDICAL in sequencer.validate_step(state, StepKind.MEDICAL).codes


def test_renewal_with_unknown_holdings_mandates_medical(registry):
    sequencer, lookup = make_sequencer(registry, error=ConnectionError("database unavailable"))
    state = start(sequencer, ApplicationType.RENEWAL)

    assert state.lookup_error is not None
    assert state.verification_state.requires_verification is True
    assert Code.MEDICAL in sequencer.validate_step(state, StepKind.MEDICAL).codes

    lookup.error = None
    lookup.applications = [held(C.B)]
    asyncio.run(sequencer.refresh_prerequisites(state))

    assert state.lookup_error is None
    assert state.verification_state.requires_verification is False
    assert sequencer.validate_step(state, StepKind.MEDICAL).is_valid is True


def test_professional_category_coupling(registry):
    sequencer, _ = make_sequencer(registry)
    state = start(sequencer, ApplicationType.PROFESSIONAL_LICENSE)

    assert sequencer.toggle_professional_category(state, P.D) == [P.D, P.G]
    assert sequencer.toggle_professional_category(state, P.G) == []
    assert sequencer.toggle_professional_category(state, P.P) == [P.P]

    asyncio.run(sequencer.select_application_type(state, ApplicationType.NEW_LICENSE))
    assert state.professional_permit_categories == []
    with pytest.raises(WorkflowStateError):
        sequencer.select_professional_categories(state, [P.G])


def test_review_requires_fees(registry):
    sequencer, _ = make_sequencer(registry, [held(C.LEARNERS_2)])
    state = start(sequencer, ApplicationType.NEW_LICENSE, C.B)
    sequencer.record_biometrics(state, PHOTO)

    assert sequencer.validate_step(state, StepKind.REVIEW).codes == [Code.FEE_SELECTION]

    sequencer.calculate_fees(state, [])
    assert sequencer.validate_step(state, StepKind.REVIEW).codes == [Code.FEE_SELECTION]


def test_fees_follow_category_changes(registry):
    sequencer, _ = make_sequencer(registry, [held(C.LEARNERS_2), held(C.B)])
    state = start(sequencer, ApplicationType.NEW_LICENSE, C.B)
    sequencer.calculate_fees(state, default_fee_schedule())
    assert state.fee_calculation.total_amount == Decimal("48000.00")

    asyncio.run(sequencer.select_license_category(state, C.C1))

    assert [item.fee_type for item in state.fee_calculation.line_items] == [
        "PRACTICAL_TEST_HEAVY", "NEW_LICENSE_FEE"
    ]


def test_submit_hands_payload_to_sink_and_locks_workflow(registry):
    sink = RecordingSink()
    sequencer, _ = make_sequencer(registry, [held(C.LEARNERS_2)], sink=sink)
    state = start(sequencer, ApplicationType.NEW_LICENSE, C.B)
    sequencer.record_biometrics(state, PHOTO)
    sequencer.calculate_fees(state, default_fee_schedule())

    result = sequencer.submit(state)

    [payload] = sink.payloads
    assert payload.person_id == PERSON_ID
    assert payload.application_type == ApplicationType.NEW_LICENSE
    assert payload.license_category == C.B
    assert payload.total_amount == Decimal("48000.00")
    assert payload.authorized_categories == [C.LEARNERS_2]
    assert result.status == ApplicationStatus.SUBMITTED
    assert state.is_submitted
    assert state.current_step == StepKind.REVIEW

    with pytest.raises(WorkflowStateError):
        sequencer.record_biometrics(state, PHOTO)
    with pytest.raises(WorkflowStateError):
        asyncio.run(sequencer.select_license_category(state, C.A1))
    with pytest.raises(WorkflowStateError):
        sequencer.submit(state)


def test_deferred_category_submits_fallback(registry):
    sink = RecordingSink()
    sequencer, _ = make_sequencer(registry, sink=sink)
    state = start(sequencer, ApplicationType.RENEWAL)
    sequencer.record_notice_of_change(state, NoticeOfChange(reason=ReplacementReason.LOSS))
    sequencer.record_biometrics(state, PHOTO)
    sequencer.calculate_fees(state, default_fee_schedule())

    sequencer.submit(state)

    assert sink.payloads[0].license_category == C.B
    assert sink.payloads[0].total_amount == Decimal("38000.00")


def test_invalid_workflow_is_not_submitted(registry):
    sink = RecordingSink()
    sequencer, _ = make_sequencer(registry, [held(C.LEARNERS_2)], sink=sink)
    state = start(sequencer, ApplicationType.NEW_LICENSE, C.B)
    sequencer.calculate_fees(state, default_fee_schedule())

    with pytest.raises(WorkflowStateError) as exc_info:
        sequencer.submit(state)

    assert exc_info.value.outcome.codes == [Code.BIOMETRIC]
    assert state.per_step_errors[StepKind.BIOMETRIC]
    assert sink.payloads == []
    assert not state.is_submitted
