"""
Test Application persistence
Applications-by-person lookup, submission sink, status transitions and fee seeding
"""

import asyncio
import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

from app.crud import application as crud_application, applications_lookup, fee_structure, person, submission_sink
from app.models.enums import LicenseCategory as C, ApplicationType, ApplicationStatus
from app.schemas.application import SubmissionPayload
from app.schemas.person import PersonCreate


@pytest.fixture
def applicant(db_session):
    return person.create(
        db_session, obj_in=PersonCreate(surname="Rakoto", first_name="Jean", birth_date=date(1990, 5, 17))
    )


def payload_for(person_id, category=C.B, application_type=ApplicationType.NEW_LICENSE):
    return SubmissionPayload(
        person_id=person_id,
        application_type=application_type,
        license_category=category,
        total_amount=Decimal("48000.00"),
        authorized_categories=[C.LEARNERS_2],
    )


def add_application(db, person_id, category, status):
    record = crud_application.create_draft(db, payload=payload_for(person_id, category))
    record.status = status
    db.commit()
    return record


def test_person_birth_date_lookup(db_session, applicant):
    assert applicant.surname == "RAKOTO"
    assert person.get_birth_date(db_session, person_id=applicant.id) == date(1990, 5, 17)

    with pytest.raises(ValueError):
        person.get_birth_date(db_session, person_id=uuid.uuid4())


def test_get_by_person_id_filters_status_and_category(db_session, applicant):
    add_application(db_session, applicant.id, C.B, ApplicationStatus.COMPLETED)
    add_application(db_session, applicant.id, C.LEARNERS_2, ApplicationStatus.ON_HOLD)
    add_application(db_session, applicant.id, C.C1, ApplicationStatus.REJECTED)
    add_application(db_session, uuid.uuid4(), C.B, ApplicationStatus.COMPLETED)

    everything = crud_application.get_by_person_id(db_session, person_id=applicant.id)
    assert len(everything) == 3

    satisfying = crud_application.get_by_person_id(
        db_session,
        person_id=applicant.id,
        status_filter=[ApplicationStatus.COMPLETED, ApplicationStatus.ON_HOLD],
    )
    assert {a.license_category for a in satisfying} == {C.B, C.LEARNERS_2}

    filtered = crud_application.get_by_person_id(
        db_session,
        person_id=applicant.id,
        status_filter=[ApplicationStatus.COMPLETED, ApplicationStatus.ON_HOLD],
        category_filter=[C.LEARNERS_2, C.C1],
    )
    assert [a.license_category for a in filtered] == [C.LEARNERS_2]


def test_applications_lookup_runs_query_for_resolver(db_session, applicant):
    add_application(db_session, applicant.id, C.B, ApplicationStatus.COMPLETED)
    lookup = applications_lookup(db_session)

    found = asyncio.run(lookup(applicant.id, [C.B], [ApplicationStatus.COMPLETED]))
    assert [a.license_category for a in found] == [C.B]

    assert asyncio.run(lookup(applicant.id, [C.B], [ApplicationStatus.ON_HOLD])) == []


def test_submission_sink_numbers_applications_sequentially(db_session, applicant):
    sink = submission_sink(db_session)
    year = datetime.utcnow().year

    first = sink(payload_for(applicant.id))
    second = sink(payload_for(applicant.id))

    assert first.application_number == f"NL-{year}-000001"
    assert second.application_number == f"NL-{year}-000002"
    assert first.status == ApplicationStatus.SUBMITTED
    assert first.submitted_date is not None

    stored = crud_application.get(db_session, id=first.application_id)
    assert stored.total_amount == Decimal("48000.00")
    assert stored.authorized_categories == ["2"]
    assert stored.is_submitted


def test_application_numbers_are_per_type(db_session, applicant):
    sink = submission_sink(db_session)
    sink(payload_for(applicant.id))

    renewal = sink(payload_for(applicant.id, C.B, ApplicationType.RENEWAL))

    assert renewal.application_number.startswith("RN-")
    assert renewal.application_number.endswith("-000001")


def test_invalid_status_transition_rejected(db_session, applicant):
    record = crud_application.create_draft(db_session, payload=payload_for(applicant.id))
    db_session.commit()

    with pytest.raises(ValueError):
        crud_application.update_status(
            db_session, application_id=record.id, new_status=ApplicationStatus.COMPLETED
        )

    with pytest.raises(ValueError):
        crud_application.update_status(
            db_session, application_id=uuid.uuid4(), new_status=ApplicationStatus.SUBMITTED
        )


def test_default_fee_seeding_is_idempotent(db_session):
    seeded = fee_structure.initialize_default_fees(db_session, effective_from=datetime(2020, 1, 1))
    assert len(seeded) > 0

    assert fee_structure.initialize_default_fees(db_session, effective_from=datetime(2020, 1, 1)) == []

    effective = fee_structure.get_effective_fees(db_session, datetime(2026, 6, 15))
    assert len(effective) == len(seeded)
    assert all(fee.currency == "MGA" for fee in effective)
