"""
CRUD operations for Application Management in Madagascar License System
Provides the applications-by-person lookup and the submission sink used by the workflow
"""

from typing import List, Optional, Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy import desc
from starlette.concurrency import run_in_threadpool
import structlog

from app.crud.base import CRUDBase
from app.models.application import Application
from app.models.enums import LicenseCategory, ApplicationType, ApplicationStatus
from app.schemas.application import SubmissionPayload, SubmissionResult
from app.services.prerequisite_resolver import ApplicationsByPersonLookup

logger = structlog.get_logger()

# Type codes used in application numbers: {TYPE_CODE}-{YEAR}-{SEQUENCE}
APPLICATION_TYPE_CODES = {
    ApplicationType.NEW_LICENSE: "NL",
    ApplicationType.LEARNERS_PERMIT: "LP",
    ApplicationType.LEARNERS_PERMIT_DUPLICATE: "LD",
    ApplicationType.RENEWAL: "RN",
    ApplicationType.REPLACEMENT: "RP",
    ApplicationType.CONVERSION: "CV",
    ApplicationType.PROFESSIONAL_LICENSE: "PL",
    ApplicationType.TEMPORARY_LICENSE: "TL",
    ApplicationType.INTERNATIONAL_PERMIT: "IP",
    ApplicationType.FOREIGN_CONVERSION: "FC",
}

# Allowed status transitions
STATUS_TRANSITIONS = {
    ApplicationStatus.DRAFT: {ApplicationStatus.SUBMITTED, ApplicationStatus.CANCELLED},
    ApplicationStatus.SUBMITTED: {ApplicationStatus.PAID, ApplicationStatus.ON_HOLD,
                                  ApplicationStatus.REJECTED, ApplicationStatus.CANCELLED},
    ApplicationStatus.PAID: {ApplicationStatus.ON_HOLD, ApplicationStatus.APPROVED, ApplicationStatus.REJECTED},
    ApplicationStatus.ON_HOLD: {ApplicationStatus.SUBMITTED, ApplicationStatus.PAID,
                                ApplicationStatus.APPROVED, ApplicationStatus.CANCELLED},
    ApplicationStatus.APPROVED: {ApplicationStatus.COMPLETED},
    ApplicationStatus.COMPLETED: set(),
    ApplicationStatus.REJECTED: set(),
    ApplicationStatus.CANCELLED: set(),
}


class CRUDApplication(CRUDBase[Application, SubmissionPayload, SubmissionPayload]):
    """CRUD operations for Application"""

    def generate_application_number(self, db: Session, application_type: ApplicationType) -> str:
        """Generate unique application number: {TYPE_CODE}-{YEAR}-{SEQUENCE}"""
        type_code = APPLICATION_TYPE_CODES.get(application_type, "XX")
        prefix = f"{type_code}-{datetime.utcnow().year}"

        last_app = db.query(Application).filter(
            Application.application_number.like(f"{prefix}-%")
        ).order_by(desc(Application.application_number)).first()

        if last_app:
            try:
                next_sequence = int(last_app.application_number.split('-')[-1]) + 1
            except (ValueError, IndexError):
                next_sequence = 1
        else:
            next_sequence = 1

        return f"{prefix}-{next_sequence:06d}"

    def get_by_person_id(
        self,
        db: Session,
        *,
        person_id: UUID,
        status_filter: Optional[Sequence[ApplicationStatus]] = None,
        category_filter: Optional[Sequence[LicenseCategory]] = None,
    ) -> List[Application]:
        """Get applications for a person with optional status and category filtering"""
        query = db.query(Application).filter(Application.person_id == person_id)

        if status_filter:
            query = query.filter(Application.status.in_(list(status_filter)))
        if category_filter:
            query = query.filter(Application.license_category.in_(list(category_filter)))

        return query.order_by(desc(Application.application_date)).all()

    def create_draft(self, db: Session, *, payload: SubmissionPayload, created_by: Optional[UUID] = None) -> Application:
        """Persist a workflow payload as a DRAFT application"""
        application = Application(
            application_number=self.generate_application_number(db, payload.application_type),
            application_type=payload.application_type,
            person_id=payload.person_id,
            location_id=payload.location_id,
            license_category=payload.license_category,
            status=ApplicationStatus.DRAFT,
            professional_permit_categories=[c.value for c in payload.professional_permit_categories],
            authorized_categories=[c.value for c in payload.authorized_categories],
            medical_information=(
                payload.medical_information.model_dump(mode="json") if payload.medical_information else None
            ),
            notice_of_change=payload.notice_of_change.model_dump(mode="json") if payload.notice_of_change else None,
            external_licenses=[claim.model_dump(mode="json") for claim in payload.external_licenses],
            total_amount=payload.total_amount,
            created_by=created_by,
            updated_by=created_by,
        )
        db.add(application)
        db.flush()
        return application

    def update_status(
        self,
        db: Session,
        *,
        application_id: UUID,
        new_status: ApplicationStatus,
        changed_by: Optional[UUID] = None,
    ) -> Application:
        """Move an application to a new status; ValueError on unknown application or invalid transition"""
        application = db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise ValueError("Application not found")

        old_status = application.status
        if new_status not in STATUS_TRANSITIONS.get(old_status, set()):
            raise ValueError(f"Invalid status transition {old_status.value} -> {new_status.value}")

        application.status = new_status
        application.updated_by = changed_by
        if new_status == ApplicationStatus.SUBMITTED:
            application.submitted_date = datetime.utcnow()

        db.commit()
        db.refresh(application)

        logger.info(
            "Application status changed",
            application_id=str(application_id),
            previous_status=old_status.value,
            new_status=new_status.value,
        )
        return application

    def submit(self, db: Session, *, payload: SubmissionPayload, submitted_by: Optional[UUID] = None) -> SubmissionResult:
        """Submission sink: create DRAFT, then transition DRAFT -> SUBMITTED"""
        application = self.create_draft(db, payload=payload, created_by=submitted_by)
        application = self.update_status(
            db, application_id=application.id, new_status=ApplicationStatus.SUBMITTED, changed_by=submitted_by
        )
        return SubmissionResult(
            application_id=application.id,
            application_number=application.application_number,
            status=application.status,
            submitted_date=application.submitted_date,
        )


application = CRUDApplication(Application)


def applications_lookup(db: Session) -> ApplicationsByPersonLookup:
    """Awaitable applications-by-person lookup bound to a session"""
    async def lookup(person_id, categories, statuses):
        return await run_in_threadpool(
            application.get_by_person_id,
            db,
            person_id=person_id,
            status_filter=statuses,
            category_filter=categories,
        )
    return lookup


def submission_sink(db: Session, submitted_by: Optional[UUID] = None):
    """Submission sink bound to a session"""
    def sink(payload: SubmissionPayload) -> SubmissionResult:
        return application.submit(db, payload=payload, submitted_by=submitted_by)
    return sink
