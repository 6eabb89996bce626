"""
Application Model for the License Eligibility Engine

Only the columns the engine consumes or produces are modelled:
- applicant (person_id) and processing location
- single license category per application
- application type and workflow status
- professional permit categories, medical information and external license claims captured by the workflow
- fee total computed at review time
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, JSON, Uuid, TypeDecorator
from sqlalchemy.sql import func
from datetime import datetime

from app.models.base import BaseModel
from app.models.enums import LicenseCategory, ApplicationType, ApplicationStatus


class EnumValueType(TypeDecorator):
    """
    Store enum values (not names) as strings.
    LicenseCategory.LEARNERS_1 is persisted as "1", never "LEARNERS_1".
    """
    impl = String
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        self.enum_class = enum_class
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        """Convert Python enum to database value"""
        if value is None:
            return value
        if isinstance(value, self.enum_class):
            return value.value
        # Accept raw values; raises ValueError for anything outside the enum
        return self.enum_class(value).value

    def process_result_value(self, value, dialect):
        """Convert database value back to Python enum"""
        if value is None:
            return value
        return self.enum_class(value)


class Application(BaseModel):
    """Driver's license application as persisted after submission"""
    __tablename__ = "applications"

    application_number = Column(String(20), nullable=False, unique=True, index=True, comment="Unique application number")
    application_type = Column(EnumValueType(ApplicationType, 40), nullable=False, index=True, comment="Type of application")

    person_id = Column(Uuid(as_uuid=True), ForeignKey('persons.id'), nullable=False, index=True, comment="Applicant person ID")
    location_id = Column(Uuid(as_uuid=True), nullable=True, index=True, comment="Processing location")

    license_category = Column(EnumValueType(LicenseCategory, 5), nullable=False, comment="Single license category for this application")
    status = Column(EnumValueType(ApplicationStatus, 20), nullable=False, default=ApplicationStatus.DRAFT, index=True, comment="Current application status")

    professional_permit_categories = Column(JSON, nullable=True, comment="Professional permit categories (P/D/G)")
    authorized_categories = Column(JSON, nullable=True, comment="Categories authorized once this application is granted")
    medical_information = Column(JSON, nullable=True, comment="Medical assessment captured by the workflow")
    notice_of_change = Column(JSON, nullable=True, comment="Replacement / renewal details")
    external_licenses = Column(JSON, nullable=True, comment="External license claims and their verification")
    total_amount = Column(Numeric(10, 2), nullable=True, comment="Fee total in Ariary at submission")

    application_date = Column(DateTime, nullable=False, default=func.now(), comment="Date application was created")
    submitted_date = Column(DateTime, nullable=True, comment="Date application was submitted")

    def __repr__(self):
        return f"<Application(id={self.id}, number='{self.application_number}', type='{self.application_type}', status='{self.status}')>"

    @property
    def is_submitted(self) -> bool:
        return self.status != ApplicationStatus.DRAFT and self.submitted_date is not None

    def mark_submitted(self, when: datetime = None):
        """DRAFT -> SUBMITTED"""
        self.status = ApplicationStatus.SUBMITTED
        self.submitted_date = when or datetime.utcnow()
