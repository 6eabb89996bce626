"""
Database models for the License Eligibility Engine
"""

from app.models.base import Base, BaseModel
from app.models.person import Person
from app.models.application import Application
from app.models.transaction import FeeStructure, FeeType, DEFAULT_FEE_STRUCTURE
from app.models.enums import (
    LicenseCategory, ApplicationType, ApplicationStatus, ProfessionalPermitCategory, StepKind
)
