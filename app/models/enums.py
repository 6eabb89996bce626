"""
Shared Enums for the Madagascar License Eligibility Engine
Standardized enumerations used across rules, validation, workflow and persistence
"""

from enum import Enum as PythonEnum


class LicenseCategory(PythonEnum):
    """SADC driver's license categories"""
    # Motorcycles and Mopeds
    A1 = "A1"               # Small motorcycles and mopeds (<125cc, 16+)
    A2 = "A2"               # Mid-range motorcycles (power limited, up to 35kW, 18+)
    A = "A"                 # Unlimited motorcycles (no power restriction, 18+)

    # Light Vehicles
    B1 = "B1"               # Light quadricycles (motorized tricycles/quadricycles, 16+)
    B = "B"                 # Standard passenger cars and light vehicles (up to 3.5t, 18+)
    B2 = "B2"               # Taxis or commercial passenger vehicles
    BE = "BE"               # Category B with trailer exceeding 750kg (18+)

    # Heavy Goods Vehicles
    C1 = "C1"               # Medium-sized goods vehicles (3.5-7.5t, 18+)
    C = "C"                 # Heavy goods vehicles (over 7.5t, 21+)
    C1E = "C1E"             # C1 category vehicles with heavy trailer (21+)
    CE = "CE"               # Full heavy combination vehicles (21+)

    # Passenger Transport (Public Transport)
    D1 = "D1"               # Small buses (up to 16 passengers, 21+)
    D = "D"                 # Standard buses and coaches (over 16 passengers, 24+)
    D2 = "D2"               # Specialized public transport (articulated buses, 24+)

    # Learner's Permit Categories
    LEARNERS_1 = "1"        # Motor cycles, motor tricycles and motor quadricycles with engine of any capacity
    LEARNERS_2 = "2"        # Light motor vehicles, other than motor cycles, motor tricycles or motor quadricycles
    LEARNERS_3 = "3"        # Any motor vehicle other than motor cycles, motor tricycles or motor quadricycles


class CategoryFamily(PythonEnum):
    """Grouping tag for license categories"""
    A = "A"                 # Motorcycles
    B = "B"                 # Light vehicles
    C = "C"                 # Heavy goods vehicles
    D = "D"                 # Passenger transport
    LEARNER = "LEARNER"     # Learner's permits


class ApplicationType(PythonEnum):
    """Types of license applications in Madagascar"""
    NEW_LICENSE = "NEW_LICENSE"                                 # First-time license application
    LEARNERS_PERMIT = "LEARNERS_PERMIT"                         # Learner's permit after theory test
    LEARNERS_PERMIT_DUPLICATE = "LEARNERS_PERMIT_DUPLICATE"     # Duplicate of a lost/damaged learner's permit
    RENEWAL = "RENEWAL"                                         # License renewal (5-year card cycle)
    REPLACEMENT = "REPLACEMENT"                                 # Replacement for lost/stolen/damaged license
    CONVERSION = "CONVERSION"                                   # Conversion of an old-format national license
    PROFESSIONAL_LICENSE = "PROFESSIONAL_LICENSE"               # Professional driving permit application
    TEMPORARY_LICENSE = "TEMPORARY_LICENSE"                     # Emergency permit (90-day validity)
    INTERNATIONAL_PERMIT = "INTERNATIONAL_PERMIT"               # IDP for travel abroad
    FOREIGN_CONVERSION = "FOREIGN_CONVERSION"                   # Convert foreign driving licence


class ApplicationStatus(PythonEnum):
    """Application workflow status (only the statuses the engine reasons about are listed first)"""
    DRAFT = "DRAFT"                           # Application saved but not submitted
    SUBMITTED = "SUBMITTED"                   # Application submitted, awaiting payment
    PAID = "PAID"                             # Payment completed, ready for processing
    ON_HOLD = "ON_HOLD"                       # Application held for administrative reasons
    APPROVED = "APPROVED"                     # Application approved, ready for printing
    COMPLETED = "COMPLETED"                   # Card collected, process complete
    REJECTED = "REJECTED"                     # Application rejected
    CANCELLED = "CANCELLED"                   # Application cancelled


class ProfessionalPermitCategory(PythonEnum):
    """Professional Driving Permit Categories"""
    P = "P"                         # Passengers (21 years minimum)
    D = "D"                         # Dangerous goods (25 years minimum) - requires G
    G = "G"                         # Goods (18 years minimum)


class ReplacementReason(PythonEnum):
    """Reasons given on the notice of change / replacement step"""
    THEFT = "THEFT"                                 # Requires police report details
    LOSS = "LOSS"
    DESTRUCTION = "DESTRUCTION"
    RECOVERY = "RECOVERY"
    NEW_CARD = "NEW_CARD"
    CHANGE_OF_PARTICULARS = "CHANGE_OF_PARTICULARS" # Requires date of change


class StepKind(PythonEnum):
    """Workflow steps, in fixed relative order"""
    APPLICANT = "APPLICANT"                     # Applicant identification
    APPLICATION_DETAILS = "APPLICATION_DETAILS" # Type + category selection, declarations
    NOTICE_OF_CHANGE = "NOTICE_OF_CHANGE"       # Replacement / renewal details
    MEDICAL = "MEDICAL"                         # Medical assessment
    BIOMETRIC = "BIOMETRIC"                     # Photo, signature, fingerprint
    REVIEW = "REVIEW"                           # Review & submit


class ValidationReasonCode(PythonEnum):
    """Rule families a validation reason can name"""
    APPLICANT = "APPLICANT"
    CATEGORY_SELECTION = "CATEGORY_SELECTION"
    AGE = "AGE"
    PARENTAL_CONSENT = "PARENTAL_CONSENT"
    DECLARATION = "DECLARATION"
    MEDICAL = "MEDICAL"
    VERIFICATION = "VERIFICATION"
    PREREQUISITE = "PREREQUISITE"
    PROFESSIONAL_CATEGORY = "PROFESSIONAL_CATEGORY"
    NOTICE_OF_CHANGE = "NOTICE_OF_CHANGE"
    BIOMETRIC = "BIOMETRIC"
    FEE_SELECTION = "FEE_SELECTION"


# Application types whose categories require a learner's permit to be held
LEARNERS_PERMIT_REQUIRED_TYPES = frozenset({
    ApplicationType.NEW_LICENSE,
    ApplicationType.CONVERSION,
    ApplicationType.PROFESSIONAL_LICENSE,
    ApplicationType.FOREIGN_CONVERSION,
})

# Application types that default the category at submission instead of asking for it
CATEGORY_DEFERRED_TYPES = frozenset({
    ApplicationType.TEMPORARY_LICENSE,
    ApplicationType.RENEWAL,
})

# Application types exempt from minimum age checks
AGE_EXEMPT_TYPES = frozenset({
    ApplicationType.TEMPORARY_LICENSE,
    ApplicationType.RENEWAL,
    ApplicationType.LEARNERS_PERMIT_DUPLICATE,
})

# Application types that show the notice of change step
NOTICE_OF_CHANGE_TYPES = frozenset({
    ApplicationType.RENEWAL,
    ApplicationType.LEARNERS_PERMIT_DUPLICATE,
    ApplicationType.PROFESSIONAL_LICENSE,
})

# Statuses that count as holding a category for prerequisite purposes
PREREQUISITE_SATISFYING_STATUSES = (ApplicationStatus.COMPLETED, ApplicationStatus.ON_HOLD)


# Display names mapping for frontend
APPLICATION_TYPE_DISPLAY_NAMES = {
    ApplicationType.NEW_LICENSE: "NEW DRIVER'S LICENSE",
    ApplicationType.LEARNERS_PERMIT: "LEARNER'S PERMIT",
    ApplicationType.LEARNERS_PERMIT_DUPLICATE: "DUPLICATE LEARNER'S PERMIT",
    ApplicationType.RENEWAL: "LICENSE RENEWAL",
    ApplicationType.REPLACEMENT: "LICENSE REPLACEMENT",
    ApplicationType.CONVERSION: "LICENSE CONVERSION",
    ApplicationType.PROFESSIONAL_LICENSE: "PROFESSIONAL DRIVING PERMIT",
    ApplicationType.TEMPORARY_LICENSE: "TEMPORARY LICENSE",
    ApplicationType.INTERNATIONAL_PERMIT: "INTERNATIONAL DRIVING PERMIT",
    ApplicationType.FOREIGN_CONVERSION: "FOREIGN LICENSE CONVERSION",
}

STEP_DISPLAY_NAMES = {
    StepKind.APPLICANT: "Applicant Details",
    StepKind.APPLICATION_DETAILS: "Application Details",
    StepKind.NOTICE_OF_CHANGE: "Notice of Change",
    StepKind.MEDICAL: "Medical Assessment",
    StepKind.BIOMETRIC: "Biometric Data",
    StepKind.REVIEW: "Review & Submit",
}
