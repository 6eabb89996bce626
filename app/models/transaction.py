"""
Fee Structure Model for the License Eligibility Engine
Configurable fee schedule consumed by the fee calculator at review time

Features:
- Application-type specific fees (one <TYPE>_FEE per application type)
- Light/heavy test fees selected through applies_to_categories
- Effective date ranges and soft deactivation
"""

from sqlalchemy import Column, String, DateTime, Boolean, Text, Numeric, JSON
from sqlalchemy.sql import func
from decimal import Decimal
from datetime import datetime
from enum import Enum as PythonEnum

from app.models.base import BaseModel


class FeeType(PythonEnum):
    """Types of fees in the system - Application-type specific"""
    # Test fees (used across multiple application types)
    THEORY_TEST_LIGHT = "THEORY_TEST_LIGHT"         # Theory test for light vehicles (10,000 Ar)
    THEORY_TEST_HEAVY = "THEORY_TEST_HEAVY"         # Theory test for heavy vehicles (15,000 Ar)
    PRACTICAL_TEST_LIGHT = "PRACTICAL_TEST_LIGHT"   # Practical test for light vehicles (10,000 Ar)
    PRACTICAL_TEST_HEAVY = "PRACTICAL_TEST_HEAVY"   # Practical test for heavy vehicles (15,000 Ar)

    # Application-type-specific fees (adjustable)
    NEW_LICENSE_FEE = "NEW_LICENSE_FEE"                             # New license application + card (38,000 Ar)
    LEARNERS_PERMIT_FEE = "LEARNERS_PERMIT_FEE"                     # Learners permit (test fees only)
    LEARNERS_PERMIT_DUPLICATE_FEE = "LEARNERS_PERMIT_DUPLICATE_FEE" # Duplicate learners permit
    RENEWAL_FEE = "RENEWAL_FEE"                                     # License renewal (38,000 Ar)
    REPLACEMENT_FEE = "REPLACEMENT_FEE"                             # License replacement (38,000 Ar)
    CONVERSION_FEE = "CONVERSION_FEE"                               # Old-format license conversion
    TEMPORARY_LICENSE_FEE = "TEMPORARY_LICENSE_FEE"                 # Temporary license (10,000 Ar)
    INTERNATIONAL_PERMIT_FEE = "INTERNATIONAL_PERMIT_FEE"           # International permit (38,000 Ar)
    PROFESSIONAL_LICENSE_FEE = "PROFESSIONAL_LICENSE_FEE"           # Professional license (38,000 Ar)
    FOREIGN_CONVERSION_FEE = "FOREIGN_CONVERSION_FEE"               # Foreign license conversion (38,000 Ar)


LIGHT_FEE_CATEGORIES = ["A1", "A2", "A", "B1", "B", "1", "2"]
HEAVY_FEE_CATEGORIES = ["B2", "BE", "C1", "C", "C1E", "CE", "D1", "D", "D2", "3"]


class FeeStructure(BaseModel):
    """Configurable fee structure"""
    __tablename__ = "fee_structures"

    # Fee identification
    fee_type = Column(String(50), nullable=False, unique=True, comment="Type of fee (FeeType value)")
    display_name = Column(String(100), nullable=False, comment="Human-readable fee name")
    description = Column(Text, nullable=True, comment="Fee description")

    # Fee amount
    amount = Column(Numeric(10, 2), nullable=False, comment="Fee amount in Ariary (Ar)")
    currency = Column(String(3), nullable=False, default='MGA', comment="Currency code")

    # Applicability (empty list = applies to all)
    applies_to_categories = Column(JSON, nullable=False, default=list, comment="License categories this fee applies to")
    applies_to_application_types = Column(JSON, nullable=False, default=list, comment="Application types this fee applies to")
    is_mandatory = Column(Boolean, nullable=False, default=True, comment="Whether the fee is always charged when applicable")

    # Fee settings
    is_active = Column(Boolean, nullable=False, default=True, comment="Whether fee is currently active")

    # Date ranges
    effective_from = Column(DateTime, nullable=False, default=func.now(), comment="When fee becomes effective")
    effective_until = Column(DateTime, nullable=True, comment="When fee expires (null = indefinite)")

    def is_effective(self, date: datetime = None) -> bool:
        """Check if fee is effective on given date (defaults to now)"""
        if date is None:
            date = datetime.utcnow()

        if not self.is_active:
            return False

        if self.effective_from and date < self.effective_from:
            return False

        if self.effective_until and date > self.effective_until:
            return False

        return True

    def __repr__(self):
        return f"<FeeStructure(type='{self.fee_type}', amount={self.amount}, active={self.is_active})>"


# Default fee structure for seeding (in Malagasy Ariary)
DEFAULT_FEE_STRUCTURE = {
    # Test Fees
    FeeType.THEORY_TEST_LIGHT: {
        "display_name": "Theory Test (Light Vehicles)",
        "description": "Theory test for light vehicle categories (A1, A2, A, B1, B)",
        "amount": Decimal("10000.00"),
        "applies_to_categories": LIGHT_FEE_CATEGORIES,
    },
    FeeType.THEORY_TEST_HEAVY: {
        "display_name": "Theory Test (Heavy Vehicles)",
        "description": "Theory test for heavy vehicle categories (B2, BE, C1, C, C1E, CE, D1, D, D2)",
        "amount": Decimal("15000.00"),
        "applies_to_categories": HEAVY_FEE_CATEGORIES,
    },
    FeeType.PRACTICAL_TEST_LIGHT: {
        "display_name": "Practical Test (Light Vehicles)",
        "description": "Practical test for light vehicle categories",
        "amount": Decimal("10000.00"),
        "applies_to_categories": LIGHT_FEE_CATEGORIES,
    },
    FeeType.PRACTICAL_TEST_HEAVY: {
        "display_name": "Practical Test (Heavy Vehicles)",
        "description": "Practical test for heavy vehicle categories",
        "amount": Decimal("15000.00"),
        "applies_to_categories": HEAVY_FEE_CATEGORIES,
    },

    # Application-Type-Specific Fees (adjustable)
    FeeType.NEW_LICENSE_FEE: {
        "display_name": "New License - Application + Card",
        "description": "Complete new license application processing and card production",
        "amount": Decimal("38000.00"),
    },
    FeeType.LEARNERS_PERMIT_FEE: {
        "display_name": "Learners Permit - Additional Fee",
        "description": "Additional fee for learners permit (test fees separate)",
        "amount": Decimal("0.00"),
    },
    FeeType.LEARNERS_PERMIT_DUPLICATE_FEE: {
        "display_name": "Duplicate Learners Permit",
        "description": "Reissue of a lost or damaged learners permit",
        "amount": Decimal("10000.00"),
    },
    FeeType.RENEWAL_FEE: {
        "display_name": "License Renewal",
        "description": "License renewal processing and new card production",
        "amount": Decimal("38000.00"),
    },
    FeeType.REPLACEMENT_FEE: {
        "display_name": "License Replacement",
        "description": "Replacement card for lost, stolen or damaged license",
        "amount": Decimal("38000.00"),
    },
    FeeType.CONVERSION_FEE: {
        "display_name": "License Conversion",
        "description": "Conversion of an old-format national license",
        "amount": Decimal("38000.00"),
    },
    FeeType.TEMPORARY_LICENSE_FEE: {
        "display_name": "Temporary License",
        "description": "90-day temporary license",
        "amount": Decimal("10000.00"),
    },
    FeeType.INTERNATIONAL_PERMIT_FEE: {
        "display_name": "International Driving Permit",
        "description": "International driving permit for travel abroad",
        "amount": Decimal("38000.00"),
    },
    FeeType.PROFESSIONAL_LICENSE_FEE: {
        "display_name": "Professional License",
        "description": "Professional driving permit (P/D/G)",
        "amount": Decimal("38000.00"),
    },
    FeeType.FOREIGN_CONVERSION_FEE: {
        "display_name": "Foreign License Conversion",
        "description": "Conversion of a foreign driving licence",
        "amount": Decimal("38000.00"),
    },
}
