"""
Pydantic schemas for fee structures and fee calculation
"""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from decimal import Decimal
import uuid

from app.models.enums import LicenseCategory, ApplicationType


# Fee Structure schemas
class FeeStructureBase(BaseModel):
    """Base schema for Fee Structure"""
    fee_type: str
    display_name: str
    description: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    currency: str = Field(default="MGA")
    applies_to_categories: List[str] = Field(default_factory=list)
    applies_to_application_types: List[str] = Field(default_factory=list)
    is_mandatory: bool = True
    is_active: bool = True


class FeeStructureCreate(FeeStructureBase):
    """Schema for creating fee structure"""
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None


class FeeStructure(FeeStructureBase):
    """Fee schedule entry as consumed by the calculator"""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[uuid.UUID] = None
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None


# Fee calculation schemas
class FeeLineItem(BaseModel):
    """One charge on the review step"""
    fee_type: str
    display_name: str
    description: Optional[str] = None
    amount: Decimal
    currency: str = "MGA"


class FeeCalculation(BaseModel):
    """Line items and total for an application"""
    line_items: List[FeeLineItem] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    currency: str = "MGA"

    @property
    def is_empty(self) -> bool:
        return not self.line_items


class FeeCalculationRequest(BaseModel):
    """Request body for the fee calculation endpoint"""
    application_type: ApplicationType
    license_categories: List[LicenseCategory] = Field(default_factory=list)
