"""
Pydantic schemas for license category rules
One canonical, fully populated shape for every category in the registry
"""

from typing import List, FrozenSet, Optional
from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import LicenseCategory, CategoryFamily, ProfessionalPermitCategory


class CategoryRule(BaseModel):
    """Immutable rule record for a single license category"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: LicenseCategory
    minimum_age: int = Field(..., ge=0, description="Minimum age in completed years")
    prerequisite_categories: FrozenSet[LicenseCategory]
    requires_learner_permit: bool
    allows_learner_permit: bool
    superseded_categories: FrozenSet[LicenseCategory] = Field(
        ..., description="Direct superseding edges; the authorized set is their closure"
    )
    category_family: CategoryFamily
    is_commercial: bool
    medical_required_always: bool
    medical_required_over_60: bool
    description: str


class ProfessionalCategoryRule(BaseModel):
    """Rule record for a professional permit sub-category"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: ProfessionalPermitCategory
    minimum_age: int = Field(..., ge=0)
    requires: FrozenSet[ProfessionalPermitCategory]
    display_name: str


# API response schemas
class CategoryRuleResponse(BaseModel):
    """Category rule as returned by the rules endpoints"""
    category: LicenseCategory
    description: str
    minimum_age: int
    prerequisite_categories: List[LicenseCategory]
    requires_learner_permit: bool
    learner_permit_class: Optional[LicenseCategory] = None
    allows_learner_permit: bool
    superseded_categories: List[LicenseCategory]
    authorized_categories: List[LicenseCategory]
    category_family: CategoryFamily
    is_commercial: bool
    is_light_vehicle: bool
    medical_required_always: bool
    medical_required_over_60: bool


class AuthorizedCategoriesResponse(BaseModel):
    """Closure of categories authorized by holding a category"""
    category: LicenseCategory
    authorized_categories: List[LicenseCategory]
    superseded_categories: List[LicenseCategory]


class ProfessionalCategoryResponse(BaseModel):
    """Professional permit sub-category for selection lists"""
    category: ProfessionalPermitCategory
    display_name: str
    minimum_age: int
    requires: List[ProfessionalPermitCategory]
