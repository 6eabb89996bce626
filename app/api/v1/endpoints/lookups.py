"""
Lookup Endpoints for Madagascar License System
Provides standardized dropdown data from backend enums and the rule registry
"""

from typing import List, Dict, Any
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.crud import fee_structure as crud_fee_structure
from app.models.enums import (
    ApplicationType, ApplicationStatus, StepKind, ReplacementReason,
    APPLICATION_TYPE_DISPLAY_NAMES, STEP_DISPLAY_NAMES, CATEGORY_DEFERRED_TYPES, AGE_EXEMPT_TYPES,
    LEARNERS_PERMIT_REQUIRED_TYPES
)
from app.schemas.application import StepListResponse
from app.services.category_rules import get_registry
from app.services.workflow_sequencer import build_step_list

router = APIRouter()


@router.get("/license-categories", response_model=List[Dict[str, Any]])
async def get_license_categories() -> List[Dict[str, Any]]:
    """Get all available license categories with descriptions"""
    registry = get_registry()
    return [
        {
            "value": rule.category.value,
            "label": rule.category.value,
            "description": f"{rule.description} ({rule.minimum_age}+ years)",
            "minimum_age": rule.minimum_age,
            "category_family": rule.category_family.value,
        }
        for rule in registry.get_all_rules()
    ]


@router.get("/application-types", response_model=List[Dict[str, Any]])
async def get_application_types() -> List[Dict[str, Any]]:
    """Get all available application types with user-friendly labels"""
    return [
        {
            "value": app_type.value,
            "label": APPLICATION_TYPE_DISPLAY_NAMES[app_type],
            "category_required": app_type not in CATEGORY_DEFERRED_TYPES,
            "age_exempt": app_type in AGE_EXEMPT_TYPES,
            "requires_learners_permit": app_type in LEARNERS_PERMIT_REQUIRED_TYPES,
        }
        for app_type in ApplicationType
    ]


@router.get("/application-statuses", response_model=List[Dict[str, str]])
async def get_application_statuses() -> List[Dict[str, str]]:
    """Get all application statuses"""
    return [
        {"value": status.value, "label": status.value.replace('_', ' ').title()}
        for status in ApplicationStatus
    ]


@router.get("/replacement-reasons", response_model=List[Dict[str, str]])
async def get_replacement_reasons() -> List[Dict[str, str]]:
    """Get all notice of change / replacement reasons"""
    return [
        {"value": reason.value, "label": reason.value.replace('_', ' ').title()}
        for reason in ReplacementReason
    ]


@router.get("/professional-permit-categories", response_model=List[Dict[str, Any]])
async def get_professional_permit_categories() -> List[Dict[str, Any]]:
    """Get all available professional permit categories with age requirements"""
    registry = get_registry()
    return [
        {
            "value": rule.category.value,
            "label": rule.display_name,
            "description": f"{rule.display_name.title()} ({rule.minimum_age} years minimum)",
            "minimum_age": rule.minimum_age,
            "auto_includes": [c.value for c in sorted(rule.requires, key=lambda c: c.value)],
        }
        for rule in registry.get_professional_rules()
    ]


@router.get("/workflow-steps/{application_type}", response_model=StepListResponse)
async def get_workflow_steps(application_type: ApplicationType) -> StepListResponse:
    """Ordered workflow steps for an application type"""
    steps = build_step_list(application_type)
    return StepListResponse(
        application_type=application_type,
        steps=steps,
        display_names=[STEP_DISPLAY_NAMES[step] for step in steps],
    )


@router.get("/fee-structures", response_model=List[Dict[str, Any]])
def get_fee_structures(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    """Get all currently effective fee structures"""
    return [
        {
            "fee_type": fee.fee_type,
            "display_name": fee.display_name,
            "description": fee.description,
            "amount": float(fee.amount),
            "currency": fee.currency,
            "applies_to_categories": fee.applies_to_categories or [],
            "applies_to_application_types": fee.applies_to_application_types or [],
            "is_active": fee.is_active,
            "effective_from": fee.effective_from.isoformat() if fee.effective_from else None,
            "effective_until": fee.effective_until.isoformat() if fee.effective_until else None
        }
        for fee in crud_fee_structure.get_effective_fees(db)
    ]
