"""
License Rule Endpoints for Madagascar License System
Read-only view of the category rule registry
"""

import logging
from typing import List

from fastapi import APIRouter, HTTPException, status

from app.models.enums import LicenseCategory
from app.schemas.rules import CategoryRule, CategoryRuleResponse, AuthorizedCategoriesResponse
from app.services.category_rules import CategoryRuleRegistry, get_registry

logger = logging.getLogger(__name__)

router = APIRouter()


def _rule_response(registry: CategoryRuleRegistry, rule: CategoryRule) -> CategoryRuleResponse:
    category = rule.category
    return CategoryRuleResponse(
        category=category,
        description=rule.description,
        minimum_age=rule.minimum_age,
        prerequisite_categories=[c for c in registry.categories if c in rule.prerequisite_categories],
        requires_learner_permit=rule.requires_learner_permit,
        learner_permit_class=registry.get_learner_permit_class(category) if rule.requires_learner_permit else None,
        allows_learner_permit=rule.allows_learner_permit,
        superseded_categories=registry.get_superseded_categories(category),
        authorized_categories=registry.get_authorized_categories(category),
        category_family=rule.category_family,
        is_commercial=rule.is_commercial,
        is_light_vehicle=registry.is_light_vehicle(category),
        medical_required_always=rule.medical_required_always,
        medical_required_over_60=rule.medical_required_over_60,
    )


def _parse_category(category_code: str) -> LicenseCategory:
    try:
        return LicenseCategory(category_code)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"License category '{category_code}' not found"
        )


@router.get("/", response_model=List[CategoryRuleResponse])
async def list_category_rules() -> List[CategoryRuleResponse]:
    """All category rules in registry order"""
    registry = get_registry()
    return [_rule_response(registry, rule) for rule in registry.get_all_rules()]


@router.get("/{category_code}", response_model=CategoryRuleResponse)
async def get_category_rule(category_code: str) -> CategoryRuleResponse:
    """Rule for a single category"""
    registry = get_registry()
    category = _parse_category(category_code)
    return _rule_response(registry, registry.get_rule(category))


@router.get("/{category_code}/authorized", response_model=AuthorizedCategoriesResponse)
async def get_authorized_categories(category_code: str) -> AuthorizedCategoriesResponse:
    """Categories automatically authorized by holding a category"""
    registry = get_registry()
    category = _parse_category(category_code)
    return AuthorizedCategoriesResponse(
        category=category,
        authorized_categories=registry.get_authorized_categories(category),
        superseded_categories=registry.get_superseded_categories(category),
    )
