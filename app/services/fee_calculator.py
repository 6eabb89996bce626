"""
Fee Calculator for Madagascar License System
Pure function from (application type, categories, fee schedule) to line items and total

Fee selection per application type:
- LEARNERS_PERMIT: theory test fee(s) matching the category (light/heavy)
- NEW_LICENSE: practical test fee(s) matching the category + NEW_LICENSE_FEE
- Any other type: the <TYPE>_FEE entry
Types with no matching entry fall back to mandatory fees listing the type in
applies_to_application_types. Inactive or out-of-window fees never apply.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence, Union

from app.models.enums import LicenseCategory, ApplicationType
from app.schemas.fee import FeeCalculation, FeeLineItem


def _value(item) -> str:
    return getattr(item, "value", item)


def is_fee_effective(fee: Any, as_of: datetime) -> bool:
    """Active and within its effective window"""
    if not getattr(fee, "is_active", True):
        return False
    effective_from = getattr(fee, "effective_from", None)
    effective_until = getattr(fee, "effective_until", None)
    if effective_from is not None and as_of < effective_from:
        return False
    if effective_until is not None and as_of > effective_until:
        return False
    return True


def _applies_to_categories(fee: Any, categories: List[str]) -> bool:
    applies_to = [_value(c) for c in (getattr(fee, "applies_to_categories", None) or [])]
    if not applies_to:
        return True
    return any(category in applies_to for category in categories)


def _line_item(fee: Any) -> FeeLineItem:
    return FeeLineItem(
        fee_type=_value(fee.fee_type),
        display_name=fee.display_name,
        description=getattr(fee, "description", None),
        amount=Decimal(str(fee.amount)),
        currency=getattr(fee, "currency", None) or "MGA",
    )


def calculate_application_fees(
    application_type: Optional[ApplicationType],
    categories: Iterable[LicenseCategory],
    fee_schedule: Sequence[Any],
    as_of: Optional[Union[date, datetime]] = None,
) -> FeeCalculation:
    """Line items and total; an empty schedule gives an empty calculation"""
    if application_type is None or not fee_schedule:
        return FeeCalculation()

    if as_of is None:
        as_of = datetime.utcnow()
    elif not isinstance(as_of, datetime):
        as_of = datetime.combine(as_of, datetime.min.time())

    category_codes = [_value(c) for c in categories]
    effective = [fee for fee in fee_schedule if is_fee_effective(fee, as_of)]

    def by_prefix(prefix: str) -> List[Any]:
        return [
            fee for fee in effective
            if _value(fee.fee_type).startswith(prefix) and _applies_to_categories(fee, category_codes)
        ]

    def by_type(fee_type: str) -> List[Any]:
        return [fee for fee in effective if _value(fee.fee_type) == fee_type]

    selected: List[Any] = []
    if application_type == ApplicationType.LEARNERS_PERMIT:
        if category_codes:
            selected += by_prefix("THEORY_TEST_")
    elif application_type == ApplicationType.NEW_LICENSE:
        if category_codes:
            selected += by_prefix("PRACTICAL_TEST_")
        selected += by_type("NEW_LICENSE_FEE")
    else:
        selected += by_type(f"{application_type.value}_FEE")

    if not selected:
        selected = [
            fee for fee in effective
            if getattr(fee, "is_mandatory", True)
            and application_type.value in [_value(t) for t in (getattr(fee, "applies_to_application_types", None) or [])]
        ]

    line_items = []
    seen = set()
    for fee in selected:
        fee_type = _value(fee.fee_type)
        if fee_type in seen:
            continue
        seen.add(fee_type)
        line_items.append(_line_item(fee))

    total = sum((item.amount for item in line_items), Decimal("0"))
    currency = line_items[0].currency if line_items else "MGA"
    return FeeCalculation(line_items=line_items, total_amount=total, currency=currency)
