"""
Prerequisite Resolver for Madagascar License System
Decides whether an applicant already holds the categories a chosen category requires

Sources of evidence:
1. In-system applications with status COMPLETED or ON_HOLD (via the applications-by-person lookup)
2. External license claims confirmed manually by a clerk

The lookup is the only awaitable call. When it fails, the result is fail-closed
(can_proceed=False, requires_external=True) and ExternalLookupError is raised with it.

Renewals and temporary licenses defer the category choice; for those, resolve_held
reports everything the applicant holds instead of a prerequisite result.
"""

from datetime import date
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple
import uuid

import structlog

from app.core.exceptions import ExternalLookupError
from app.models.enums import (
    LicenseCategory, ApplicationType, ApplicationStatus,
    LEARNERS_PERMIT_REQUIRED_TYPES, PREREQUISITE_SATISFYING_STATUSES
)
from app.schemas.verification import (
    ExternalLicenseClaim, LicenseVerificationState, PrerequisiteCheckResult, SystemLicense
)
from app.services.category_rules import CategoryRuleRegistry, get_registry

logger = structlog.get_logger()

# (person_id, categories, statuses) -> applications exposing id, license_category, status
ApplicationsByPersonLookup = Callable[
    [uuid.UUID, Sequence[LicenseCategory], Sequence[ApplicationStatus]],
    Awaitable[Sequence[Any]],
]


def _as_enum(enum_cls, value):
    return value if isinstance(value, enum_cls) else enum_cls(value)


class PrerequisiteResolver:
    """Resolve prerequisite categories against system records and verified claims"""

    def __init__(self, lookup: ApplicationsByPersonLookup, registry: Optional[CategoryRuleRegistry] = None):
        self.lookup = lookup
        self.registry = registry or get_registry()

    def required_categories(
        self, category: LicenseCategory, application_type: Optional[ApplicationType]
    ) -> List[LicenseCategory]:
        """Prerequisite categories plus the learner's permit class when the type needs one"""
        rule = self.registry.get_rule(category)
        required = set(rule.prerequisite_categories)
        if rule.requires_learner_permit and application_type in LEARNERS_PERMIT_REQUIRED_TYPES:
            required.add(self.registry.get_learner_permit_class(category))
        return [c for c in self.registry.categories if c in required]

    async def resolve(
        self,
        person_id: Optional[uuid.UUID],
        category: LicenseCategory,
        application_type: Optional[ApplicationType],
        existing_state: Optional[LicenseVerificationState] = None,
        as_of: Optional[date] = None,
    ) -> Tuple[PrerequisiteCheckResult, LicenseVerificationState]:
        as_of = as_of or date.today()
        required = self.required_categories(category, application_type)
        claims = list(existing_state.external_licenses) if existing_state else []

        if not required:
            return self.evaluate(
                person_id, category, application_type, required, [], claims, as_of
            )

        system_licenses: List[SystemLicense] = []
        if person_id is not None:
            query_categories = [
                c for c in self.registry.categories
                if any(self.registry.authorizes(c, r) for r in required)
            ]
            try:
                applications = await self.lookup(person_id, query_categories, PREREQUISITE_SATISFYING_STATUSES)
            except Exception as e:
                result, state = self.evaluate(
                    person_id, category, application_type, required, [], claims, as_of
                )
                result = result.model_copy(update={
                    "can_proceed": False, "requires_external": True, "lookup_failed": True
                })
                state = state.model_copy(update={"requires_verification": True})
                logger.warning(
                    "Prerequisite lookup failed, requiring external verification",
                    person_id=str(person_id),
                    license_category=category.value,
                    required_categories=[c.value for c in required],
                    error=str(e),
                )
                raise ExternalLookupError(
                    f"Could not retrieve existing applications for person {person_id}: {e}",
                    person_id=person_id,
                    check_result=result,
                    verification_state=state,
                ) from e
            system_licenses = self._matching_licenses(applications, required)

        return self.evaluate(
            person_id, category, application_type, required, system_licenses, claims, as_of
        )

    def _matching_licenses(
        self, applications: Iterable[Any], required: Optional[List[LicenseCategory]] = None
    ) -> List[SystemLicense]:
        """Held licenses in a satisfying status; with `required`, only those authorizing one of them"""
        matches = []
        for application in applications:
            status = _as_enum(ApplicationStatus, application.status)
            held = _as_enum(LicenseCategory, application.license_category)
            if status not in PREREQUISITE_SATISFYING_STATUSES:
                continue
            if required is None or any(self.registry.authorizes(held, r) for r in required):
                matches.append(SystemLicense(
                    application_id=getattr(application, "id", None), category=held, status=status
                ))
        return matches

    def _claim_satisfies(self, claim: ExternalLicenseClaim, required: LicenseCategory, as_of: date) -> bool:
        return (
            claim.verified
            and not claim.is_expired(as_of)
            and self.registry.authorizes(claim.category, required)
        )

    def evaluate(
        self,
        person_id: Optional[uuid.UUID],
        category: LicenseCategory,
        application_type: Optional[ApplicationType],
        required: List[LicenseCategory],
        system_licenses: List[SystemLicense],
        claims: List[ExternalLicenseClaim],
        as_of: date,
    ) -> Tuple[PrerequisiteCheckResult, LicenseVerificationState]:
        """Combine system licenses and external claims into a result, without any lookup"""
        held_in_system = [held.category for held in system_licenses]
        missing = [
            r for r in required
            if not any(self.registry.authorizes(held, r) for held in held_in_system)
        ]

        # Unverified placeholders live only while their category is missing; other claims are kept,
        # and block only while they stand in for a missing category
        kept = [
            claim.model_copy(update={"is_required": claim.category in missing})
            for claim in claims
            if claim.verified or not claim.is_auto_populated or claim.category in missing
        ]
        for required_category in missing:
            if not any(claim.category == required_category for claim in kept):
                kept.append(ExternalLicenseClaim(
                    category=required_category,
                    verified=False,
                    is_required=True,
                    is_auto_populated=True,
                    required_for_category=category,
                ))

        unresolved = [
            r for r in missing
            if not any(self._claim_satisfies(claim, r, as_of) for claim in kept)
        ]
        can_proceed = not unresolved

        matching = [
            held for held in system_licenses
            if any(self.registry.authorizes(held.category, r) for r in required)
        ]
        result = PrerequisiteCheckResult(
            license_category=category,
            application_type=application_type,
            required_categories=required,
            missing_categories=missing,
            has_completed=any(held.status == ApplicationStatus.COMPLETED for held in matching),
            has_on_hold=any(held.status == ApplicationStatus.ON_HOLD for held in matching),
            can_proceed=can_proceed,
            requires_external=not can_proceed,
        )

        verified_claims = [c.category for c in kept if c.verified and not c.is_expired(as_of)]
        state = LicenseVerificationState(
            person_id=person_id,
            requires_verification=any(
                claim.is_required and claim.category in unresolved for claim in kept
            ),
            system_licenses=system_licenses,
            external_licenses=kept,
            all_authorized_categories=self.registry.get_authorized_union(held_in_system + verified_claims),
        )

        logger.info(
            "Prerequisites resolved",
            person_id=str(person_id) if person_id else None,
            license_category=category.value,
            required_categories=[c.value for c in required],
            missing_categories=[c.value for c in missing],
            can_proceed=can_proceed,
        )
        return result, state

    def reevaluate(
        self,
        result: PrerequisiteCheckResult,
        state: LicenseVerificationState,
        as_of: Optional[date] = None,
    ) -> Tuple[PrerequisiteCheckResult, LicenseVerificationState]:
        """Recompute after a claim was added or verified, reusing the known system licenses"""
        reevaluated, new_state = self.evaluate(
            state.person_id,
            result.license_category,
            result.application_type,
            list(result.required_categories),
            list(state.system_licenses),
            list(state.external_licenses),
            as_of or date.today(),
        )
        return reevaluated.model_copy(update={"lookup_failed": result.lookup_failed}), new_state

    # Held licenses, for application types that defer the category choice

    async def resolve_held(
        self,
        person_id: Optional[uuid.UUID],
        existing_state: Optional[LicenseVerificationState] = None,
        as_of: Optional[date] = None,
    ) -> LicenseVerificationState:
        """
        Every category the applicant holds, in-system or through verified claims.

        Renewals and temporary licenses carry no selected category, so policies that
        depend on the category (the medical mandate) read this state instead. A failed
        lookup leaves the holdings unknown: requires_verification=True and
        ExternalLookupError is raised with that state.
        """
        as_of = as_of or date.today()
        claims = list(existing_state.external_licenses) if existing_state else []
        if person_id is None:
            return self.evaluate_held(person_id, [], claims, as_of)

        try:
            applications = await self.lookup(
                person_id, list(self.registry.categories), PREREQUISITE_SATISFYING_STATUSES
            )
        except Exception as e:
            state = self.evaluate_held(person_id, [], claims, as_of).model_copy(
                update={"requires_verification": True}
            )
            logger.warning(
                "Held license lookup failed, holdings unknown",
                person_id=str(person_id),
                error=str(e),
            )
            raise ExternalLookupError(
                f"Could not retrieve existing applications for person {person_id}: {e}",
                person_id=person_id,
                verification_state=state,
            ) from e

        return self.evaluate_held(person_id, self._matching_licenses(applications), claims, as_of)

    def evaluate_held(
        self,
        person_id: Optional[uuid.UUID],
        system_licenses: List[SystemLicense],
        claims: List[ExternalLicenseClaim],
        as_of: date,
    ) -> LicenseVerificationState:
        # No prerequisite is pending, so placeholders have nothing to stand for
        kept = [
            claim.model_copy(update={"is_required": False})
            for claim in claims if claim.verified or not claim.is_auto_populated
        ]
        verified_claims = [c.category for c in kept if c.verified and not c.is_expired(as_of)]
        return LicenseVerificationState(
            person_id=person_id,
            requires_verification=False,
            system_licenses=system_licenses,
            external_licenses=kept,
            all_authorized_categories=self.registry.get_authorized_union(
                [held.category for held in system_licenses] + verified_claims
            ),
        )

    def reevaluate_held(
        self, state: LicenseVerificationState, as_of: Optional[date] = None
    ) -> LicenseVerificationState:
        """Recompute held categories after a claim changed; unknown holdings stay unknown"""
        new_state = self.evaluate_held(
            state.person_id, list(state.system_licenses), list(state.external_licenses), as_of or date.today()
        )
        return new_state.model_copy(update={"requires_verification": state.requires_verification})
