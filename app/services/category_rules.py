"""
Category Rule Registry for Madagascar License System
Static per-category rule table and the pure derivations built on it

The table is loaded once, validated once and is read-only afterwards:
- every category has exactly one fully populated rule
- every referenced category exists
- superseding and prerequisite graphs are acyclic
- the learner permit mapping only points at learner permit categories
Any violation raises ConfigurationError.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

from pydantic import ValidationError

from app.core.exceptions import ConfigurationError, UnknownCategory
from app.models.enums import LicenseCategory, CategoryFamily, ProfessionalPermitCategory
from app.schemas.rules import CategoryRule, ProfessionalCategoryRule

logger = logging.getLogger(__name__)

C = LicenseCategory
L1, L2, L3 = C.LEARNERS_1, C.LEARNERS_2, C.LEARNERS_3


def _rule(minimum_age, prerequisites, requires_lp, allows_lp, superseded, family,
          commercial, medical_always, medical_60, description):
    return {
        "minimum_age": minimum_age,
        "prerequisite_categories": prerequisites,
        "requires_learner_permit": requires_lp,
        "allows_learner_permit": allows_lp,
        "superseded_categories": superseded,
        "category_family": family,
        "is_commercial": commercial,
        "medical_required_always": medical_always,
        "medical_required_over_60": medical_60,
        "description": description,
    }


F = CategoryFamily

# Superseding edges are direct only; authorized sets are their closure.
CATEGORY_RULE_TABLE: Dict[LicenseCategory, Dict[str, Any]] = {
    C.A1: _rule(16, [], True, True, [], F.A, False, False, False,
                "Small motorcycles and mopeds (<125cc)"),
    C.A2: _rule(18, [C.A1], True, True, [C.A1], F.A, False, False, False,
                "Mid-range motorcycles (power limited, up to 35kW)"),
    C.A: _rule(18, [C.A2], True, True, [C.A2], F.A, False, False, False,
               "Unlimited motorcycles"),
    C.B1: _rule(16, [], True, True, [], F.B, False, False, False,
                "Light quadricycles (motorized tricycles/quadricycles)"),
    C.B: _rule(18, [], True, True, [C.B1, C.B2], F.B, False, False, False,
               "Standard passenger cars and light vehicles (up to 3.5t)"),
    C.B2: _rule(18, [C.B], False, False, [C.B1], F.B, True, False, True,
                "Taxis or commercial passenger vehicles"),
    C.BE: _rule(18, [C.B], False, False, [C.B], F.B, False, False, False,
                "Category B with trailer exceeding 750kg"),
    C.C1: _rule(18, [C.B], False, False, [C.B], F.C, True, False, True,
                "Medium-sized goods vehicles (3.5-7.5t)"),
    C.C: _rule(21, [C.C1], False, False, [C.C1], F.C, True, False, True,
               "Heavy goods vehicles (over 7.5t)"),
    C.C1E: _rule(21, [C.C1], False, False, [C.C, C.BE], F.C, True, False, True,
                 "C1 category vehicles with heavy trailer"),
    C.CE: _rule(21, [C.C], False, False, [C.C, C.C1E], F.C, True, False, True,
                "Full heavy combination vehicles"),
    C.D1: _rule(21, [C.B], False, False, [C.C], F.D, True, True, True,
                "Small buses (up to 16 passengers)"),
    C.D: _rule(24, [C.D1], False, False, [C.D1], F.D, True, True, True,
               "Standard buses and coaches (over 16 passengers)"),
    C.D2: _rule(24, [C.D], False, False, [C.D, C.CE], F.D, True, True, True,
                "Specialized public transport (articulated buses)"),
    L1: _rule(16, [], False, True, [], F.LEARNER, False, False, False,
              "Learner's permit: motor cycles, tricycles and quadricycles"),
    L2: _rule(17, [], False, True, [], F.LEARNER, False, False, False,
              "Learner's permit: light motor vehicles"),
    L3: _rule(18, [], False, True, [], F.LEARNER, False, False, False,
              "Learner's permit: any motor vehicle other than motor cycles"),
}

LEARNER_PERMIT_MAPPING: Dict[LicenseCategory, LicenseCategory] = {
    C.A1: L1, C.A2: L1, C.A: L1,
    C.B1: L2, C.B: L2, C.B2: L2, C.BE: L2,
    C.C1: L3, C.C: L3, C.C1E: L3, C.CE: L3, C.D1: L3, C.D: L3, C.D2: L3,
    L1: L1, L2: L2, L3: L3,
}

LIGHT_VEHICLE_CATEGORIES = frozenset({C.A1, C.A2, C.A, C.B1, C.B, L1, L2})

P = ProfessionalPermitCategory

PROFESSIONAL_CATEGORY_RULE_TABLE: Dict[ProfessionalPermitCategory, Dict[str, Any]] = {
    P.P: {"minimum_age": 21, "requires": [], "display_name": "PASSENGERS"},
    P.D: {"minimum_age": 25, "requires": [P.G], "display_name": "DANGEROUS GOODS"},
    P.G: {"minimum_age": 18, "requires": [], "display_name": "GOODS"},
}


def _find_cycle(edges: Mapping[Any, Iterable[Any]]) -> Optional[List[Any]]:
    """Return one cycle in a directed graph as a node path, or None"""
    WHITE, GREY, BLACK = 0, 1, 2
    colour = {node: WHITE for node in edges}

    for start in edges:
        if colour[start] != WHITE:
            continue
        path = [start]
        stack = [iter(edges[start])]
        colour[start] = GREY
        while stack:
            child = next(stack[-1], None)
            if child is None:
                colour[path.pop()] = BLACK
                stack.pop()
                continue
            if colour.get(child, BLACK) == GREY:
                return path[path.index(child):] + [child]
            if colour.get(child) == WHITE:
                colour[child] = GREY
                path.append(child)
                stack.append(iter(edges[child]))
    return None


def _format_path(path: List[Any]) -> str:
    return " -> ".join(getattr(node, "value", str(node)) for node in path)


class CategoryRuleRegistry:
    """Read-only registry of category rules"""

    def __init__(
        self,
        rule_table: Optional[Mapping[LicenseCategory, Mapping[str, Any]]] = None,
        learner_permit_mapping: Optional[Mapping[LicenseCategory, LicenseCategory]] = None,
        professional_rule_table: Optional[Mapping[ProfessionalPermitCategory, Mapping[str, Any]]] = None,
        categories: Optional[Iterable[LicenseCategory]] = None,
    ):
        rule_table = CATEGORY_RULE_TABLE if rule_table is None else rule_table
        learner_permit_mapping = LEARNER_PERMIT_MAPPING if learner_permit_mapping is None else learner_permit_mapping
        professional_rule_table = (
            PROFESSIONAL_CATEGORY_RULE_TABLE if professional_rule_table is None else professional_rule_table
        )
        # Defaults to the full category set; a reduced set lets callers build partial tables
        self._categories = list(categories) if categories is not None else list(LicenseCategory)

        self._rules = self._build_rules(rule_table)
        self._learner_permit_mapping = dict(learner_permit_mapping)
        self._professional_rules = self._build_professional_rules(professional_rule_table)
        self._validate()

        self._authorized = {category: self._closure(category) for category in self._categories}

    # Loading and validation

    def _build_rules(self, rule_table) -> Dict[LicenseCategory, CategoryRule]:
        rules = {}
        for category in self._categories:
            if category not in rule_table:
                raise ConfigurationError(f"Category '{category.value}' has no rule")

        for key, fields in rule_table.items():
            if key not in self._categories:
                raise ConfigurationError(f"Rule table contains unknown category '{getattr(key, 'value', key)}'")
            data = dict(fields)
            declared = data.setdefault("category", key)
            if declared != key:
                raise ConfigurationError(
                    f"Rule keyed '{key.value}' declares category '{getattr(declared, 'value', declared)}'"
                )
            try:
                rules[key] = CategoryRule(**data)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid rule for category '{key.value}': {e}") from e
        return rules

    def _build_professional_rules(self, table) -> Dict[ProfessionalPermitCategory, ProfessionalCategoryRule]:
        rules = {}
        for key, fields in table.items():
            try:
                rules[key] = ProfessionalCategoryRule(category=key, **fields)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid professional rule for '{key.value}': {e}") from e
        return rules

    def _validate(self) -> None:
        for category, rule in self._rules.items():
            for referenced in rule.prerequisite_categories | rule.superseded_categories:
                if referenced not in self._rules:
                    raise ConfigurationError(
                        f"Category '{category.value}' references unknown category '{referenced.value}'"
                    )
            if rule.requires_learner_permit and category not in self._learner_permit_mapping:
                raise ConfigurationError(
                    f"Category '{category.value}' requires a learner's permit but has no learner permit class"
                )

        for graph_name, attribute in (
            ("superseding", "superseded_categories"),
            ("prerequisite", "prerequisite_categories"),
        ):
            cycle = _find_cycle({c: getattr(r, attribute) for c, r in self._rules.items()})
            if cycle:
                raise ConfigurationError(f"Cyclic {graph_name} graph: {_format_path(cycle)}")

        for category, learner_class in self._learner_permit_mapping.items():
            rule = self._rules.get(learner_class)
            if rule is None or rule.category_family != CategoryFamily.LEARNER:
                raise ConfigurationError(
                    f"Learner permit mapping for '{getattr(category, 'value', category)}' "
                    f"points at non-learner category '{getattr(learner_class, 'value', learner_class)}'"
                )

        for category, rule in self._professional_rules.items():
            for required in rule.requires:
                if required not in self._professional_rules:
                    raise ConfigurationError(
                        f"Professional category '{category.value}' requires unknown '{required.value}'"
                    )
        cycle = _find_cycle({c: r.requires for c, r in self._professional_rules.items()})
        if cycle:
            raise ConfigurationError(f"Cyclic professional category graph: {_format_path(cycle)}")

    def _closure(self, category: LicenseCategory) -> FrozenSet[LicenseCategory]:
        seen: Set[LicenseCategory] = set()
        pending = [category]
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(self._rules[current].superseded_categories)
        return frozenset(seen)

    def _ordered(self, categories: Iterable[LicenseCategory]) -> List[LicenseCategory]:
        wanted = set(categories)
        return [category for category in self._categories if category in wanted]

    # Lookups

    @property
    def categories(self) -> List[LicenseCategory]:
        return list(self._categories)

    def get_rule(self, category: LicenseCategory) -> CategoryRule:
        try:
            return self._rules[category]
        except (KeyError, TypeError):
            raise UnknownCategory(category) from None

    def get_all_rules(self) -> List[CategoryRule]:
        return [self._rules[category] for category in self._categories]

    def get_authorized_categories(self, category: LicenseCategory) -> List[LicenseCategory]:
        """Reflexive-transitive closure of superseded categories"""
        self.get_rule(category)
        return self._ordered(self._authorized[category])

    def get_superseded_categories(self, category: LicenseCategory) -> List[LicenseCategory]:
        return [c for c in self.get_authorized_categories(category) if c != category]

    def get_authorizing_categories(self, category: LicenseCategory) -> List[LicenseCategory]:
        """Every category whose authorized set contains the given one"""
        self.get_rule(category)
        return self._ordered(c for c, closure in self._authorized.items() if category in closure)

    def authorizes(self, held: LicenseCategory, required: LicenseCategory) -> bool:
        return required in self._authorized.get(held, frozenset())

    def get_authorized_union(self, held: Iterable[LicenseCategory]) -> List[LicenseCategory]:
        authorized: Set[LicenseCategory] = set()
        for category in held:
            self.get_rule(category)
            authorized |= self._authorized[category]
        return self._ordered(authorized)

    def is_commercial_license(self, category: LicenseCategory) -> bool:
        return self.get_rule(category).is_commercial

    def requires_medical_always(self, category: LicenseCategory) -> bool:
        return self.get_rule(category).medical_required_always

    def requires_medical_60_plus(self, category: LicenseCategory) -> bool:
        return self.get_rule(category).medical_required_over_60

    def get_category_family(self, category: LicenseCategory) -> CategoryFamily:
        return self.get_rule(category).category_family

    def is_learner_permit_category(self, category: LicenseCategory) -> bool:
        return self.get_category_family(category) == CategoryFamily.LEARNER

    def is_light_vehicle(self, category: LicenseCategory) -> bool:
        self.get_rule(category)
        return category in LIGHT_VEHICLE_CATEGORIES

    def get_learner_permit_class(self, category: LicenseCategory) -> LicenseCategory:
        self.get_rule(category)
        try:
            return self._learner_permit_mapping[category]
        except KeyError:
            raise ConfigurationError(
                f"No learner permit class mapped for category '{category.value}'"
            ) from None

    # Professional permit sub-categories

    def get_professional_rule(self, category: ProfessionalPermitCategory) -> ProfessionalCategoryRule:
        try:
            return self._professional_rules[category]
        except KeyError:
            raise UnknownCategory(category) from None

    def get_professional_rules(self) -> List[ProfessionalCategoryRule]:
        return list(self._professional_rules.values())

    def expand_professional_categories(
        self, selected: Iterable[ProfessionalPermitCategory]
    ) -> List[ProfessionalPermitCategory]:
        """Add every sub-category required by a selected one (D selects G)"""
        result: Set[ProfessionalPermitCategory] = set()
        pending = list(selected)
        while pending:
            current = pending.pop()
            if current in result:
                continue
            result.add(current)
            pending.extend(self.get_professional_rule(current).requires)
        return [c for c in self._professional_rules if c in result]

    def drop_professional_category(
        self, selected: Iterable[ProfessionalPermitCategory], category: ProfessionalPermitCategory
    ) -> List[ProfessionalPermitCategory]:
        """Remove a sub-category and every selected one that requires it (dropping G drops D)"""
        remaining = [c for c in selected if c != category]
        removed = {category}
        changed = True
        while changed:
            changed = False
            for current in list(remaining):
                if self.get_professional_rule(current).requires & removed:
                    remaining.remove(current)
                    removed.add(current)
                    changed = True
        return remaining


@lru_cache()
def get_registry() -> CategoryRuleRegistry:
    """Process-wide registry, built and validated on first use"""
    registry = CategoryRuleRegistry()
    logger.info(f"Category rule registry loaded with {len(registry.categories)} categories")
    return registry
