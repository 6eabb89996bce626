"""
Test Category Rule Registry
Rule table loading, closure derivations and load-time configuration checks
"""

import pytest

from app.core.exceptions import ConfigurationError, UnknownCategory
from app.models.enums import LicenseCategory as C, CategoryFamily, ProfessionalPermitCategory as P
from app.services.category_rules import (
    CategoryRuleRegistry, CATEGORY_RULE_TABLE, LEARNER_PERMIT_MAPPING, PROFESSIONAL_CATEGORY_RULE_TABLE
)


def _copy_table():
    return {category: dict(fields) for category, fields in CATEGORY_RULE_TABLE.items()}


def test_every_category_has_a_rule(registry):
    assert registry.categories == list(C)
    for category in C:
        assert registry.get_rule(category).category == category


def test_referenced_categories_resolve(registry):
    for rule in registry.get_all_rules():
        for referenced in rule.prerequisite_categories | rule.superseded_categories:
            assert registry.get_rule(referenced).category == referenced


def test_authorized_closure_is_reflexive_and_idempotent(registry):
    for category in C:
        authorized = registry.get_authorized_categories(category)
        assert category in authorized
        assert set(registry.get_authorized_union(authorized)) == set(authorized)


def test_authorized_categories_follow_superseding_edges(registry):
    assert registry.get_authorized_categories(C.B) == [C.B1, C.B, C.B2]
    assert set(registry.get_authorized_categories(C.A)) == {C.A, C.A2, C.A1}
    assert set(registry.get_authorized_categories(C.D1)) == {C.D1, C.C, C.C1, C.B, C.B1, C.B2}
    assert set(registry.get_authorized_categories(C.D2)) == {
        C.D2, C.D, C.D1, C.CE, C.C1E, C.C, C.C1, C.BE, C.B, C.B1, C.B2
    }
    assert registry.get_authorized_categories(C.LEARNERS_1) == [C.LEARNERS_1]


def test_superseded_categories_exclude_the_category(registry):
    assert registry.get_superseded_categories(C.B) == [C.B1, C.B2]
    assert registry.get_superseded_categories(C.A1) == []


def test_authorizing_categories_are_the_reverse_closure(registry):
    authorizing = set(registry.get_authorizing_categories(C.B))
    assert {C.B, C.BE, C.C1, C.C, C.C1E, C.CE, C.D1, C.D, C.D2} == authorizing
    assert C.B2 not in authorizing


def test_field_projections(registry):
    assert registry.is_commercial_license(C.C)
    assert not registry.is_commercial_license(C.B)
    assert registry.requires_medical_always(C.D1)
    assert not registry.requires_medical_always(C.C)
    assert registry.requires_medical_60_plus(C.B2)
    assert not registry.requires_medical_60_plus(C.B)
    assert registry.get_category_family(C.CE) == CategoryFamily.C
    assert registry.is_learner_permit_category(C.LEARNERS_3)


def test_light_vehicle_bucketing(registry):
    assert registry.is_light_vehicle(C.B)
    assert registry.is_light_vehicle(C.LEARNERS_2)
    assert not registry.is_light_vehicle(C.B2)
    assert not registry.is_light_vehicle(C.LEARNERS_3)


def test_learner_permit_class_mapping(registry):
    assert registry.get_learner_permit_class(C.A) == C.LEARNERS_1
    assert registry.get_learner_permit_class(C.BE) == C.LEARNERS_2
    assert registry.get_learner_permit_class(C.D2) == C.LEARNERS_3
    assert registry.get_learner_permit_class(C.LEARNERS_2) == C.LEARNERS_2


def test_missing_learner_permit_mapping_is_configuration_error():
    mapping = {k: v for k, v in LEARNER_PERMIT_MAPPING.items() if k != C.C1}
    registry = CategoryRuleRegistry(learner_permit_mapping=mapping)

    with pytest.raises(ConfigurationError):
        registry.get_learner_permit_class(C.C1)


def test_unknown_category_is_fatal(registry):
    with pytest.raises(UnknownCategory) as exc_info:
        registry.get_rule("Z")

    assert isinstance(exc_info.value, ConfigurationError)
    assert exc_info.value.category == "Z"


def test_cyclic_superseding_table_is_rejected():
    table = _copy_table()
    table[C.A1]["superseded_categories"] = [C.A2]

    with pytest.raises(ConfigurationError, match="Cyclic superseding graph"):
        CategoryRuleRegistry(rule_table=table)


def test_cyclic_prerequisite_table_is_rejected():
    table = _copy_table()
    table[C.B]["prerequisite_categories"] = [C.BE]

    with pytest.raises(ConfigurationError, match="Cyclic prerequisite graph"):
        CategoryRuleRegistry(rule_table=table)


def test_missing_rule_field_is_rejected():
    table = _copy_table()
    del table[C.C]["medical_required_over_60"]

    with pytest.raises(ConfigurationError, match="Invalid rule for category 'C'"):
        CategoryRuleRegistry(rule_table=table)


def test_missing_category_is_rejected():
    table = _copy_table()
    del table[C.BE]

    with pytest.raises(ConfigurationError, match="'BE' has no rule"):
        CategoryRuleRegistry(rule_table=table)


def test_rule_key_must_match_category():
    table = _copy_table()
    table[C.A1]["category"] = C.A2

    with pytest.raises(ConfigurationError, match="declares category"):
        CategoryRuleRegistry(rule_table=table)


def test_reference_to_unregistered_category_is_rejected():
    table = {category: dict(CATEGORY_RULE_TABLE[category]) for category in (C.B1, C.B)}
    table[C.B]["requires_learner_permit"] = False
    table[C.B1]["requires_learner_permit"] = False

    with pytest.raises(ConfigurationError, match="unknown category 'B2'"):
        CategoryRuleRegistry(rule_table=table, learner_permit_mapping={}, categories=[C.B1, C.B])


def test_learner_mapping_must_point_at_learner_class():
    mapping = dict(LEARNER_PERMIT_MAPPING)
    mapping[C.A1] = C.B

    with pytest.raises(ConfigurationError, match="non-learner category 'B'"):
        CategoryRuleRegistry(learner_permit_mapping=mapping)


def test_professional_categories_expand_and_drop(registry):
    assert registry.expand_professional_categories([P.D]) == [P.D, P.G]
    assert registry.expand_professional_categories([P.P]) == [P.P]
    assert registry.drop_professional_category([P.P, P.D, P.G], P.G) == [P.P]
    assert registry.drop_professional_category([P.D, P.G], P.D) == [P.G]


def test_professional_rule_ages(registry):
    assert registry.get_professional_rule(P.P).minimum_age == 21
    assert registry.get_professional_rule(P.D).minimum_age == 25
    assert registry.get_professional_rule(P.G).minimum_age == 18


def test_cyclic_professional_table_is_rejected():
    table = {k: dict(v) for k, v in PROFESSIONAL_CATEGORY_RULE_TABLE.items()}
    table[P.G]["requires"] = [P.D]

    with pytest.raises(ConfigurationError, match="Cyclic professional"):
        CategoryRuleRegistry(professional_rule_table=table)
