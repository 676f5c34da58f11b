"""
Rule Builder Tests

Every edit returns a new tree, rejected edits raise RuleStructureError and
leave the current tree untouched, and the editing session never reuses ids.
"""

import itertools

import pytest

from segment_service.core.attribute_catalog import DEFAULT_CATALOG
from segment_service.core.rule_builder import (
    RuleBuilder, add_condition, add_group, change_logical_operator, create_empty_rule,
    find_node, find_parent, iter_nodes, move_node, referenced_attributes, references_any,
    remove_node, update_condition,
)
from segment_service.exceptions import RuleStructureError
from segment_service.models.enums import LogicalOperator, NodeKind, Operator
from segment_service.models.rule import Condition, Group


@pytest.fixture
def rule():
    """root(AND) -> [c1, g1(OR) -> [c2, c3], g2(AND) -> [c4]]"""
    return Group("root", LogicalOperator.AND, (
        Condition("c1", "gender", Operator.EQUALS, "female"),
        Group("g1", LogicalOperator.OR, (
            Condition("c2", "engagement.engagementRate", Operator.GREATER_THAN_OR_EQUALS, 50),
            Condition("c3", "tags", Operator.CONTAINS, "mentor"),
        )),
        Group("g2", LogicalOperator.AND, (
            Condition("c4", "isActive", Operator.EQUALS, True),
        )),
    ))


# =============================================================================
# create / add
# =============================================================================

def test_create_empty_rule():
    rule = create_empty_rule()
    assert rule == Group("root", LogicalOperator.AND, ())
    assert rule.kind == NodeKind.GROUP
    assert create_empty_rule() == rule


def test_add_condition_appends_unset_leaf_and_keeps_previous_tree():
    before = create_empty_rule()
    after = add_condition(before, "root", "c1")

    assert before.children == ()
    assert after.children == (Condition("c1"),)
    assert after.children[0].is_unset
    assert after.children[0].kind == NodeKind.CONDITION


def test_add_condition_to_missing_parent_is_rejected(rule):
    with pytest.raises(RuleStructureError):
        add_condition(rule, "nope", "c9")


def test_add_condition_to_a_condition_is_rejected(rule):
    with pytest.raises(RuleStructureError, match="not a group"):
        add_condition(rule, "c1", "c9")


def test_add_with_existing_id_is_rejected(rule):
    with pytest.raises(RuleStructureError, match="already in use"):
        add_condition(rule, "root", "c2")


def test_add_group_parses_logical_operator(rule):
    updated = add_group(rule, "g2", "or", "g3")
    group = find_node(updated, "g3")
    assert group.logical_operator == LogicalOperator.OR
    assert group.children == ()
    assert find_parent(updated, "g3").id == "g2"


def test_add_group_with_unknown_operator_is_rejected(rule):
    with pytest.raises(RuleStructureError, match="logical operator"):
        add_group(rule, "root", "XOR", "g3")


def test_not_group_accepts_a_single_child():
    rule = add_group(create_empty_rule(), "root", LogicalOperator.NOT, "n1")
    rule = add_condition(rule, "n1", "c1")
    with pytest.raises(RuleStructureError, match="single child"):
        add_condition(rule, "n1", "c2")


# =============================================================================
# update_condition
# =============================================================================

def test_changing_attribute_resets_operator_and_value(rule):
    updated = update_condition(rule, "c1", {"attribute": "engagement.engagementRate"})
    condition = find_node(updated, "c1")
    assert condition.attribute == "engagement.engagementRate"
    assert condition.operator == Operator.EQUALS
    assert condition.value == 0


def test_changing_attribute_never_leaves_an_invalid_operator():
    rule = add_condition(create_empty_rule(), "root", "c1")
    rule = update_condition(rule, "c1", {"attribute": "tags", "operator": Operator.HAS_ALL, "value": ["x"]})

    for definition in DEFAULT_CATALOG.attributes():
        updated = update_condition(rule, "c1", {"attribute": definition.key})
        condition = find_node(updated, "c1")
        assert condition.operator in DEFAULT_CATALOG.operators_for(definition.key), definition.key
        if definition.key != "tags":
            assert condition.value == DEFAULT_CATALOG.default_value(definition.key), definition.key


def test_attribute_change_with_value_in_same_patch(rule):
    updated = update_condition(rule, "c4", {"attribute": "gender", "value": "male"})
    assert find_node(updated, "c4") == Condition("c4", "gender", Operator.EQUALS, "male")


def test_operator_change_resets_value(rule):
    updated = update_condition(rule, "c2", {"operator": Operator.BETWEEN})
    condition = find_node(updated, "c2")
    assert condition.operator == Operator.BETWEEN
    assert condition.value == (0, 0)


def test_value_only_patch_keeps_operator(rule):
    updated = update_condition(rule, "c2", {"value": 80})
    condition = find_node(updated, "c2")
    assert condition.operator == Operator.GREATER_THAN_OR_EQUALS
    assert condition.value == 80


def test_list_values_are_frozen(rule):
    updated = update_condition(rule, "c1", {"operator": "in", "value": ["female", "other"]})
    assert find_node(updated, "c1").value == ("female", "other")


def test_value_without_json_form_is_rejected(rule):
    with pytest.raises(RuleStructureError, match="finite"):
        update_condition(rule, "c2", {"value": float("nan")})


def test_operator_invalid_for_attribute_type_is_rejected(rule):
    with pytest.raises(RuleStructureError, match="not valid"):
        update_condition(rule, "c1", {"operator": "contains"})


def test_update_rejects_unknown_fields_and_groups(rule):
    with pytest.raises(RuleStructureError, match="Cannot patch"):
        update_condition(rule, "c1", {"id": "x"})
    with pytest.raises(RuleStructureError, match="not a condition"):
        update_condition(rule, "g1", {"attribute": "gender"})
    with pytest.raises(RuleStructureError, match="not found"):
        update_condition(rule, "c99", {"attribute": "gender"})


def test_update_shares_untouched_subtrees(rule):
    updated = update_condition(rule, "c2", {"value": 90})
    assert updated is not rule
    assert updated.children[0] is rule.children[0]
    assert updated.children[2] is rule.children[2]
    assert updated.children[1] is not rule.children[1]
    # Previous tree still holds the old value
    assert find_node(rule, "c2").value == 50


# =============================================================================
# remove / change operator / move
# =============================================================================

def test_remove_root_is_rejected_and_tree_unchanged(rule):
    snapshot = rule
    with pytest.raises(RuleStructureError, match="root"):
        remove_node(rule, "root")
    assert rule is snapshot
    assert len(rule.children) == 3


def test_remove_group_removes_subtree(rule):
    updated = remove_node(rule, "g1")
    ids = [node.id for node in iter_nodes(updated)]
    assert ids == ["root", "c1", "g2", "c4"]


def test_remove_missing_node_is_rejected(rule):
    with pytest.raises(RuleStructureError):
        remove_node(rule, "c99")


def test_switch_to_not_with_several_children_is_rejected(rule):
    with pytest.raises(RuleStructureError, match="exactly one"):
        change_logical_operator(rule, "g1", "NOT")
    assert find_node(rule, "g1").logical_operator == LogicalOperator.OR


def test_switch_to_not_with_one_child(rule):
    updated = change_logical_operator(rule, "g2", "not")
    assert find_node(updated, "g2").logical_operator == LogicalOperator.NOT
    assert find_node(updated, "g2").children == rule.children[2].children


def test_switch_group_to_or(rule):
    updated = change_logical_operator(rule, "root", LogicalOperator.OR)
    assert updated.logical_operator == LogicalOperator.OR
    assert updated.children == rule.children


def test_move_node_between_groups(rule):
    updated = move_node(rule, "c3", "g2", index=0)
    assert [c.id for c in find_node(updated, "g2").children] == ["c3", "c4"]
    assert [c.id for c in find_node(updated, "g1").children] == ["c2"]


def test_move_node_reorders_within_group(rule):
    updated = move_node(rule, "c1", "root")
    assert [c.id for c in updated.children] == ["g1", "g2", "c1"]


def test_move_into_own_subtree_is_rejected(rule):
    with pytest.raises(RuleStructureError, match="own subtree"):
        move_node(rule, "g1", "g1")
    with pytest.raises(RuleStructureError):
        move_node(rule, "root", "g1")


def test_referenced_attributes(rule):
    assert referenced_attributes(rule) == ["gender", "engagement.engagementRate", "tags", "isActive"]


def test_references_any(rule):
    assert references_any(rule, ["engagement"])
    assert references_any(rule, ["engagement.engagementRate"])
    assert references_any(rule, ["tags.0"])
    assert references_any(rule, ["firstName", "gender"])
    assert not references_any(rule, ["engagement.lastActiveAt", "contact", ""])
    assert not references_any(rule, [])


# =============================================================================
# RuleBuilder session
# =============================================================================

def _counter_ids(prefix="n"):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


def test_builder_notifies_host_with_whole_tree():
    changes = []
    builder = RuleBuilder(on_change=changes.append, id_factory=_counter_ids())

    builder.add_condition("root")
    builder.update_condition("n1", {"attribute": "gender", "value": "female"})
    builder.add_group("root", "OR")

    assert len(changes) == 3
    assert changes[-1] is builder.rule
    assert builder.last_created_id == "n2"
    assert [c.id for c in builder.rule.children] == ["n1", "n2"]
    # Earlier snapshots are untouched
    assert changes[0].children == (Condition("n1"),)


def test_builder_rejected_edit_keeps_tree_and_skips_callback():
    changes = []
    builder = RuleBuilder(on_change=changes.append, id_factory=_counter_ids())
    builder.add_condition("root")
    current = builder.rule

    with pytest.raises(RuleStructureError):
        builder.remove_node("root")
    with pytest.raises(RuleStructureError):
        builder.add_condition("missing")

    assert builder.rule is current
    assert len(changes) == 1


def test_builder_never_reuses_ids():
    builder = RuleBuilder(id_factory=lambda: "same")
    builder.add_condition("root")
    builder.remove_node("same")
    with pytest.raises(RuleStructureError, match="already issued"):
        builder.add_condition("root")


def test_builder_does_not_issue_ids_of_initial_tree(rule):
    ids = iter(["c1", "fresh"])
    builder = RuleBuilder(initial_rule=rule, id_factory=lambda: next(ids))
    with pytest.raises(RuleStructureError):
        builder.add_condition("root")
    builder.add_condition("root")
    assert builder.rule.children[-1].id == "fresh"


def test_builder_undo():
    builder = RuleBuilder(id_factory=_counter_ids())
    assert not builder.can_undo
    with pytest.raises(RuleStructureError, match="Nothing to undo"):
        builder.undo()

    first = builder.add_condition("root")
    builder.change_logical_operator("root", "OR")
    builder.move_node("n1", "root", 0)
    builder.undo()
    builder.undo()

    assert builder.rule is first
    builder.undo()
    assert builder.rule == create_empty_rule()
    assert not builder.can_undo
