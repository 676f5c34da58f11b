"""
Rule Validator - Reports incomplete or invalid conditions before a rule is saved.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from segment_service.core.attribute_catalog import AttributeCatalog, DEFAULT_CATALOG
from segment_service.models.attribute import AttributeDefinition
from segment_service.models.enums import (
    AttributeType, LogicalOperator, NodeKind, Operator, ValidationIssueType,
    LIST_OPERATORS, VALUELESS_OPERATORS,
)
from segment_service.models.rule import Condition, Group, RuleNode
from segment_service.utils.coercion import coerce_scalar


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found in a rule tree."""
    type: ValidationIssueType
    message: str
    node_id: str
    path: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": str(self.type),
            "message": self.message,
            "nodeId": self.node_id,
            "path": self.path,
        }


@dataclass
class ValidationResult:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": [issue.to_dict() for issue in self.issues]}


_SUGGESTIONS = {
    ValidationIssueType.UNSET_ATTRIBUTE: "Select the worker attribute this condition checks",
    ValidationIssueType.UNKNOWN_ATTRIBUTE: "Use one of the known worker attributes or register it as a custom field",
    ValidationIssueType.UNSET_OPERATOR: "Select an operator",
    ValidationIssueType.INVALID_OPERATOR: "Pick one of the operators offered for this attribute",
    ValidationIssueType.MISSING_VALUE: "Enter a value for this condition",
    ValidationIssueType.INVALID_VALUE_TYPE: "Enter a value matching the attribute type",
    ValidationIssueType.EMPTY_GROUP: "Add at least one condition or nested group",
    ValidationIssueType.STRUCTURAL_ERROR: "A NOT group needs exactly one condition or group",
}


class RuleValidator:
    """Validates rule trees against the attribute catalog."""

    def __init__(self, catalog: Optional[AttributeCatalog] = None):
        self.catalog = catalog or DEFAULT_CATALOG

    def validate(self, rule: RuleNode) -> ValidationResult:
        """Collect every issue in the tree. The root group may be empty, nested groups may not."""
        result = ValidationResult()
        self._validate_node(rule, "rule", result.issues, is_root=True)
        return result

    @staticmethod
    def suggestions(issues: List[ValidationIssue]) -> Dict[str, str]:
        """Correction hint per issue path."""
        return {issue.path: _SUGGESTIONS[issue.type] for issue in issues}

    def _validate_node(self, node: RuleNode, path: str, issues: List[ValidationIssue], is_root: bool = False):
        if node.kind == NodeKind.GROUP:
            self._validate_group(node, path, issues, is_root)
        else:
            self._validate_condition(node, path, issues)

    def _validate_group(self, group: Group, path: str, issues: List[ValidationIssue], is_root: bool):
        def report(issue_type, message):
            issues.append(ValidationIssue(issue_type, message, group.id, path))

        try:
            logical_operator = LogicalOperator(group.logical_operator)
        except ValueError:
            report(ValidationIssueType.INVALID_OPERATOR,
                   f"Unknown logical operator: '{group.logical_operator}'")
            logical_operator = None

        if logical_operator == LogicalOperator.NOT and len(group.children) != 1:
            report(ValidationIssueType.STRUCTURAL_ERROR,
                   f"NOT group must have exactly one child, found {len(group.children)}")
        elif not group.children and not is_root:
            report(ValidationIssueType.EMPTY_GROUP, "Group must have at least one condition or nested group")

        for idx, child in enumerate(group.children):
            self._validate_node(child, f"{path}.children[{idx}]", issues)

    def _validate_condition(self, condition: Condition, path: str, issues: List[ValidationIssue]):
        def report(issue_type, message, suffix):
            issues.append(ValidationIssue(issue_type, message, condition.id, f"{path}.{suffix}"))

        definition = None
        if not condition.attribute:
            report(ValidationIssueType.UNSET_ATTRIBUTE, "Condition has no attribute", "attribute")
        else:
            definition = self.catalog.get(condition.attribute)
            if definition is None:
                report(ValidationIssueType.UNKNOWN_ATTRIBUTE,
                       f"Unknown attribute: '{condition.attribute}'", "attribute")

        if not condition.operator:
            report(ValidationIssueType.UNSET_OPERATOR, "Condition has no operator", "operator")
            return
        try:
            operator = Operator(condition.operator)
        except ValueError:
            report(ValidationIssueType.INVALID_OPERATOR,
                   f"Unknown operator: '{condition.operator}'", "operator")
            return

        if definition is None:
            return
        if operator not in self.catalog.operators_for(definition.key):
            report(ValidationIssueType.INVALID_OPERATOR,
                   f"Operator '{operator}' is not valid for {definition.type} attribute '{definition.key}'",
                   "operator")
            return

        self._validate_value(condition, operator, definition, report)

    @staticmethod
    def _validate_value(condition: Condition, operator: Operator, definition: AttributeDefinition, report):
        value = condition.value
        attribute_type = definition.type
        allowed = {o.value for o in definition.options} if attribute_type == AttributeType.ENUM else None
        if operator in VALUELESS_OPERATORS:
            return

        if operator in LIST_OPERATORS:
            if not isinstance(value, tuple):
                report(ValidationIssueType.INVALID_VALUE_TYPE,
                       f"Value must be a list for operator '{operator}'", "value")
            elif not value:
                report(ValidationIssueType.MISSING_VALUE,
                       f"At least one value is required for operator '{operator}'", "value")
            elif any(coerce_scalar(v, attribute_type) is None for v in value):
                report(ValidationIssueType.INVALID_VALUE_TYPE,
                       f"Every value must be a {attribute_type}", "value")
            elif allowed and any(v not in allowed for v in value):
                report(ValidationIssueType.INVALID_VALUE_TYPE,
                       f"Values must be among the options of '{definition.key}'", "value")
            return

        if operator == Operator.BETWEEN:
            if not isinstance(value, tuple) or len(value) != 2:
                report(ValidationIssueType.INVALID_VALUE_TYPE,
                       "Value must be a [low, high] range for operator 'between'", "value")
            elif any(coerce_scalar(v, attribute_type) is None for v in value):
                report(ValidationIssueType.INVALID_VALUE_TYPE,
                       f"Range bounds must be {attribute_type} values", "value")
            return

        if value is None or value == "":
            report(ValidationIssueType.MISSING_VALUE, f"Value is required for operator '{operator}'", "value")
        elif coerce_scalar(value, attribute_type) is None:
            report(ValidationIssueType.INVALID_VALUE_TYPE,
                   f"Value {value!r} is not a valid {attribute_type}", "value")
        elif allowed and value not in allowed:
            report(ValidationIssueType.INVALID_VALUE_TYPE,
                   f"Value {value!r} is not an option of '{definition.key}'", "value")
