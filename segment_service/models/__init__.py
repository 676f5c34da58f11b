"""Data models."""

from segment_service.models.rule import Condition, Group, RuleNode, SegmentRule
from segment_service.models.attribute import AttributeOption, AttributeDefinition
from segment_service.models.segment import Segment
from segment_service.models.enums import (
    NodeKind, LogicalOperator, AttributeType, Operator, ValidationIssueType, Permission,
)

__all__ = [
    'Condition',
    'Group',
    'RuleNode',
    'SegmentRule',
    'AttributeOption',
    'AttributeDefinition',
    'Segment',
    'NodeKind',
    'LogicalOperator',
    'AttributeType',
    'Operator',
    'ValidationIssueType',
    'Permission',
]
