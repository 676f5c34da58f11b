"""
Segment dataclass.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from segment_service.models.rule import SegmentRule


@dataclass
class Segment:
    """A named, persisted dynamic group of workers defined by a rule tree."""
    id: str
    name: str
    organization_id: str
    rule: SegmentRule
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
