"""
Segment Service - Rule engine for worker segments of the Behavior Coach admin app.

Usage:
    from segment_service import SegmentService

    service = SegmentService(connection_string="...")
    result = service.membership({"rule": rule_document, "workers": workers})
"""

from .api import SegmentService
from .context import SessionContext
from .core.engine import SegmentEngine

__all__ = [
    'SegmentService',
    'SegmentEngine',
    'SessionContext',
]

__version__ = "0.1.0"
