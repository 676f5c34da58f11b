"""Database access."""

from .segment_store import SegmentStore, SegmentStoreError

__all__ = ['SegmentStore', 'SegmentStoreError']
