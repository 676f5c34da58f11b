"""
Segment Engine - Orchestrates catalog, validator, evaluators and the segment store.

Flow for a stored segment:
1. Check the session permission
2. Load the rule (cached) and the organization's workers
3. Compile the rule into a Polars expression
4. Evaluate it over the worker frame
5. Optionally store the membership
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional

from opentelemetry import trace

from .attribute_catalog import AttributeCatalog, DEFAULT_CATALOG
from .membership_evaluator import MembershipEvaluator
from .rule_builder import references_any
from .rule_evaluator import RuleEvaluator
from .rule_formatter import RuleFormatter
from .rule_validator import RuleValidator, ValidationResult
from ..config import SEGMENT_CACHE_TTL
from ..context import SessionContext
from ..database.segment_store import SegmentStore, SegmentStoreError
from ..exceptions import RuleEvaluationError, RuleValidationError, WorkerNotFoundError
from ..models.enums import Permission
from ..models.rule import RuleNode, SegmentRule
from ..models.segment import Segment
from ..utils.ttl_cache import ttl_cache

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class SegmentEngine:
    """Main orchestrator for segment rule evaluation."""

    def __init__(self,
                 connection_string: Optional[str] = None,
                 catalog: Optional[AttributeCatalog] = None):
        """
        Initialize the SegmentEngine.

        Args:
            connection_string: ODBC connection string for database access
            catalog: Attribute catalog, the built-in worker attributes by default
        """
        self.store = SegmentStore(connection_string) if connection_string else None
        self.catalog = catalog or DEFAULT_CATALOG
        self.validator = RuleValidator(self.catalog)
        self.formatter = RuleFormatter(self.catalog)

    # ==================== RULES IN MEMORY ====================

    def validate(self, rule: SegmentRule) -> ValidationResult:
        return self.validator.validate(rule)

    def describe(self, rule: SegmentRule) -> str:
        return self.formatter.to_human_readable(rule)

    def evaluate_worker(self, rule: RuleNode, worker: Any) -> Dict[str, Any]:
        """Membership of one worker with the conditions that made it match."""
        matches, reasons = RuleEvaluator.explain(rule, worker, self.catalog)
        return {"matches": matches, "reasons": reasons}

    def compute_membership(self, rule: SegmentRule, workers: Mapping[str, Any]) -> List[str]:
        """Ids of the workers matching one rule."""
        return self.compute_memberships({"segment": rule}, workers)["segment"]

    def compute_memberships(self,
                            rules: Mapping[str, SegmentRule],
                            workers: Mapping[str, Any]) -> Dict[str, List[str]]:
        """Members of several segments, evaluated in one pass over the workers."""
        return MembershipEvaluator.evaluate_segments(rules, workers, self.catalog)

    def test_rule(self,
                  rule: SegmentRule,
                  workers: Mapping[str, Any],
                  sample_size: int = 10,
                  include_non_matches: bool = False) -> Dict[str, Any]:
        """
        Dry run of a rule against sample workers.

        Args:
            rule: Rule tree to test
            workers: Mapping of worker id to worker attribute set
            sample_size: Maximum number of matching (and non matching) workers to return
            include_non_matches: Also return a sample of workers that do not match

        Returns:
            Dict with validity, validation errors, match statistics and samples
        """
        validation = self.validator.validate(rule)
        result: Dict[str, Any] = {
            "valid": validation.valid,
            "errors": [issue.to_dict() for issue in validation.issues],
            "description": self.describe(rule),
        }
        if not validation.valid:
            result["stats"] = None
            result["matches"] = []
            return result

        workers = {str(worker_id): attrs for worker_id, attrs in workers.items()}
        with tracer.start_as_current_span("engine.test_rule") as span:
            started = time.perf_counter()
            matched_ids = self.compute_membership(rule, workers)
            elapsed_ms = (time.perf_counter() - started) * 1000
            span.set_attribute("num_workers", len(workers))
            span.set_attribute("num_matched", len(matched_ids))

        total = len(workers)
        result["stats"] = {
            "total": total,
            "matched": len(matched_ids),
            "matchPercentage": round(len(matched_ids) / total * 100, 2) if total else 0.0,
            "processingTimeMs": round(elapsed_ms, 3),
        }
        result["matches"] = [
            {"workerId": worker_id, **self.evaluate_worker(rule, workers[worker_id])}
            for worker_id in matched_ids[:sample_size]
        ]
        if include_non_matches:
            matched = set(matched_ids)
            non_matches = [w for w in workers if w not in matched][:sample_size]
            result["nonMatches"] = [{"workerId": worker_id} for worker_id in non_matches]
        return result

    # ==================== STORED SEGMENTS ====================

    def _require_store(self) -> SegmentStore:
        if self.store is None:
            raise SegmentStoreError("No segment database configured")
        return self.store

    @ttl_cache(ttl=SEGMENT_CACHE_TTL)
    def _load_segment(self, segment_id: str, organization_id: str) -> Segment:
        return self._require_store().load_segment(segment_id, organization_id)

    def refresh_segment(self,
                        segment_id: str,
                        context: SessionContext,
                        store_members: bool = False) -> Dict[str, Any]:
        """
        Recompute the members of a stored segment.

        Args:
            segment_id: Segment to refresh
            context: Session of the caller; needs segments:read, and segments:write to store members
            store_members: Replace the stored membership with the result

        Returns:
            Dict with segment id, member ids and counts
        """
        context.require(Permission.SEGMENTS_READ)
        if store_members:
            context.require(Permission.SEGMENTS_WRITE)
        store = self._require_store()

        with tracer.start_as_current_span("engine.refresh_segment") as span:
            span.set_attribute("segment.id", str(segment_id))
            segment = self._load_segment(segment_id, context.organization_id)
            workers = store.load_workers(context.organization_id)
            members = self.compute_membership(segment.rule, workers)
            if store_members:
                store.replace_members(segment.id, members)

        logger.info("Segment %s refreshed: %d of %d workers", segment_id, len(members), len(workers))
        return {
            "segmentId": segment.id,
            "members": members,
            "matched": len(members),
            "total": len(workers),
        }

    def save_rule(self, segment_id: str, rule: SegmentRule, context: SessionContext) -> ValidationResult:
        """
        Validate and persist a rule for a stored segment.

        Raises:
            PermissionDeniedError: without segments:write
            RuleValidationError: if the rule has issues; nothing is written
        """
        context.require(Permission.SEGMENTS_WRITE)
        validation = self.validator.validate(rule)
        if not validation.valid:
            raise RuleValidationError(
                f"Rule has {len(validation.issues)} issue(s)", validation.issues
            )

        self._require_store().save_rule(segment_id, context.organization_id, rule)
        SegmentEngine._load_segment.cache_evict(self, segment_id, context.organization_id)
        return validation

    def load_workers(self, context: SessionContext, worker_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Stored attribute sets of the organization's workers, optionally only some of them."""
        context.require(Permission.SEGMENTS_READ)
        return self._require_store().load_workers(context.organization_id, worker_ids)

    def sync_worker(self,
                    worker_id: str,
                    context: SessionContext,
                    changed_fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """
        Re-evaluate one worker against the organization's rule based segments
        and update the stored memberships that changed.

        Args:
            worker_id: Worker whose attributes changed
            context: Session of the caller; needs segments:write
            changed_fields: Attribute keys that changed; only segments whose rules
                read one of them are checked. All segments when empty or None.

        Returns:
            Dict with worker id, number of checked segments and the ids of the
            segments the worker was added to and removed from
        """
        context.require(Permission.SEGMENTS_WRITE)
        store = self._require_store()
        worker_id = str(worker_id)
        fields = [str(f) for f in changed_fields or () if f]

        with tracer.start_as_current_span("engine.sync_worker") as span:
            span.set_attribute("worker.id", worker_id)
            workers = store.load_workers(context.organization_id, [worker_id])
            if worker_id not in workers:
                raise WorkerNotFoundError(
                    f"Worker {worker_id} not found for organization {context.organization_id}"
                )
            worker = workers[worker_id]

            segments = store.load_rule_segments(context.organization_id)
            if fields:
                segments = [s for s in segments if references_any(s.rule, fields)]
            current = store.load_worker_segment_ids(context.organization_id, worker_id)

            added, removed = [], []
            for segment in segments:
                try:
                    matches = RuleEvaluator.evaluate(segment.rule, worker, self.catalog)
                except RuleEvaluationError as e:
                    logger.warning("Skipping segment %s for worker %s: %s", segment.id, worker_id, e)
                    continue
                if matches and segment.id not in current:
                    added.append(segment.id)
                elif not matches and segment.id in current:
                    removed.append(segment.id)

            if added or removed:
                store.update_worker_memberships(worker_id, added, removed)
            span.set_attribute("num_segments", len(segments))

        logger.info("Worker %s synced: checked %d segments, added to %d, removed from %d",
                    worker_id, len(segments), len(added), len(removed))
        return {
            "workerId": worker_id,
            "checkedSegments": len(segments),
            "addedToSegments": added,
            "removedFromSegments": removed,
        }
