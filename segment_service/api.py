"""
High-level API for the Segment Service.
"""

from typing import Any, Dict, Mapping, Optional

from segment_service.context import SessionContext
from segment_service.core.attribute_catalog import AttributeCatalog
from segment_service.core.engine import SegmentEngine
from segment_service.core.rule_serializer import deserialize, serialize
from segment_service.exceptions import PermissionDeniedError
from segment_service.models.rule import SegmentRule
from segment_service.config import TEST_SAMPLE_SIZE


class SegmentService:
    """
    Main API for segment rules, working on JSON request bodies.

    Usage:
        service = SegmentService(connection_string="Driver={...};Server=...;...")

        result = service.membership({"rule": {...}, "workers": {...}})
    """

    def __init__(self,
                 connection_string: Optional[str] = None,
                 catalog: Optional[AttributeCatalog] = None):
        """
        Initialize the SegmentService.

        Args:
            connection_string: ODBC connection string for database access; None runs without stored segments
            catalog: Attribute catalog, the built-in worker attributes by default
        """
        self.engine = SegmentEngine(connection_string, catalog)

    # ==================== REQUEST PARSING ====================

    @staticmethod
    def _rule(request: Mapping, key: str = "rule") -> SegmentRule:
        if key not in request or request[key] is None:
            raise ValueError(f"Request must contain '{key}'")
        return deserialize(request[key])

    @staticmethod
    def _workers(request: Mapping) -> Dict[str, Any]:
        """
        Accept workers as {worker_id: attributes} or as a list of attribute
        sets carrying their own "id".
        """
        workers = request.get("workers")
        if workers is None:
            raise ValueError("Request must contain 'workers'")
        if isinstance(workers, Mapping):
            return {str(worker_id): attrs for worker_id, attrs in workers.items()}
        if isinstance(workers, list):
            result = {}
            for idx, worker in enumerate(workers):
                if not isinstance(worker, Mapping) or worker.get("id") in (None, ""):
                    raise ValueError(f"workers[{idx}] must be an object with an 'id'")
                result[str(worker["id"])] = worker
            return result
        raise ValueError("'workers' must be an object or a list")

    def _stored_workers(self, request: Mapping, context: Optional[SessionContext]) -> Dict[str, Any]:
        worker_ids = request["workerIds"]
        if not isinstance(worker_ids, list) or not all(isinstance(w, (str, int)) for w in worker_ids):
            raise ValueError("'workerIds' must be a list of worker ids")
        if context is None:
            raise PermissionDeniedError("A session is required to load stored workers")
        return self.engine.load_workers(context, [str(w) for w in worker_ids])

    # ==================== OPERATIONS ====================

    def attributes(self) -> Dict[str, Any]:
        return {"attributes": self.engine.catalog.to_dict()}

    def validate(self, request: Mapping) -> Dict[str, Any]:
        validation = self.engine.validate(self._rule(request))
        result = validation.to_dict()
        result["suggestions"] = self.engine.validator.suggestions(validation.issues)
        return result

    def describe(self, request: Mapping) -> Dict[str, Any]:
        return {"description": self.engine.describe(self._rule(request))}

    def evaluate(self, request: Mapping) -> Dict[str, Any]:
        """Evaluate a rule against the single worker in request["worker"]."""
        rule = self._rule(request)
        worker = request.get("worker")
        if not isinstance(worker, Mapping):
            raise ValueError("Request must contain a 'worker' object")
        return self.engine.evaluate_worker(rule, worker)

    def test(self, request: Mapping, context: Optional[SessionContext] = None) -> Dict[str, Any]:
        """
        Dry run of request["rule"] against request["workers"], or against the
        stored workers listed in request["workerIds"] (needs a session context).
        """
        sample_size = request.get("sampleSize", TEST_SAMPLE_SIZE)
        if not isinstance(sample_size, int) or isinstance(sample_size, bool) or sample_size < 0:
            raise ValueError("'sampleSize' must be a non-negative integer")
        rule = self._rule(request)
        if request.get("workers") is None and request.get("workerIds") is not None:
            workers = self._stored_workers(request, context)
        else:
            workers = self._workers(request)
        return self.engine.test_rule(
            rule,
            workers,
            sample_size=sample_size,
            include_non_matches=bool(request.get("includeNonMatches", False)),
        )

    def membership(self, request: Mapping) -> Dict[str, Any]:
        """
        Compute members for request["rule"], or for every rule of
        request["rules"] ({segment_id: rule}) in one pass.
        """
        workers = self._workers(request)
        rules_doc = request.get("rules")
        if rules_doc is None:
            return {"members": self.engine.compute_membership(self._rule(request), workers)}
        if not isinstance(rules_doc, Mapping):
            raise ValueError("'rules' must be an object of segment id to rule")
        rules = {str(segment_id): deserialize(doc) for segment_id, doc in rules_doc.items()}
        return {"memberships": self.engine.compute_memberships(rules, workers)}

    def refresh(self, segment_id: str, context: SessionContext, request: Optional[Mapping] = None) -> Dict[str, Any]:
        store_members = isinstance(request, Mapping) and bool(request.get("storeMembers", False))
        return self.engine.refresh_segment(segment_id, context, store_members=store_members)

    def save_rule(self, segment_id: str, context: SessionContext, request: Mapping) -> Dict[str, Any]:
        rule = self._rule(request)
        self.engine.save_rule(segment_id, rule, context)
        return {
            "segmentId": segment_id,
            "rule": serialize(rule),
            "description": self.engine.describe(rule),
        }

    def sync_worker(self, worker_id: str, context: SessionContext, request: Optional[Mapping] = None) -> Dict[str, Any]:
        """Update the stored segment memberships of a worker whose attributes changed."""
        changed_fields = request.get("changedFields") if isinstance(request, Mapping) else None
        if changed_fields is not None and (
                not isinstance(changed_fields, list) or not all(isinstance(f, str) for f in changed_fields)):
            raise ValueError("'changedFields' must be a list of attribute keys")
        return self.engine.sync_worker(worker_id, context, changed_fields=changed_fields)
