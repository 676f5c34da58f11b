"""
Segment Store - Database access for segment rules, worker attributes and memberships.
Uses pyodbc with parameterized queries; result sets come back as Polars DataFrames.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import polars as pl
import pyodbc
from opentelemetry import trace

from segment_service.core.rule_builder import create_empty_rule
from segment_service.core.rule_serializer import deserialize, dumps
from segment_service.exceptions import RuleDeserializationError, SegmentNotFoundError, SegmentServiceError
from segment_service.models.rule import SegmentRule
from segment_service.models.segment import Segment

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class SegmentStoreError(SegmentServiceError):
    """Raised when the segment database cannot be read or written."""
    pass


class SegmentStore:
    """
    Single class for all segment database operations.

    Tables (managed outside this service):
        SEGMENTS(id, organization_id, name, rule_definition, created_at, updated_at)
        WORKER_ATTRIBUTES_V(worker_id, organization_id, attributes)  -- attributes is JSON text
        SEGMENT_MEMBERS(segment_id, worker_id)
    """

    def __init__(self, connection_string: str):
        self._connection_string = connection_string

    def _connect(self):
        try:
            return pyodbc.connect(self._connection_string)
        except pyodbc.Error as e:
            raise SegmentStoreError(f"Could not connect to segment database: {e}") from e

    def _execute_query(self, query: str, params: Sequence[Any] = ()) -> pl.DataFrame:
        """Run a SELECT and return a DataFrame with lowercased column names."""
        with tracer.start_as_current_span("db.query") as span:
            span.set_attribute("db.system", "mssql")
            span.set_attribute("db.statement", query[:500])
            conn = self._connect()
            try:
                cursor = conn.cursor()
                cursor.execute(query, *params)
                columns = [column[0].lower() for column in cursor.description]
                rows = [tuple(row) for row in cursor.fetchall()]
            except pyodbc.Error as e:
                raise SegmentStoreError(f"Query failed: {e}") from e
            finally:
                conn.close()
            df = pl.DataFrame(rows, schema=columns, orient="row")
            span.set_attribute("db.result_rows", len(df))
            return df

    # ==================== SEGMENTS ====================

    def load_segment(self, segment_id: str, organization_id: str) -> Segment:
        """Load one segment with its rule tree."""
        with tracer.start_as_current_span("db.load_segment") as span:
            span.set_attribute("segment.id", str(segment_id))
            df = self._execute_query(
                "SELECT id, organization_id, name, rule_definition, created_at, updated_at "
                "FROM SEGMENTS WHERE id = ? AND organization_id = ?",
                (segment_id, organization_id),
            )
            if df.is_empty():
                raise SegmentNotFoundError(
                    f"Segment {segment_id} not found for organization {organization_id}"
                )

            return self._segment_from_row(df.row(0, named=True))

    def load_rule_segments(self, organization_id: str) -> List[Segment]:
        """Segments of an organization that carry a rule definition."""
        with tracer.start_as_current_span("db.load_rule_segments") as span:
            df = self._execute_query(
                "SELECT id, organization_id, name, rule_definition, created_at, updated_at "
                "FROM SEGMENTS WHERE organization_id = ? AND rule_definition IS NOT NULL",
                (organization_id,),
            )
            segments = []
            for row in df.iter_rows(named=True):
                try:
                    segments.append(self._segment_from_row(row))
                except RuleDeserializationError as e:
                    logger.warning("Skipping segment %s with unreadable rule: %s", row["id"], e)
            span.set_attribute("num_segments", len(segments))
            return segments

    @staticmethod
    def _segment_from_row(row: Dict[str, Any]) -> Segment:
        raw_rule = row["rule_definition"]
        rule = deserialize(raw_rule) if raw_rule else create_empty_rule()
        return Segment(
            id=str(row["id"]),
            name=row["name"],
            organization_id=str(row["organization_id"]),
            rule=rule,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def save_rule(self, segment_id: str, organization_id: str, rule: SegmentRule) -> None:
        """Persist the rule document of an existing segment."""
        with tracer.start_as_current_span("db.save_rule") as span:
            span.set_attribute("segment.id", str(segment_id))
            conn = self._connect()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    "UPDATE SEGMENTS SET rule_definition = ?, updated_at = SYSUTCDATETIME() "
                    "WHERE id = ? AND organization_id = ?",
                    dumps(rule), segment_id, organization_id,
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    raise SegmentNotFoundError(
                        f"Segment {segment_id} not found for organization {organization_id}"
                    )
                conn.commit()
            except pyodbc.Error as e:
                raise SegmentStoreError(f"Failed to save rule of segment {segment_id}: {e}") from e
            finally:
                conn.close()
            logger.info("Saved rule of segment %s", segment_id)

    # ==================== WORKERS ====================

    def load_workers(self, organization_id: str,
                     worker_ids: Optional[Iterable[str]] = None) -> Dict[str, Dict[str, Any]]:
        """Load {worker_id: attribute set} for an organization, optionally restricted to some workers."""
        with tracer.start_as_current_span("db.load_workers") as span:
            query = ("SELECT worker_id, attributes FROM WORKER_ATTRIBUTES_V "
                     "WHERE organization_id = ?")
            params: List[Any] = [organization_id]
            if worker_ids is not None:
                ids = list(worker_ids)
                if not ids:
                    return {}
                query += f" AND worker_id IN ({', '.join('?' for _ in ids)})"
                params.extend(ids)

            df = self._execute_query(query, params)
            workers = {}
            for worker_id, raw in df.select("worker_id", "attributes").iter_rows():
                try:
                    workers[str(worker_id)] = json.loads(raw) if raw else {}
                except json.JSONDecodeError as e:
                    raise SegmentStoreError(f"Invalid attribute document for worker {worker_id}: {e}") from e
            span.set_attribute("num_workers", len(workers))
            return workers

    # ==================== MEMBERSHIPS ====================

    def replace_members(self, segment_id: str, worker_ids: Sequence[str]) -> None:
        """Replace the stored membership of a segment in one transaction."""
        with tracer.start_as_current_span("db.replace_members") as span:
            span.set_attribute("segment.id", str(segment_id))
            span.set_attribute("num_members", len(worker_ids))
            conn = self._connect()
            try:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM SEGMENT_MEMBERS WHERE segment_id = ?", segment_id)
                if worker_ids:
                    cursor.fast_executemany = True
                    cursor.executemany(
                        "INSERT INTO SEGMENT_MEMBERS (segment_id, worker_id) VALUES (?, ?)",
                        [(segment_id, worker_id) for worker_id in worker_ids],
                    )
                conn.commit()
            except pyodbc.Error as e:
                conn.rollback()
                raise SegmentStoreError(f"Failed to store members of segment {segment_id}: {e}") from e
            finally:
                conn.close()

    def load_worker_segment_ids(self, organization_id: str, worker_id: str) -> Set[str]:
        """Ids of the organization's segments that currently list the worker as a member."""
        df = self._execute_query(
            "SELECT m.segment_id FROM SEGMENT_MEMBERS m "
            "JOIN SEGMENTS s ON s.id = m.segment_id "
            "WHERE m.worker_id = ? AND s.organization_id = ?",
            (worker_id, organization_id),
        )
        return {str(segment_id) for segment_id in df.get_column("segment_id").to_list()}

    def update_worker_memberships(self,
                                  worker_id: str,
                                  added: Sequence[str],
                                  removed: Sequence[str]) -> None:
        """Add a worker to some segments and remove it from others in one transaction."""
        with tracer.start_as_current_span("db.update_worker_memberships") as span:
            span.set_attribute("worker.id", str(worker_id))
            span.set_attribute("num_added", len(added))
            span.set_attribute("num_removed", len(removed))
            conn = self._connect()
            try:
                cursor = conn.cursor()
                for segment_id in removed:
                    cursor.execute(
                        "DELETE FROM SEGMENT_MEMBERS WHERE segment_id = ? AND worker_id = ?",
                        segment_id, worker_id,
                    )
                for segment_id in added:
                    cursor.execute(
                        "INSERT INTO SEGMENT_MEMBERS (segment_id, worker_id) VALUES (?, ?)",
                        segment_id, worker_id,
                    )
                conn.commit()
            except pyodbc.Error as e:
                conn.rollback()
                raise SegmentStoreError(f"Failed to update segment memberships of worker {worker_id}: {e}") from e
            finally:
                conn.close()
