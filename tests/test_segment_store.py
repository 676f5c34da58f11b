"""
Segment Store Tests

pyodbc.connect is replaced by a scripted fake connection so the queries,
parameters and result handling can be checked without a database.
"""

import json
from datetime import datetime

import pyodbc
import pytest

from segment_service.core.rule_serializer import dumps
from segment_service.database import segment_store
from segment_service.database.segment_store import SegmentStore, SegmentStoreError
from segment_service.exceptions import RuleDeserializationError, SegmentNotFoundError
from segment_service.models.enums import LogicalOperator, Operator
from segment_service.models.rule import Condition, Group


RULE = Group("root", LogicalOperator.OR, (Condition("c1", "gender", Operator.EQUALS, "female"),))


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self.description = None
        self.rowcount = -1
        self.fast_executemany = False
        self._rows = []

    def execute(self, query, *params):
        self.connection.executed.append((query, params))
        if self.connection.fail:
            raise pyodbc.Error("HY000", "connection lost")
        columns, rows = self.connection.results.pop(0) if self.connection.results else ([], [])
        self.description = [(name, None, None, None, None, None, None) for name in columns]
        self._rows = rows
        self.rowcount = self.connection.rowcount
        return self

    def executemany(self, query, seq_of_params):
        self.connection.executed.append((query, list(seq_of_params)))

    def fetchall(self):
        return self._rows


class FakeConnection:
    def __init__(self, results=None, rowcount=1, fail=False):
        self.results = list(results or [])
        self.rowcount = rowcount
        self.fail = fail
        self.executed = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


@pytest.fixture
def connect(monkeypatch):
    """Install a fake connection; returns a setter taking the FakeConnection to hand out."""
    holder = {}

    def fake_connect(connection_string):
        holder["connection_string"] = connection_string
        return holder["connection"]

    monkeypatch.setattr(segment_store.pyodbc, "connect", fake_connect)

    def install(connection):
        holder["connection"] = connection
        return connection

    return install


@pytest.fixture
def store():
    return SegmentStore("Driver={Fake};Server=test;")


# =============================================================================
# Segments
# =============================================================================

def test_load_segment(connect, store):
    created = datetime(2024, 5, 1, 12, 0)
    conn = connect(FakeConnection(results=[(
        ["ID", "ORGANIZATION_ID", "NAME", "RULE_DEFINITION", "CREATED_AT", "UPDATED_AT"],
        [("s1", "org1", "Female workers", dumps(RULE), created, None)],
    )]))

    segment = store.load_segment("s1", "org1")

    assert segment.id == "s1"
    assert segment.name == "Female workers"
    assert segment.rule == RULE
    assert segment.created_at == created
    query, params = conn.executed[0]
    assert "FROM SEGMENTS WHERE id = ? AND organization_id = ?" in query
    assert params == ("s1", "org1")
    assert conn.closed


def test_load_segment_without_rule_gets_empty_rule(connect, store):
    connect(FakeConnection(results=[(
        ["id", "organization_id", "name", "rule_definition", "created_at", "updated_at"],
        [("s1", "org1", "New segment", None, None, None)],
    )]))
    segment = store.load_segment("s1", "org1")
    assert segment.rule == Group("root", LogicalOperator.AND, ())


def test_load_missing_segment(connect, store):
    connect(FakeConnection(results=[(
        ["id", "organization_id", "name", "rule_definition", "created_at", "updated_at"], [],
    )]))
    with pytest.raises(SegmentNotFoundError):
        store.load_segment("s9", "org1")


def test_load_corrupt_rule_is_a_load_failure(connect, store):
    connect(FakeConnection(results=[(
        ["id", "organization_id", "name", "rule_definition", "created_at", "updated_at"],
        [("s1", "org1", "Broken", '{"id": "root", "children": "oops"}', None, None)],
    )]))
    with pytest.raises(RuleDeserializationError):
        store.load_segment("s1", "org1")


def test_save_rule(connect, store):
    conn = connect(FakeConnection())
    store.save_rule("s1", "org1", RULE)

    query, params = conn.executed[0]
    assert query.startswith("UPDATE SEGMENTS SET rule_definition = ?")
    assert json.loads(params[0]) == {"version": 1, "rule": {
        "id": "root", "logicalOperator": "OR", "children": [
            {"id": "c1", "attribute": "gender", "operator": "equals", "value": "female"},
        ],
    }}
    assert params[1:] == ("s1", "org1")
    assert conn.committed
    assert conn.closed


def test_save_rule_for_missing_segment(connect, store):
    conn = connect(FakeConnection(rowcount=0))
    with pytest.raises(SegmentNotFoundError):
        store.save_rule("s9", "org1", RULE)
    assert conn.rolled_back
    assert not conn.committed


# =============================================================================
# Workers and members
# =============================================================================

def test_load_workers(connect, store):
    conn = connect(FakeConnection(results=[(
        ["WORKER_ID", "ATTRIBUTES"],
        [("w1", '{"gender": "female", "employment": {"employmentStatus": "active"}}'), ("w2", None)],
    )]))

    workers = store.load_workers("org1")

    assert workers == {
        "w1": {"gender": "female", "employment": {"employmentStatus": "active"}},
        "w2": {},
    }
    assert conn.executed[0][1] == ("org1",)


def test_load_selected_workers(connect, store):
    conn = connect(FakeConnection(results=[(["worker_id", "attributes"], [])]))
    assert store.load_workers("org1", ["w1", "w2"]) == {}
    query, params = conn.executed[0]
    assert query.endswith("AND worker_id IN (?, ?)")
    assert params == ("org1", "w1", "w2")


def test_load_no_selected_workers_skips_query(connect, store):
    conn = connect(FakeConnection())
    assert store.load_workers("org1", []) == {}
    assert conn.executed == []


def test_invalid_worker_document(connect, store):
    connect(FakeConnection(results=[(["worker_id", "attributes"], [("w1", "{oops")])]))
    with pytest.raises(SegmentStoreError, match="w1"):
        store.load_workers("org1")


def test_replace_members(connect, store):
    conn = connect(FakeConnection())
    store.replace_members("s1", ["w1", "w4"])

    assert conn.executed[0] == ("DELETE FROM SEGMENT_MEMBERS WHERE segment_id = ?", ("s1",))
    insert, rows = conn.executed[1]
    assert insert.startswith("INSERT INTO SEGMENT_MEMBERS")
    assert rows == [("s1", "w1"), ("s1", "w4")]
    assert conn.committed


def test_load_rule_segments_skips_unreadable_rules(connect, store):
    conn = connect(FakeConnection(results=[(
        ["id", "organization_id", "name", "rule_definition", "created_at", "updated_at"],
        [
            ("s1", "org1", "Female workers", dumps(RULE), None, None),
            ("s2", "org1", "Broken", "{not json", None, None),
        ],
    )]))

    segments = store.load_rule_segments("org1")

    assert [s.id for s in segments] == ["s1"]
    assert segments[0].rule == RULE
    query, params = conn.executed[0]
    assert "rule_definition IS NOT NULL" in query
    assert params == ("org1",)


def test_load_worker_segment_ids(connect, store):
    conn = connect(FakeConnection(results=[(["SEGMENT_ID"], [("s1",), ("s3",)])]))
    assert store.load_worker_segment_ids("org1", "w1") == {"s1", "s3"}
    query, params = conn.executed[0]
    assert "JOIN SEGMENTS" in query
    assert params == ("w1", "org1")


def test_load_worker_segment_ids_without_memberships(connect, store):
    connect(FakeConnection(results=[(["segment_id"], [])]))
    assert store.load_worker_segment_ids("org1", "w1") == set()


def test_update_worker_memberships(connect, store):
    conn = connect(FakeConnection())
    store.update_worker_memberships("w1", added=["s2"], removed=["s1"])

    assert conn.executed == [
        ("DELETE FROM SEGMENT_MEMBERS WHERE segment_id = ? AND worker_id = ?", ("s1", "w1")),
        ("INSERT INTO SEGMENT_MEMBERS (segment_id, worker_id) VALUES (?, ?)", ("s2", "w1")),
    ]
    assert conn.committed
    assert conn.closed

    conn = connect(FakeConnection(fail=True))
    with pytest.raises(SegmentStoreError, match="worker w1"):
        store.update_worker_memberships("w1", added=["s2"], removed=[])
    assert conn.rolled_back


def test_database_errors_are_wrapped(connect, store):
    conn = connect(FakeConnection(fail=True))
    with pytest.raises(SegmentStoreError, match="connection lost"):
        store.load_workers("org1")
    assert conn.closed

    conn = connect(FakeConnection(fail=True))
    with pytest.raises(SegmentStoreError):
        store.replace_members("s1", ["w1"])
    assert conn.rolled_back


def test_connection_failure_is_wrapped(monkeypatch, store):
    def refuse(connection_string):
        raise pyodbc.Error("08001", "server not found")

    monkeypatch.setattr(segment_store.pyodbc, "connect", refuse)
    with pytest.raises(SegmentStoreError, match="Could not connect"):
        store.load_segment("s1", "org1")
