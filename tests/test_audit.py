import logging

import pytest

from medledger.audit import AuditLog
from medledger.clock import ManualClock
from medledger.db import atomic
from medledger.errors import InvalidInput, NotFound, Unauthorized

WRITER = "access-controller"


def fill(audit, rows):
    return [audit.append(WRITER, patient, accessor, action) for patient, accessor, action in rows]


def test_ids_start_at_one_without_gaps(audit):
    assert audit.count() == 0
    ids = fill(audit, [("p%d" % i, "x", "read") for i in range(5)])
    assert ids == [1, 2, 3, 4, 5]
    assert audit.count() == 5


def test_only_writer_may_append(audit):
    with pytest.raises(Unauthorized):
        audit.append("bob", "alice", "bob", "provider-read")
    assert audit.count() == 0
    assert audit.writer == WRITER


def test_action_is_bounded(audit):
    with pytest.raises(InvalidInput):
        audit.append(WRITER, "alice", "bob", "a" * 65)
    assert audit.append(WRITER, "alice", "bob", "") == 1
    assert audit.get(1).action == ""


def test_entry_fields(audit, clock):
    clock.set_height(42)
    log_id = audit.append(WRITER, "alice", "bob", "provider-read")
    entry = audit.get(log_id)
    assert entry.to_dict() == {
        "log_id": 1, "patient": "alice", "accessor": "bob",
        "action": "provider-read", "timestamp": 1700000000, "height": 42,
    }


def test_missing_timestamp_is_zero(db):
    audit = AuditLog(db, writer=WRITER, clock=ManualClock(height=3))
    audit.append(WRITER, "alice", "alice", "self-access")
    assert audit.get(1).timestamp == 0


def test_get_unknown(audit):
    with pytest.raises(NotFound):
        audit.get(1)


def test_batch_skips_unknown_ids(audit):
    fill(audit, [("alice", "bob", "read")] * 3)
    assert [e.log_id for e in audit.get_batch([3, 7, 1])] == [3, 1]
    with pytest.raises(InvalidInput):
        audit.get_batch(list(range(1, 12)))


def test_pages_cover_fixed_id_windows(audit):
    fill(audit, [("alice" if i % 2 else "bob", "carol", "read") for i in range(1, 26)])
    assert [e.log_id for e in audit.get_patient_page("alice", 0)] == [1, 3, 5, 7, 9]
    assert [e.log_id for e in audit.get_patient_page("alice", 2)] == [21, 23, 25]
    assert audit.get_patient_page("alice", 3) == []
    assert len(audit.get_accessor_page("carol", 1)) == 10
    assert all(e.patient == "bob" for e in audit.get_patient_page("bob", 1))
    with pytest.raises(InvalidInput):
        audit.get_patient_page("alice", -1)


def test_pages_on_empty_log(audit):
    assert audit.get_patient_page("alice", 0) == []
    assert audit.get_accessor_page("alice", 0) == []


def test_mirror_line_follows_commit(db, audit, caplog):
    caplog.set_level(logging.INFO, logger="medledger.audit")
    with pytest.raises(RuntimeError):
        with atomic(db):
            audit.append(WRITER, "alice", "bob", "provider-read")
            raise RuntimeError("later step failed")
    assert audit.count() == 0
    assert not [r for r in caplog.records if r.name == "medledger.audit"]

    with atomic(db):
        audit.append(WRITER, "alice", "bob", "provider-read")
        assert not [r for r in caplog.records if r.name == "medledger.audit"]
    mirrored = [r.getMessage() for r in caplog.records if r.name == "medledger.audit"]
    assert mirrored == ["log_id=1 patient=alice accessor=bob action=provider-read"]
