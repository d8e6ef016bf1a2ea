import threading

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from medledger.access import AccessController
from medledger.audit import AuditLog
from medledger.clock import ManualClock
from medledger.db import Base, atomic, make_engine
from medledger.errors import AuditFailed
from medledger.models import AuditLogEntry, Certificate, PatientRecord

PRINCIPAL = "access-controller"
THREADS = 8


@pytest.fixture
def file_sessions(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=eng)
    yield sessionmaker(autocommit=False, autoflush=False, bind=eng)
    eng.dispose()


def wire(db, clock):
    audit = AuditLog(db, writer=PRINCIPAL, clock=clock)
    return AccessController(db, audit, clock, principal=PRINCIPAL)


def run_threads(target):
    errors = []

    def worker(n):
        try:
            target(n)
        except Exception as e:
            errors.append(f"{type(e).__name__}: {e}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return errors


def test_parallel_sessions_get_distinct_log_ids(file_sessions):
    clock = ManualClock(height=1)
    setup = file_sessions()
    wire(setup, clock).register("alice", "Alice", "h1")
    setup.close()

    def reads(n):
        db = file_sessions()
        try:
            controller = wire(db, clock)
            for _ in range(10):
                controller.read_record("alice", "alice")
        finally:
            db.close()

    assert run_threads(reads) == []

    db = file_sessions()
    ids = db.scalars(select(AuditLogEntry.log_id).order_by(AuditLogEntry.log_id)).all()
    assert ids == list(range(1, THREADS * 10 + 2))
    assert AuditLog(db, writer=PRINCIPAL, clock=clock).count() == THREADS * 10 + 1
    db.close()


def test_parallel_grants_get_distinct_certificates(file_sessions):
    clock = ManualClock(height=1)
    setup = file_sessions()
    wire(setup, clock).register("alice", "Alice", "h1")
    setup.close()
    issued = []

    def grant(n):
        db = file_sessions()
        try:
            issued.append(wire(db, clock).grant_access("alice", f"provider-{n}", 1, 100, "consent"))
        finally:
            db.close()

    assert run_threads(grant) == []
    assert sorted(issued) == list(range(1, THREADS + 1))
    db = file_sessions()
    assert len(db.scalars(select(Certificate)).all()) == THREADS
    db.close()


def test_store_error_inside_atomic_is_typed(db):
    with pytest.raises(AuditFailed):
        with atomic(db):
            db.add(PatientRecord(patient="alice", name=None, created_at=1, record_hash="h1"))
            db.flush()
    assert db.get(PatientRecord, "alice") is None
