"""
Shared fixtures: an in-memory store, a manual clock and wired components.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import sessionmaker

from medledger.access import AccessController
from medledger.audit import AuditLog
from medledger.clock import ManualClock
from medledger.db import Base, make_engine
from medledger.emergency import EmergencyOverride
from medledger.query import AuditQuery
import medledger.models  # noqa: F401

PRINCIPAL = "access-controller"
ADMINS = {"admin"}


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return ManualClock(height=1, timestamp=1700000000)


@pytest.fixture
def audit(db, clock):
    return AuditLog(db, writer=PRINCIPAL, clock=clock)


@pytest.fixture
def controller(db, audit, clock):
    return AccessController(db, audit, clock, admins=ADMINS, principal=PRINCIPAL)


@pytest.fixture
def emergency(db, controller, audit, clock):
    return EmergencyOverride(db, controller, audit, clock, admins=ADMINS, principal=PRINCIPAL)


@pytest.fixture
def query(audit):
    return AuditQuery(audit)
