import pytest

from medledger import policy
from medledger.errors import ExpiredAccess, Unauthorized
from medledger.models import AccessGrant


def grant(level=1, expires_at=100):
    return AccessGrant(patient="alice", provider="bob", granted_at=1, expires_at=expires_at,
                       level=level, certificate_id=1, consent_proof="c")


def test_effective_level():
    assert policy.effective_level(None, False, 10) == 0
    assert policy.effective_level(None, True, 10) == 3
    assert policy.effective_level(grant(level=2), False, 99) == 2
    assert policy.effective_level(grant(level=2), False, 100) == 0


def test_evaluate_read():
    assert policy.evaluate_read("alice", "alice", None, False, 1) == "self-access"
    assert policy.evaluate_read("bob", "alice", None, True, 1) == "emergency-read"
    assert policy.evaluate_read("bob", "alice", grant(), False, 1) == "provider-read"
    with pytest.raises(Unauthorized):
        policy.evaluate_read("bob", "alice", None, False, 1)
    with pytest.raises(ExpiredAccess):
        policy.evaluate_read("bob", "alice", grant(), False, 100)


def test_evaluate_write():
    policy.evaluate_write(grant(level=3), 1)
    with pytest.raises(Unauthorized):
        policy.evaluate_write(grant(level=1), 1)
    with pytest.raises(ExpiredAccess):
        policy.evaluate_write(grant(level=2), 100)
