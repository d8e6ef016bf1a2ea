# medledger/policy.py
from typing import Optional

from medledger.errors import ExpiredAccess, Unauthorized
from medledger.models import AccessGrant, AccessLevel


def effective_level(grant: Optional[AccessGrant], emergency_active: bool, height: int) -> int:
    """
    Level a provider holds right now. An active emergency overrides everything,
    an expired grant counts as no grant.
    """
    if emergency_active:
        return int(AccessLevel.ADMIN)
    if grant is None or grant.is_expired(height):
        return int(AccessLevel.NONE)
    return grant.level


def evaluate_read(caller, patient, grant, emergency_active, height):
    """
    Decide how a read of `patient` by `caller` is allowed and return the audit
    action for it. Raises when the read is denied.
    """
    if caller == patient:
        return "self-access"
    if emergency_active:
        return "emergency-read"
    if grant is None:
        raise Unauthorized("no access grant")
    if grant.is_expired(height):
        raise ExpiredAccess("access grant expired")
    return "provider-read"


def evaluate_write(grant: Optional[AccessGrant], height: int) -> None:
    """Provider writes need a live grant of at least READ_WRITE."""
    if grant is None:
        raise Unauthorized("no access grant")
    if grant.is_expired(height):
        raise ExpiredAccess("access grant expired")
    if grant.level < AccessLevel.READ_WRITE:
        raise Unauthorized("access level too low to update record")
