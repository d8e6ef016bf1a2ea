# medledger/errors.py
from enum import IntEnum


class ErrorCode(IntEnum):
    UNAUTHORIZED = 100
    NOT_FOUND = 101
    ALREADY_EXISTS = 102
    INVALID_INPUT = 103
    EXPIRED_ACCESS = 104
    EMERGENCY_INACTIVE = 105
    AUDIT_FAILED = 106


class LedgerError(Exception):
    """Expected, typed outcome of a ledger operation. Callers branch on `code`."""
    code = None
    kind = "LedgerError"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.kind)
        self.detail = detail or self.kind


class Unauthorized(LedgerError):
    code = ErrorCode.UNAUTHORIZED
    kind = "Unauthorized"


class NotFound(LedgerError):
    code = ErrorCode.NOT_FOUND
    kind = "NotFound"


class AlreadyExists(LedgerError):
    code = ErrorCode.ALREADY_EXISTS
    kind = "AlreadyExists"


class InvalidInput(LedgerError):
    code = ErrorCode.INVALID_INPUT
    kind = "InvalidInput"


class ExpiredAccess(LedgerError):
    code = ErrorCode.EXPIRED_ACCESS
    kind = "ExpiredAccess"


class EmergencyInactive(LedgerError):
    code = ErrorCode.EMERGENCY_INACTIVE
    kind = "EmergencyInactive"


class AuditFailed(LedgerError):
    code = ErrorCode.AUDIT_FAILED
    kind = "AuditFailed"
