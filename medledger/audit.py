# medledger/audit.py
"""
Append-only audit log.

Entries are numbered by the `next-log-id` sequence, which advances in the same
transaction as the insert, so ids start at 1 and have no gaps. Exactly one
caller identity (fixed when the log is constructed) may append.
"""
from abc import ABC, abstractmethod
from typing import List, Sequence as Seq
import logging

from sqlalchemy.orm import Session

from medledger.clock import Clock
from medledger.config import AUDIT_LOGGER
from medledger.db import atomic, on_commit
from medledger.errors import InvalidInput, NotFound, Unauthorized
from medledger.models import AuditLogEntry, Sequence, LOG_SEQUENCE
from medledger.utils import require_text

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger(AUDIT_LOGGER)

PAGE_SIZE = 10
MAX_BATCH = 10
MAX_ACTION_BYTES = 64


class AuditSink(ABC):
    """What the access components need from an audit log: one append operation."""

    @abstractmethod
    def append(self, caller: str, patient: str, accessor: str, action: str) -> int:
        ...


class AuditLog(AuditSink):
    def __init__(self, db: Session, writer: str, clock: Clock):
        self.db = db
        self._writer = writer
        self.clock = clock

    @property
    def writer(self) -> str:
        return self._writer

    def append(self, caller: str, patient: str, accessor: str, action: str) -> int:
        """
        Write one entry and return its id. Only the configured writer may call
        this; an action label over 64 bytes does not fit the log and is rejected.
        """
        if caller != self._writer:
            logger.warning("rejected audit append from %s", caller)
            raise Unauthorized("caller may not write to the audit log")
        require_text(action, "action", MAX_ACTION_BYTES, allow_empty=True)

        with atomic(self.db):
            log_id = Sequence.take(self.db, LOG_SEQUENCE)
            timestamp = self.clock.timestamp()
            entry = AuditLogEntry(
                log_id=log_id,
                patient=patient,
                accessor=accessor,
                action=action,
                timestamp=timestamp if timestamp is not None else 0,
                height=self.clock.height(),
            )
            self.db.add(entry)
            self.db.flush()
            # mirrored only once the enclosing transaction has committed
            on_commit(self.db, lambda: audit_logger.info(
                "log_id=%s patient=%s accessor=%s action=%s", log_id, patient, accessor, action
            ))
        return log_id

    def count(self) -> int:
        return Sequence.peek(self.db, LOG_SEQUENCE) - 1

    def get(self, log_id: int) -> AuditLogEntry:
        entry = self.db.get(AuditLogEntry, log_id) if isinstance(log_id, int) else None
        if entry is None:
            raise NotFound(f"audit entry {log_id} not found")
        return entry

    def get_batch(self, ids: Seq[int]) -> List[AuditLogEntry]:
        # unknown ids are skipped, not reported
        if len(ids) > MAX_BATCH:
            raise InvalidInput(f"at most {MAX_BATCH} ids per batch")
        result = []
        for log_id in ids:
            entry = self.db.get(AuditLogEntry, log_id)
            if entry is not None:
                result.append(entry)
        return result

    def get_patient_page(self, patient: str, page: int) -> List[AuditLogEntry]:
        return self._page(page, lambda e: e.patient == patient)

    def get_accessor_page(self, accessor: str, page: int) -> List[AuditLogEntry]:
        return self._page(page, lambda e: e.accessor == accessor)

    def _page(self, page, matches):
        if page < 0:
            raise InvalidInput("page must be non-negative")
        first = 1 + PAGE_SIZE * page
        last = min(PAGE_SIZE + PAGE_SIZE * page, self.count())
        result = []
        for log_id in range(first, last + 1):
            entry = self.db.get(AuditLogEntry, log_id)
            if entry is not None and matches(entry):
                result.append(entry)
                if len(result) == PAGE_SIZE:
                    break
        return result
