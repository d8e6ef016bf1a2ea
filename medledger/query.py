# medledger/query.py
"""
Read-only traversals over an audit log.

Only `count()` and `get(log_id)` of the reader are used, so this works against
any log implementation (or a remote proxy of one). Nothing here mutates state.
"""
from typing import List
import logging

from medledger.errors import InvalidInput, NotFound

logger = logging.getLogger(__name__)

MAX_RESULTS = 20


class AuditQuery:
    def __init__(self, reader):
        self.reader = reader

    def find_first(self, patient: str, accessor: str, action: str) -> int:
        """Lowest log id whose entry matches all three fields, or 0."""
        for log_id in range(1, self.reader.count() + 1):
            entry = self._entry(log_id)
            if (entry is not None and entry.patient == patient
                    and entry.accessor == accessor and entry.action == action):
                return log_id
        return 0

    def get_patient_logs(self, patient: str, limit: int, offset: int) -> List:
        return self._scan(limit, offset, lambda e: e.patient == patient)

    def get_accessor_logs(self, accessor: str, limit: int, offset: int) -> List:
        return self._scan(limit, offset, lambda e: e.accessor == accessor)

    def _scan(self, limit, offset, matches):
        if limit < 0 or offset < 0:
            raise InvalidInput("limit and offset must be non-negative")
        total = self.reader.count()
        if offset > total:
            offset = 0
        last = min(offset + limit, total)
        result = []
        for log_id in range(offset + 1, last + 1):
            entry = self._entry(log_id)
            if entry is not None and matches(entry):
                result.append(entry)
                if len(result) >= MAX_RESULTS:
                    break
        return result

    def _entry(self, log_id):
        try:
            return self.reader.get(log_id)
        except NotFound:
            logger.debug("audit entry %s missing during scan", log_id)
            return None
