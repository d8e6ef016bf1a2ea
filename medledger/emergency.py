# medledger/emergency.py
"""
Per-patient emergency override. While active, any provider may read the record
and `AccessController.check_access` reports full access. There is no automatic
expiry; an override stays on until someone deactivates it.
"""
from typing import Iterable
import logging

from sqlalchemy.orm import Session

from medledger import utils
from medledger.access import AccessController, audited
from medledger.audit import AuditSink
from medledger.clock import Clock
from medledger.config import LEDGER_PRINCIPAL
from medledger.db import atomic
from medledger.errors import EmergencyInactive, NotFound, Unauthorized
from medledger.models import EmergencyStatus, PatientRecord

logger = logging.getLogger(__name__)

MAX_REASON_BYTES = 256


class EmergencyOverride:
    def __init__(self, db: Session, controller: AccessController, audit_sink: AuditSink,
                 clock: Clock, admins: Iterable[str] = (), principal: str = LEDGER_PRINCIPAL):
        self.db = db
        self.controller = controller
        self.audit = audit_sink
        self.clock = clock
        self.admins = frozenset(admins)
        self.principal = principal

    def is_active(self, patient: str) -> bool:
        return EmergencyStatus.is_active(self.db, patient)

    def get_status(self, patient: str) -> EmergencyStatus:
        status = self.db.get(EmergencyStatus, patient)
        if status is None:
            raise NotFound(f"no emergency status for {patient}")
        return status

    def activate(self, caller: str, patient: str, reason: str) -> bool:
        with atomic(self.db):
            record = self.controller.get_patient(patient)
            utils.require_text(reason, "reason", MAX_REASON_BYTES, allow_empty=True)
            is_contact = record.emergency_contact is not None and record.emergency_contact == caller
            if caller not in self.admins and not is_contact:
                logger.warning("%s may not activate emergency for %s", caller, patient)
                raise Unauthorized("only an admin or the emergency contact may activate")
            self.db.merge(EmergencyStatus(
                patient=patient,
                active=True,
                activated_by=caller,
                activated_at=self.clock.height(),
                reason=reason,
            ))
            self.db.flush()
            audited(self.audit, self.principal, patient, caller, "activate-emergency")
        logger.info("emergency activated for %s by %s", patient, caller)
        return True

    def deactivate(self, caller: str, patient: str) -> bool:
        if caller != patient and caller not in self.admins:
            raise Unauthorized("only the patient or an admin may deactivate")
        with atomic(self.db):
            status = self.get_status(patient)
            self.db.delete(status)
            self.db.flush()
            audited(self.audit, self.principal, patient, caller, "deactivate-emergency")
        logger.info("emergency deactivated for %s by %s", patient, caller)
        return True

    def emergency_read(self, caller: str, patient: str) -> PatientRecord:
        with atomic(self.db):
            record = self.controller.get_patient(patient)
            if not self.is_active(patient):
                raise EmergencyInactive(f"no active emergency for {patient}")
            audited(self.audit, self.principal, patient, caller, "emergency-access")
        return record
