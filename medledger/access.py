# medledger/access.py
"""
Patient records and per-(patient, provider) access grants.

Each grant is backed by a certificate with a globally unique id taken from the
`next-token-id` sequence. Every mutation and every record read is written to
the audit sink inside the same transaction; if the sink refuses, the whole
operation is rolled back.
"""
from typing import Iterable, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medledger import policy, utils
from medledger.audit import AuditSink
from medledger.clock import Clock
from medledger.config import LEDGER_PRINCIPAL
from medledger.db import atomic
from medledger.errors import (
    AlreadyExists, AuditFailed, InvalidInput, LedgerError, NotFound, Unauthorized,
)
from medledger.models import (
    AccessGrant, AccessLevel, Certificate, CertificateMetadata, EmergencyStatus,
    PatientRecord, Sequence, TOKEN_SEQUENCE,
)

logger = logging.getLogger(__name__)

MAX_NAME_BYTES = 64
MAX_HASH_BYTES = 64
MAX_PROOF_BYTES = 64
VALID_LEVELS = (AccessLevel.READ, AccessLevel.READ_WRITE, AccessLevel.ADMIN)


def audited(sink: AuditSink, principal: str, patient: str, accessor: str, action: str) -> int:
    """Append to the audit sink; store errors surface as AuditFailed, ledger errors unchanged."""
    try:
        return sink.append(principal, patient, accessor, action)
    except LedgerError:
        raise
    except SQLAlchemyError as e:
        logger.error("audit append failed for %s/%s: %s", patient, action, e)
        raise AuditFailed(f"audit write failed: {e}") from e


class AccessController:
    def __init__(self, db: Session, audit_sink: AuditSink, clock: Clock,
                 admins: Iterable[str] = (), principal: str = LEDGER_PRINCIPAL,
                 sign_key: Optional[str] = None):
        self.db = db
        self.audit = audit_sink
        self.clock = clock
        self.admins = frozenset(admins)
        self.principal = principal
        self.sign_key = sign_key

    def is_admin(self, principal: str) -> bool:
        return principal in self.admins

    def _log(self, patient, accessor, action):
        return audited(self.audit, self.principal, patient, accessor, action)

    # --- read-only getters

    def patient_exists(self, patient: str) -> bool:
        return self.db.get(PatientRecord, patient) is not None

    def get_patient(self, patient: str) -> PatientRecord:
        record = self.db.get(PatientRecord, patient)
        if record is None:
            raise NotFound(f"no record for patient {patient}")
        return record

    def get_grant(self, patient: str, provider: str) -> AccessGrant:
        grant = self.db.get(AccessGrant, (patient, provider))
        if grant is None:
            raise NotFound("no access grant")
        return grant

    def get_certificate(self, certificate_id: int) -> Certificate:
        cert = self.db.get(Certificate, certificate_id)
        if cert is None:
            raise NotFound(f"certificate {certificate_id} not found")
        return cert

    def get_certificate_metadata(self, certificate_id: int) -> CertificateMetadata:
        meta = self.db.get(CertificateMetadata, certificate_id)
        if meta is None:
            raise NotFound(f"no metadata for certificate {certificate_id}")
        return meta

    # --- patient records

    def register(self, caller: str, name: str, record_hash: str,
                 emergency_contact: Optional[str] = None) -> bool:
        utils.require_text(name, "name", MAX_NAME_BYTES)
        utils.require_text(record_hash, "record_hash", MAX_HASH_BYTES)

        with atomic(self.db):
            if self.patient_exists(caller):
                raise AlreadyExists(f"patient {caller} already registered")
            self.db.add(PatientRecord(
                patient=caller,
                name=name,
                created_at=self.clock.height(),
                record_hash=record_hash,
                emergency_contact=emergency_contact,
            ))
            self.db.flush()
            self._log(caller, caller, "patient-registration")
        logger.info("registered patient %s", caller)
        return True

    def update_emergency_contact(self, caller: str, new_contact: Optional[str] = None) -> bool:
        with atomic(self.db):
            record = self.get_patient(caller)
            record.emergency_contact = new_contact
            self._log(caller, caller, "update-emergency-contact")
        return True

    def update_record_hash(self, caller: str, new_hash: str) -> bool:
        utils.require_text(new_hash, "record_hash", MAX_HASH_BYTES)
        with atomic(self.db):
            record = self.get_patient(caller)
            record.record_hash = new_hash
            self._log(caller, caller, "update-record")
        return True

    def provider_update_record(self, caller: str, patient: str, new_hash: str) -> bool:
        utils.require_text(new_hash, "record_hash", MAX_HASH_BYTES)
        if caller == patient:
            raise InvalidInput("patients update their own record with update_record_hash")
        with atomic(self.db):
            record = self.get_patient(patient)
            grant = self.db.get(AccessGrant, (patient, caller))
            try:
                policy.evaluate_write(grant, self.clock.height())
            except LedgerError as e:
                logger.warning("provider %s denied update of %s: %s", caller, patient, e.kind)
                raise
            record.record_hash = new_hash
            self._log(patient, caller, "provider-update-record")
        return True

    # --- grants

    def grant_access(self, caller: str, provider: str, level: int, expires_at: int,
                     consent_proof: str) -> int:
        height = self.clock.height()
        if provider == caller:
            raise InvalidInput("cannot grant access to yourself")
        if level not in VALID_LEVELS:
            raise InvalidInput(f"invalid access level {level}")
        if expires_at <= height:
            raise InvalidInput("expiry must be in the future")
        utils.require_text(consent_proof, "consent_proof", MAX_PROOF_BYTES)

        with atomic(self.db):
            if not self.patient_exists(caller):
                raise NotFound(f"no record for patient {caller}")
            certificate_id = Sequence.take(self.db, TOKEN_SEQUENCE)
            previous = self.db.get(AccessGrant, (caller, provider))
            if previous is not None:
                # Overwrite without retiring: the old certificate stays with
                # the provider, only its metadata is replaced.
                stale = self.db.get(CertificateMetadata, previous.certificate_id)
                if stale is not None:
                    self.db.delete(stale)
                logger.warning("re-grant %s -> %s overwrites certificate %s",
                               caller, provider, previous.certificate_id)
            self.db.merge(AccessGrant(
                patient=caller,
                provider=provider,
                granted_at=height,
                expires_at=expires_at,
                level=int(level),
                certificate_id=certificate_id,
                consent_proof=consent_proof,
            ))
            self.db.add(CertificateMetadata(
                certificate_id=certificate_id,
                patient=caller,
                provider=provider,
                level=int(level),
                expires_at=expires_at,
            ))
            self.db.add(Certificate(
                certificate_id=certificate_id,
                holder=provider,
                signature=self._sign(certificate_id, caller, provider, level, expires_at),
            ))
            self.db.flush()
            self._log(caller, provider, "grant-access")
        logger.info("patient %s granted level %s to %s (certificate %s)",
                    caller, level, provider, certificate_id)
        return certificate_id

    def revoke_access(self, caller: str, patient: str, provider: str) -> bool:
        if provider == patient:
            raise InvalidInput("patient cannot revoke own access")
        if caller != patient and not self.is_admin(caller):
            logger.warning("%s may not revoke grants of %s", caller, patient)
            raise Unauthorized("only the patient or an admin may revoke")
        with atomic(self.db):
            grant = self.get_grant(patient, provider)
            meta = self.db.get(CertificateMetadata, grant.certificate_id)
            if meta is not None:
                self.db.delete(meta)
            cert = self.db.get(Certificate, grant.certificate_id)
            # best effort: a certificate that changed hands is left alone
            if cert is not None and cert.holder == provider:
                self.db.delete(cert)
            self.db.delete(grant)
            self.db.flush()
            self._log(patient, caller, "revoke-access")
        logger.info("access of %s to %s revoked by %s", provider, patient, caller)
        return True

    def check_access(self, patient: str, provider: str) -> int:
        grant = self.db.get(AccessGrant, (patient, provider))
        return policy.effective_level(
            grant, EmergencyStatus.is_active(self.db, patient), self.clock.height()
        )

    def read_record(self, caller: str, patient: str) -> PatientRecord:
        with atomic(self.db):
            record = self.get_patient(patient)
            grant = self.db.get(AccessGrant, (patient, caller))
            try:
                action = policy.evaluate_read(
                    caller, patient, grant,
                    EmergencyStatus.is_active(self.db, patient), self.clock.height(),
                )
            except LedgerError as e:
                logger.warning("read of %s by %s denied: %s", patient, caller, e.kind)
                raise
            self._log(patient, caller, action)
        return record

    # --- certificates

    def transfer_certificate(self, caller: str, certificate_id: int, recipient: str) -> bool:
        with atomic(self.db):
            cert = self.get_certificate(certificate_id)
            if cert.holder != caller:
                raise Unauthorized("only the holder may transfer a certificate")
            if recipient == caller:
                raise InvalidInput("recipient already holds the certificate")
            meta = self.db.get(CertificateMetadata, certificate_id)
            cert.holder = recipient
            self._log(meta.patient if meta else "", caller, "transfer-certificate")
        return True

    def verify_certificate(self, signature: str) -> CertificateMetadata:
        claims = utils.verify_certificate_signature(signature, **self._key())
        certificate_id = claims.get("cid")
        if certificate_id is None:
            raise NotFound("certificate signature not recognised")
        cert = self.db.get(Certificate, certificate_id)
        meta = self.db.get(CertificateMetadata, certificate_id)
        if cert is None or meta is None or cert.signature != signature:
            raise NotFound(f"certificate {certificate_id} is not live")
        return meta

    def _sign(self, certificate_id, patient, provider, level, expires_at):
        payload = {
            "cid": certificate_id,
            "patient": patient,
            "provider": provider,
            "level": int(level),
            "expires_at": expires_at,
        }
        return utils.sign_certificate(payload, **self._key())

    def _key(self):
        return {"key": self.sign_key} if self.sign_key else {}
