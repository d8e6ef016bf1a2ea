# medledger/models.py
from enum import IntEnum

from sqlalchemy import Column, String, Integer, Boolean
from sqlalchemy.orm import Session

from medledger.db import Base


class AccessLevel(IntEnum):
    NONE = 0
    READ = 1
    READ_WRITE = 2
    ADMIN = 3


class PatientRecord(Base):
    __tablename__ = "patients"
    patient = Column(String, primary_key=True)
    name = Column(String(64), nullable=False)
    created_at = Column(Integer, nullable=False)  # clock height
    record_hash = Column(String(64), nullable=False)  # pointer to off-chain ciphertext
    emergency_contact = Column(String, nullable=True)

    def to_dict(self):
        return {
            "patient": self.patient,
            "name": self.name,
            "created_at": self.created_at,
            "record_hash": self.record_hash,
            "emergency_contact": self.emergency_contact,
        }


class AccessGrant(Base):
    __tablename__ = "access_grants"
    patient = Column(String, primary_key=True)
    provider = Column(String, primary_key=True)
    granted_at = Column(Integer, nullable=False)
    expires_at = Column(Integer, nullable=False)
    level = Column(Integer, nullable=False)
    certificate_id = Column(Integer, nullable=False)
    consent_proof = Column(String(64), nullable=False)

    def is_expired(self, height: int) -> bool:
        return height >= self.expires_at

    def to_dict(self):
        return {
            "patient": self.patient,
            "provider": self.provider,
            "granted_at": self.granted_at,
            "expires_at": self.expires_at,
            "level": self.level,
            "certificate_id": self.certificate_id,
            "consent_proof": self.consent_proof,
        }


class Certificate(Base):
    """The issued token. Its holder may change hands after issuance."""
    __tablename__ = "certificates"
    certificate_id = Column(Integer, primary_key=True, autoincrement=False)
    holder = Column(String, nullable=False)
    signature = Column(String, nullable=True)


class CertificateMetadata(Base):
    __tablename__ = "certificate_metadata"
    certificate_id = Column(Integer, primary_key=True, autoincrement=False)
    patient = Column(String, nullable=False)
    provider = Column(String, nullable=False)
    level = Column(Integer, nullable=False)
    expires_at = Column(Integer, nullable=False)

    def to_dict(self):
        return {
            "certificate_id": self.certificate_id,
            "patient": self.patient,
            "provider": self.provider,
            "level": self.level,
            "expires_at": self.expires_at,
        }


class EmergencyStatus(Base):
    __tablename__ = "emergency_status"
    patient = Column(String, primary_key=True)
    active = Column(Boolean, nullable=False, default=True)
    activated_by = Column(String, nullable=False)
    activated_at = Column(Integer, nullable=False)
    reason = Column(String(256), nullable=False, default="")

    @classmethod
    def is_active(cls, db: Session, patient: str) -> bool:
        status = db.get(cls, patient)
        return bool(status and status.active)

    def to_dict(self):
        return {
            "patient": self.patient,
            "active": self.active,
            "activated_by": self.activated_by,
            "activated_at": self.activated_at,
            "reason": self.reason,
        }


class AuditLogEntry(Base):
    """Write-once. Nothing in the package updates or deletes these rows."""
    __tablename__ = "audit_log"
    log_id = Column(Integer, primary_key=True, autoincrement=False)
    patient = Column(String, nullable=False, index=True)
    accessor = Column(String, nullable=False, index=True)
    action = Column(String(64), nullable=False)
    timestamp = Column(Integer, nullable=False, default=0)
    height = Column(Integer, nullable=False)

    def to_dict(self):
        return {
            "log_id": self.log_id,
            "patient": self.patient,
            "accessor": self.accessor,
            "action": self.action,
            "timestamp": self.timestamp,
            "height": self.height,
        }


class Sequence(Base):
    __tablename__ = "sequences"
    name = Column(String, primary_key=True)
    next_value = Column(Integer, nullable=False, default=1)

    @classmethod
    def peek(cls, db: Session, name: str) -> int:
        row = db.get(cls, name, populate_existing=True)
        return row.next_value if row else 1

    @classmethod
    def take(cls, db: Session, name: str) -> int:
        """Return the next value and advance. Must run inside an atomic block."""
        row = db.get(cls, name, with_for_update=True, populate_existing=True)
        if row is None:
            row = cls(name=name, next_value=1)
            db.add(row)
        value = row.next_value
        row.next_value = value + 1
        db.flush()
        return value


TOKEN_SEQUENCE = "next-token-id"
LOG_SEQUENCE = "next-log-id"
