# medledger/schemas.py
from pydantic import BaseModel, Field
from typing import List, Optional


class RegisterIn(BaseModel):
    name: str
    record_hash: str
    emergency_contact: Optional[str] = None


class EmergencyContactIn(BaseModel):
    emergency_contact: Optional[str] = None


class RecordHashIn(BaseModel):
    record_hash: str


class GrantIn(BaseModel):
    provider: str
    level: int
    expires_at: int = Field(ge=0)
    consent_proof: str


class GrantOut(BaseModel):
    certificate_id: int


class TransferIn(BaseModel):
    recipient: str


class VerifyIn(BaseModel):
    signature: str


class EmergencyIn(BaseModel):
    reason: str = ""


class AuditAppendIn(BaseModel):
    patient: str
    accessor: str
    action: str


class PatientOut(BaseModel):
    patient: str
    name: str
    created_at: int
    record_hash: str
    emergency_contact: Optional[str] = None


class GrantRecordOut(BaseModel):
    patient: str
    provider: str
    granted_at: int
    expires_at: int
    level: int
    certificate_id: int
    consent_proof: str


class CertificateOut(BaseModel):
    certificate_id: int
    holder: str
    signature: Optional[str] = None


class CertificateMetadataOut(BaseModel):
    certificate_id: int
    patient: str
    provider: str
    level: int
    expires_at: int


class EmergencyStatusOut(BaseModel):
    patient: str
    active: bool
    activated_by: str
    activated_at: int
    reason: str


class AccessLevelOut(BaseModel):
    level: int


class LogEntryOut(BaseModel):
    log_id: int
    patient: str
    accessor: str
    action: str
    timestamp: int
    height: int


class LogIdOut(BaseModel):
    log_id: int


class CountOut(BaseModel):
    count: int


class LogListOut(BaseModel):
    entries: List[LogEntryOut]


class ErrorOut(BaseModel):
    error: str
    code: int
    detail: str
