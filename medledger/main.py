# medledger/main.py
from fastapi import FastAPI, Depends, Header, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List
import logging

from medledger import config, schemas
from medledger.access import AccessController
from medledger.audit import AuditLog
from medledger.clock import Clock, SystemClock
from medledger.db import SessionLocal, init_db
from medledger.emergency import EmergencyOverride
from medledger.errors import ErrorCode, LedgerError
from medledger.query import AuditQuery

logger = logging.getLogger(__name__)

HTTP_STATUS = {
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ALREADY_EXISTS: 409,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.EXPIRED_ACCESS: 410,
    ErrorCode.EMERGENCY_INACTIVE: 423,
    ErrorCode.AUDIT_FAILED: 500,
}

config.configure_logging()
app = FastAPI(
    title="Delegated Record Access Ledger",
    responses={status: {"model": schemas.ErrorOut} for status in set(HTTP_STATUS.values())},
)

# Initialize DB
init_db()


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(
        status_code=HTTP_STATUS.get(exc.code, 400),
        content=schemas.ErrorOut(error=exc.kind, code=int(exc.code), detail=exc.detail).model_dump(),
    )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_system_clock = SystemClock()


def get_clock() -> Clock:
    return _system_clock


def get_caller(x_principal: str = Header(...)) -> str:
    # callers arrive pre-authenticated; the gateway sets this header
    return x_principal


class Ledger:
    """Components wired onto one request-scoped session."""

    def __init__(self, db: Session, clock: Clock):
        self.audit = AuditLog(db, writer=config.LEDGER_PRINCIPAL, clock=clock)
        self.access = AccessController(db, self.audit, clock, admins=config.LEDGER_ADMINS,
                                       principal=config.LEDGER_PRINCIPAL,
                                       sign_key=config.LEDGER_SIGN_KEY)
        self.emergency = EmergencyOverride(db, self.access, self.audit, clock,
                                           admins=config.LEDGER_ADMINS,
                                           principal=config.LEDGER_PRINCIPAL)
        self.query = AuditQuery(self.audit)


def get_ledger(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> Ledger:
    return Ledger(db, clock)


# --- Patients
@app.post("/patients", status_code=201)
def register(payload: schemas.RegisterIn, caller: str = Depends(get_caller),
             ledger: Ledger = Depends(get_ledger)):
    ledger.access.register(caller, payload.name, payload.record_hash, payload.emergency_contact)
    return {"ok": True}


@app.put("/patients/me/emergency-contact")
def update_emergency_contact(payload: schemas.EmergencyContactIn, caller: str = Depends(get_caller),
                             ledger: Ledger = Depends(get_ledger)):
    ledger.access.update_emergency_contact(caller, payload.emergency_contact)
    return {"ok": True}


@app.put("/patients/me/record-hash")
def update_record_hash(payload: schemas.RecordHashIn, caller: str = Depends(get_caller),
                       ledger: Ledger = Depends(get_ledger)):
    ledger.access.update_record_hash(caller, payload.record_hash)
    return {"ok": True}


@app.put("/patients/{patient}/record-hash")
def provider_update_record(patient: str, payload: schemas.RecordHashIn,
                           caller: str = Depends(get_caller), ledger: Ledger = Depends(get_ledger)):
    ledger.access.provider_update_record(caller, patient, payload.record_hash)
    return {"ok": True}


@app.get("/patients/{patient}/record", response_model=schemas.PatientOut)
def read_record(patient: str, caller: str = Depends(get_caller), ledger: Ledger = Depends(get_ledger)):
    return ledger.access.read_record(caller, patient).to_dict()


# --- Grants
@app.post("/grants", response_model=schemas.GrantOut, status_code=201)
def grant_access(payload: schemas.GrantIn, caller: str = Depends(get_caller),
                 ledger: Ledger = Depends(get_ledger)):
    certificate_id = ledger.access.grant_access(
        caller, payload.provider, payload.level, payload.expires_at, payload.consent_proof
    )
    return {"certificate_id": certificate_id}


@app.get("/grants/{patient}/{provider}", response_model=schemas.GrantRecordOut)
def get_grant(patient: str, provider: str, ledger: Ledger = Depends(get_ledger)):
    return ledger.access.get_grant(patient, provider).to_dict()


@app.delete("/grants/{patient}/{provider}")
def revoke_access(patient: str, provider: str, caller: str = Depends(get_caller),
                  ledger: Ledger = Depends(get_ledger)):
    ledger.access.revoke_access(caller, patient, provider)
    return {"ok": True}


@app.get("/access/{patient}/{provider}", response_model=schemas.AccessLevelOut)
def check_access(patient: str, provider: str, ledger: Ledger = Depends(get_ledger)):
    return {"level": ledger.access.check_access(patient, provider)}


# --- Certificates
@app.get("/certificates/{certificate_id}", response_model=schemas.CertificateOut)
def get_certificate(certificate_id: int, ledger: Ledger = Depends(get_ledger)):
    cert = ledger.access.get_certificate(certificate_id)
    return {"certificate_id": cert.certificate_id, "holder": cert.holder, "signature": cert.signature}


@app.get("/certificates/{certificate_id}/metadata", response_model=schemas.CertificateMetadataOut)
def get_certificate_metadata(certificate_id: int, ledger: Ledger = Depends(get_ledger)):
    return ledger.access.get_certificate_metadata(certificate_id).to_dict()


@app.post("/certificates/{certificate_id}/transfer")
def transfer_certificate(certificate_id: int, payload: schemas.TransferIn,
                         caller: str = Depends(get_caller), ledger: Ledger = Depends(get_ledger)):
    ledger.access.transfer_certificate(caller, certificate_id, payload.recipient)
    return {"ok": True}


@app.post("/certificates/verify", response_model=schemas.CertificateMetadataOut)
def verify_certificate(payload: schemas.VerifyIn, ledger: Ledger = Depends(get_ledger)):
    return ledger.access.verify_certificate(payload.signature).to_dict()


# --- Emergency override
@app.post("/emergencies/{patient}")
def activate_emergency(patient: str, payload: schemas.EmergencyIn,
                       caller: str = Depends(get_caller), ledger: Ledger = Depends(get_ledger)):
    ledger.emergency.activate(caller, patient, payload.reason)
    return {"ok": True}


@app.delete("/emergencies/{patient}")
def deactivate_emergency(patient: str, caller: str = Depends(get_caller),
                         ledger: Ledger = Depends(get_ledger)):
    ledger.emergency.deactivate(caller, patient)
    return {"ok": True}


@app.get("/emergencies/{patient}", response_model=schemas.EmergencyStatusOut)
def get_emergency_status(patient: str, ledger: Ledger = Depends(get_ledger)):
    return ledger.emergency.get_status(patient).to_dict()


@app.get("/emergencies/{patient}/record", response_model=schemas.PatientOut)
def emergency_read(patient: str, caller: str = Depends(get_caller), ledger: Ledger = Depends(get_ledger)):
    return ledger.emergency.emergency_read(caller, patient).to_dict()


# --- Audit log
@app.post("/audit", response_model=schemas.LogIdOut, status_code=201)
def audit_append(payload: schemas.AuditAppendIn, caller: str = Depends(get_caller),
                 ledger: Ledger = Depends(get_ledger)):
    log_id = ledger.audit.append(caller, payload.patient, payload.accessor, payload.action)
    return {"log_id": log_id}


@app.get("/audit/count", response_model=schemas.CountOut)
def audit_count(ledger: Ledger = Depends(get_ledger)):
    return {"count": ledger.audit.count()}


@app.get("/audit/first", response_model=schemas.LogIdOut)
def find_first_log(patient: str, accessor: str, action: str, ledger: Ledger = Depends(get_ledger)):
    return {"log_id": ledger.query.find_first(patient, accessor, action)}


@app.get("/audit/batch", response_model=schemas.LogListOut)
def audit_batch(ids: List[int] = Query(...), ledger: Ledger = Depends(get_ledger)):
    return {"entries": [e.to_dict() for e in ledger.audit.get_batch(ids)]}


@app.get("/audit/patients/{patient}", response_model=schemas.LogListOut)
def get_patient_logs(patient: str, limit: int = Query(20, ge=0), offset: int = Query(0, ge=0),
                     ledger: Ledger = Depends(get_ledger)):
    return {"entries": [e.to_dict() for e in ledger.query.get_patient_logs(patient, limit, offset)]}


@app.get("/audit/accessors/{accessor}", response_model=schemas.LogListOut)
def get_accessor_logs(accessor: str, limit: int = Query(20, ge=0), offset: int = Query(0, ge=0),
                      ledger: Ledger = Depends(get_ledger)):
    return {"entries": [e.to_dict() for e in ledger.query.get_accessor_logs(accessor, limit, offset)]}


@app.get("/audit/patients/{patient}/pages/{page}", response_model=schemas.LogListOut)
def get_patient_page(patient: str, page: int, ledger: Ledger = Depends(get_ledger)):
    return {"entries": [e.to_dict() for e in ledger.audit.get_patient_page(patient, page)]}


@app.get("/audit/accessors/{accessor}/pages/{page}", response_model=schemas.LogListOut)
def get_accessor_page(accessor: str, page: int, ledger: Ledger = Depends(get_ledger)):
    return {"entries": [e.to_dict() for e in ledger.audit.get_accessor_page(accessor, page)]}


@app.get("/audit/{log_id}", response_model=schemas.LogEntryOut)
def audit_get(log_id: int, ledger: Ledger = Depends(get_ledger)):
    return ledger.audit.get(log_id).to_dict()
