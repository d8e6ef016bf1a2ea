# medledger/utils.py
from jose import jwt, JWTError

from medledger.config import LEDGER_SIGN_KEY
from medledger.errors import InvalidInput

JWT_ALG = "HS256"


def sign_certificate(payload: dict, key: str = LEDGER_SIGN_KEY) -> str:
    """Return a compact JWT for a certificate payload. In prod, use HSM/RSA."""
    return jwt.encode(payload, key, algorithm=JWT_ALG)


def verify_certificate_signature(token: str, key: str = LEDGER_SIGN_KEY) -> dict:
    try:
        return jwt.decode(token, key, algorithms=[JWT_ALG])
    except JWTError:
        return {}


def require_text(value, field: str, max_bytes: int, allow_empty: bool = False) -> str:
    """Reject non-strings, empty strings (unless allowed) and values over max_bytes of UTF-8."""
    if not isinstance(value, str):
        raise InvalidInput(f"{field} must be a string")
    if not value and not allow_empty:
        raise InvalidInput(f"{field} must not be empty")
    if len(value.encode("utf-8")) > max_bytes:
        raise InvalidInput(f"{field} exceeds {max_bytes} bytes")
    return value
