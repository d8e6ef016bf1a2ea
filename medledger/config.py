# medledger/config.py
import logging
import os
from logging.handlers import RotatingFileHandler

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./ledger.db")
LEDGER_PRINCIPAL = os.environ.get("LEDGER_PRINCIPAL", "access-controller")
LEDGER_ADMINS = frozenset(
    p.strip() for p in os.environ.get("LEDGER_ADMINS", "").split(",") if p.strip()
)
LEDGER_SIGN_KEY = os.environ.get("LEDGER_SIGN_KEY", "dev-secret-key")
LOG_LEVEL = os.environ.get("LEDGER_LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LEDGER_LOG_FILE")

AUDIT_LOGGER = "medledger.audit"


def configure_logging(level=None, log_file=None):
    """Console logging for the package, plus a rotating file when LEDGER_LOG_FILE is set."""
    root = logging.getLogger("medledger")
    if root.handlers:
        return root
    root.setLevel(level or LOG_LEVEL)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s %(name)s: %(message)s'
    ))
    root.addHandler(console_handler)

    log_file = log_file or LOG_FILE
    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=10240000, backupCount=10)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        root.addHandler(file_handler)
    return root
