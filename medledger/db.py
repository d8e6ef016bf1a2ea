# medledger/db.py
from contextlib import contextmanager
import logging
import threading

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool

from medledger.config import DATABASE_URL
from medledger.errors import AuditFailed

logger = logging.getLogger(__name__)


def make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # in-memory databases live on a single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Write units run one at a time in this process; sequences rely on it.
_write_lock = threading.RLock()


def init_db(bind=None):
    import medledger.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)


def on_commit(db: Session, callback):
    """Run `callback` once the outermost atomic block has committed."""
    if db.info.get("atomic_depth", 0) == 0:
        callback()
    else:
        db.info.setdefault("after_commit", []).append(callback)


@contextmanager
def atomic(db: Session):
    """
    Run a block as one all-or-nothing unit of work.

    Only the outermost block commits or rolls back; nested blocks (an audit
    append inside a controller operation) join the enclosing transaction.
    Store errors leave the outermost block as AuditFailed.
    """
    depth = db.info.get("atomic_depth", 0)
    if depth == 0:
        _write_lock.acquire()
        # drop rows cached before the lock so checks see committed state
        db.expire_all()
    db.info["atomic_depth"] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except SQLAlchemyError as e:
        if depth > 0:
            raise
        db.rollback()
        logger.error("store write failed, transaction rolled back: %s", e)
        raise AuditFailed(f"store write failed: {e}") from e
    except Exception:
        if depth == 0:
            db.rollback()
            logger.debug("transaction rolled back")
        raise
    finally:
        db.info["atomic_depth"] = depth
        if depth == 0:
            callbacks = db.info.pop("after_commit", [])
            _write_lock.release()
    if depth == 0:
        for callback in callbacks:
            callback()
