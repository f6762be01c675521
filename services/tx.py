# services/tx.py
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from services.errors import ConflictError, ServiceError, StorageError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    หุ้มงานหลายขั้นตอนให้เป็น transaction เดียว:
    commit เมื่อสำเร็จ, rollback ทั้งหมดเมื่อมี error ใด ๆ
    """
    try:
        yield db
        db.commit()
    except ServiceError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning("integrity error, rolled back: %s", e.orig)
        raise ConflictError("Duplicate or conflicting record") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("storage error, rolled back")
        raise StorageError("Database operation failed") from e
    except Exception:
        db.rollback()
        raise
