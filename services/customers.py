# services/customers.py
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Customer
from services.errors import NotFoundError, ValidationError
from utils.code_generator import next_code

logger = logging.getLogger(__name__)


def _clean_name(name: Optional[str]) -> str:
    return " ".join((name or "").split())


def find_by_name(db: Session, name: str) -> Optional[Customer]:
    clean = _clean_name(name)
    if not clean:
        return None
    return db.query(Customer).filter(func.lower(Customer.name) == clean.lower()).first()


def get_or_create_by_name(db: Session, name: str) -> Customer:
    """หา customer จากชื่อแบบไม่สนตัวพิมพ์ ไม่เจอค่อยสร้างใหม่ (ไม่ commit)"""
    clean = _clean_name(name)
    if not clean:
        raise ValidationError("Customer name is required")
    c = find_by_name(db, clean)
    if c:
        return c
    c = Customer(code=next_code(db, Customer, "code", prefix="C", width=4), name=clean)
    db.add(c)
    db.flush()
    logger.info("created customer %s (%s)", c.code, c.name)
    return c


def resolve_customer(
    db: Session,
    customer_id: Optional[int] = None,
    customer_name: Optional[str] = None,
) -> Customer:
    if customer_id:
        c = db.get(Customer, customer_id)
        if not c:
            raise NotFoundError("Customer not found", customer_id=customer_id)
        return c
    if _clean_name(customer_name):
        return get_or_create_by_name(db, customer_name)
    raise ValidationError("customer_id or customer_name is required")
