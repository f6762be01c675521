# services/shipment_ledger.py
"""
สถานะการออก invoice / การคืน surat jalan ของ shipment

ฟังก์ชัน mark/release/set_returned ไม่ commit เอง ต้องเรียกภายใน atomic()
ของ operation ที่เป็นเจ้าของ และควรเป็นขั้นตอนสุดท้ายของ transaction
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import exists, func, or_, select
from sqlalchemy.orm import Session, joinedload

from models import Invoice, InvoiceItem, ManifestItem, Shipment
from services.customers import resolve_customer
from services.errors import ConflictError, NotFoundError, ValidationError
from services.tx import atomic
from utils.orm import sa_update_from_dict

logger = logging.getLogger(__name__)


def _live_invoice_exists():
    """มี invoice ที่ยังไม่ถูก cancel อ้างถึง shipment นี้อยู่หรือไม่ (correlated)"""
    return exists(
        select(InvoiceItem.id)
        .join(Invoice, Invoice.id == InvoiceItem.invoice_id)
        .where(InvoiceItem.shipment_id == Shipment.id, Invoice.status != "cancelled")
    )


def day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


# ---------- queries ----------
def find_invoiceable_shipments(
    db: Session,
    *,
    dbl_id: Optional[int] = None,
    destination: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    customer_id: Optional[int] = None,
) -> List[Shipment]:
    q = (
        db.query(Shipment)
        .options(joinedload(Shipment.customer))
        .filter(
            Shipment.nominal > 0,
            or_(Shipment.invoice_generated.is_(False), ~_live_invoice_exists()),
        )
    )
    if dbl_id is not None:
        q = q.join(ManifestItem, ManifestItem.shipment_id == Shipment.id).filter(ManifestItem.dbl_id == dbl_id)
        q = q.order_by(ManifestItem.urutan, Shipment.id)
    else:
        q = q.order_by(Shipment.created_at.desc(), Shipment.id.desc())
    if destination:
        q = q.filter(func.lower(Shipment.destination).like(f"%{destination.strip().lower()}%"))
    if date_from:
        q = q.filter(Shipment.created_at >= day_start(date_from))
    if date_to:
        q = q.filter(Shipment.created_at < day_start(date_to + timedelta(days=1)))
    if customer_id is not None:
        q = q.filter(Shipment.customer_id == customer_id)
    return q.all()


def find_by_spb(db: Session, spb_number: str) -> Optional[Shipment]:
    spb = (spb_number or "").strip()
    if not spb:
        return None
    return db.query(Shipment).filter(Shipment.spb_number == spb).first()


def get_shipment(db: Session, shipment_id: int) -> Shipment:
    s = db.get(Shipment, shipment_id)
    if not s:
        raise NotFoundError("Shipment not found", shipment_id=shipment_id)
    return s


def list_shipments(
    db: Session,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
    q: Optional[str] = None,
) -> Tuple[List[Shipment], int]:
    query = db.query(Shipment)
    if status:
        query = query.filter(Shipment.status == status)
    if q and q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(or_(
            Shipment.spb_number.ilike(like),
            Shipment.customer_name.ilike(like),
            Shipment.penerima_name.ilike(like),
            Shipment.destination.ilike(like),
        ))
    total = query.count()
    rows = (
        query.order_by(Shipment.created_at.desc(), Shipment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


# ---------- flags (ไม่ commit) ----------
def mark_invoiced(db: Session, shipment_ids: Iterable[int]) -> None:
    ids = sorted({int(i) for i in shipment_ids if i is not None})
    if not ids:
        return
    for s in db.query(Shipment).filter(Shipment.id.in_(ids)).all():
        if not s.invoice_generated:
            s.invoice_generated = True
    db.flush()


def release_invoiced(db: Session, shipment_ids: Iterable[int]) -> None:
    ids = sorted({int(i) for i in shipment_ids if i is not None})
    if not ids:
        return
    for s in db.query(Shipment).filter(Shipment.id.in_(ids)).all():
        if s.invoice_generated:
            s.invoice_generated = False
    db.flush()


def apply_returned(shipment: Shipment, returned: bool) -> None:
    """false->true: stamp เวลา, ->false: ล้างเวลา, ค่าเดิม: ไม่แตะ"""
    returned = bool(returned)
    if returned and not shipment.sj_returned:
        shipment.sj_returned = True
        shipment.sj_returned_at = datetime.now(timezone.utc)
    elif not returned and shipment.sj_returned:
        shipment.sj_returned = False
        shipment.sj_returned_at = None


def set_returned(db: Session, shipment_id: int, returned: bool) -> Shipment:
    s = get_shipment(db, shipment_id)
    apply_returned(s, returned)
    db.flush()
    return s


# ---------- CRUD ----------
def create_shipment(db: Session, data: dict) -> Shipment:
    data = dict(data)
    with atomic(db):
        customer_id = data.pop("customer_id", None)
        customer_name = data.pop("customer_name", None)
        customer = None
        if customer_id or (customer_name or "").strip():
            customer = resolve_customer(db, customer_id, customer_name)
        if data.get("spb_number"):
            data["spb_number"] = data["spb_number"].strip()
            if find_by_spb(db, data["spb_number"]):
                raise ConflictError("SPB number already exists", spb_number=data["spb_number"])
        s = Shipment()
        sa_update_from_dict(s, data)
        if customer is not None:
            s.customer_id = customer.id
            s.customer_name = customer.name
        db.add(s)
        db.flush()
        logger.info("created shipment id=%s spb=%s", s.id, s.spb_number)
    db.refresh(s)
    return s


# ฟิลด์ที่ update ได้โดยตรง (flag ต่าง ๆ ต้องผ่าน operation เฉพาะ)
UPDATABLE_FIELDS = (
    "spb_number", "pengirim_name", "penerima_name", "penerima_phone", "origin", "destination",
    "macam_barang", "total_colli", "qty", "satuan", "berat", "nominal", "status", "keterangan",
)


def update_shipment(db: Session, shipment_id: int, data: dict) -> Shipment:
    with atomic(db):
        s = get_shipment(db, shipment_id)
        if "customer_id" in data or "customer_name" in data:
            cid = data.get("customer_id")
            cname = data.get("customer_name")
            if cid or (cname or "").strip():
                c = resolve_customer(db, cid, cname)
                s.customer_id, s.customer_name = c.id, c.name
            else:
                s.customer_id, s.customer_name = None, None
        if data.get("spb_number") and data["spb_number"] != s.spb_number:
            other = find_by_spb(db, data["spb_number"])
            if other and other.id != s.id:
                raise ConflictError("SPB number already exists", spb_number=data["spb_number"])
        if "nominal" in data and data["nominal"] is not None and data["nominal"] < 0:
            raise ValidationError("nominal must not be negative")
        sa_update_from_dict(s, data, allow_fields=UPDATABLE_FIELDS)
        db.flush()
    db.refresh(s)
    return s


def delete_shipment(db: Session, shipment_id: int) -> None:
    with atomic(db):
        s = get_shipment(db, shipment_id)
        referenced = db.query(
            exists().where(InvoiceItem.shipment_id == s.id)
        ).scalar()
        if referenced:
            raise ConflictError("Shipment is referenced by an invoice; cannot delete", shipment_id=s.id)
        db.query(ManifestItem).filter(ManifestItem.shipment_id == s.id).delete(synchronize_session=False)
        db.delete(s)
    logger.info("deleted shipment id=%s", shipment_id)
