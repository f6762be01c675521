# services/manifests.py
"""
Manifest (DBL) = รถหนึ่งเที่ยวที่บรรทุกหลาย shipment

- total_tagihan = loco_amount - tekor_amount
- total_bayar   = sangu + komisi + ongkos_muatan + biaya_lain + administrasi + ongkos_lain
"""
import logging
from collections import OrderedDict
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from config import settings
from models import (
    MANIFEST_COST_FIELDS,
    MANIFEST_FEE_FIELDS,
    OPERATIONAL_COST_FIELDS,
    Customer,
    Manifest,
    ManifestItem,
    ManifestOperationalCost,
    Shipment,
)
from services.customers import get_or_create_by_name
from services.errors import ConflictError, NotFoundError, ValidationError
from services.invoices import _create_invoice, describe_shipment
from services.shipment_ledger import find_invoiceable_shipments
from services.tx import atomic
from utils.money import ZERO, quantize, to_decimal
from utils.orm import sa_to_dict, sa_update_from_dict
from utils.sequencer import next_manifest_number

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 20

# สถานะของ manifest -> สถานะของ shipment ที่อยู่บนรถ
STATUS_PROPAGATION = {
    "DEPARTED": "IN_TRANSIT",
    "ARRIVED": "IN_TRANSIT",
    "COMPLETED": "DELIVERED",
}

HEADER_FIELDS = (
    "dbl_date", "vehicle_plate", "driver_name", "driver_phone", "origin", "destination",
    "status", "catatan", "pengurus_name", "supir_name",
)


def manifest_totals(values: dict) -> Tuple[Any, Any]:
    """(total_tagihan, total_bayar) จากค่าใน dict (ไม่มี = 0)"""
    tagihan = to_decimal(values.get("loco_amount")) - to_decimal(values.get("tekor_amount"))
    bayar = sum((to_decimal(values.get(f)) for f in MANIFEST_FEE_FIELDS), ZERO)
    return quantize(tagihan), quantize(bayar)


def get_manifest(db: Session, manifest_id: int) -> Manifest:
    m = (
        db.query(Manifest)
        .options(selectinload(Manifest.items).selectinload(ManifestItem.shipment))
        .filter(Manifest.id == manifest_id)
        .first()
    )
    if not m:
        raise NotFoundError("Manifest not found", dbl_id=manifest_id)
    return m


def _allocate_manifest_number(db: Session, on=None) -> str:
    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = next_manifest_number(db, settings.MANIFEST_PREFIX, on)
        if not db.query(Manifest.id).filter(Manifest.dbl_number == number).first():
            return number
        logger.warning("manifest number %s already in use, advancing", number)
    raise ConflictError("Could not allocate a unique manifest number")


def _dedupe(ids: Iterable[int]) -> List[int]:
    # ซ้ำ = เก็บตำแหน่งแรก
    return list(OrderedDict.fromkeys(int(i) for i in ids))


def _set_shipments(db: Session, m: Manifest, shipment_ids: Iterable[int]) -> None:
    """แทนที่รายการ shipment ของ manifest (ไม่ commit)"""
    ids = _dedupe(shipment_ids)
    shipments = {s.id: s for s in db.query(Shipment).filter(Shipment.id.in_(ids)).all()} if ids else {}
    missing = [i for i in ids if i not in shipments]
    if missing:
        raise NotFoundError("Shipment not found", shipment_ids=missing)

    existing = {it.shipment_id: it for it in m.items}
    removed = [sid for sid in existing if sid not in shipments]
    for sid in removed:
        m.items.remove(existing[sid])
    db.flush()

    added = []
    for pos, sid in enumerate(ids, start=1):
        if sid in existing:
            existing[sid].urutan = pos
        else:
            m.items.append(ManifestItem(shipment_id=sid, urutan=pos))
            added.append(sid)
    if added:
        # shipment อยู่ได้แค่ manifest เดียว
        db.query(ManifestItem).filter(
            ManifestItem.shipment_id.in_(added), ManifestItem.dbl_id != m.id
        ).delete(synchronize_session=False)
    db.flush()

    # เขียน shipment เป็นขั้นตอนสุดท้าย
    if removed:
        for s in db.query(Shipment).filter(Shipment.id.in_(removed)).all():
            if s.dbl_id == m.id:
                s.dbl_id = None
    for s in shipments.values():
        s.dbl_id = m.id
    db.flush()


def _propagate_status(db: Session, m: Manifest) -> int:
    target = STATUS_PROPAGATION.get(m.status)
    if not target:
        return 0
    count = 0
    for it in m.items:
        if it.shipment is not None and it.shipment.status != target:
            it.shipment.status = target
            count += 1
    db.flush()
    return count


# ---------- header ----------
def create_manifest(db: Session, data: dict) -> Manifest:
    data = dict(data)
    shipment_ids = data.pop("shipment_ids", None)
    with atomic(db):
        number = (data.pop("dbl_number", None) or "").strip()
        if number:
            if db.query(Manifest.id).filter(Manifest.dbl_number == number).first():
                raise ConflictError("Manifest number already exists", dbl_number=number)
        else:
            number = _allocate_manifest_number(db, data.get("dbl_date"))

        m = Manifest(dbl_number=number)
        sa_update_from_dict(m, data, allow_fields=HEADER_FIELDS)
        for f in MANIFEST_COST_FIELDS:
            setattr(m, f, to_decimal(data.get(f)))
        m.total_tagihan, m.total_bayar = manifest_totals(data)
        db.add(m)
        db.flush()

        if shipment_ids:
            _set_shipments(db, m, shipment_ids)
        manifest_id = m.id
        logger.info("created manifest %s with %d shipments", number, len(shipment_ids or []))
    return get_manifest(db, manifest_id)


def update_manifest(db: Session, manifest_id: int, data: dict) -> Manifest:
    """แก้บางฟิลด์; ยอดรวมคำนวณจากค่าเดิมรวมกับค่าที่ส่งมา"""
    data = dict(data)
    shipment_ids = data.pop("shipment_ids", None)
    with atomic(db):
        m = get_manifest(db, manifest_id)
        old_status = m.status

        merged = {f: getattr(m, f) for f in MANIFEST_COST_FIELDS}
        merged.update({f: data[f] for f in MANIFEST_COST_FIELDS if data.get(f) is not None})
        for f in MANIFEST_COST_FIELDS:
            setattr(m, f, to_decimal(merged[f]))
        m.total_tagihan, m.total_bayar = manifest_totals(merged)

        sa_update_from_dict(m, {k: v for k, v in data.items() if v is not None}, allow_fields=HEADER_FIELDS)
        db.flush()

        if shipment_ids is not None:
            _set_shipments(db, m, shipment_ids)
            db.refresh(m)
        if m.status != old_status:
            n = _propagate_status(db, m)
            logger.info("manifest %s %s -> %s, %d shipments updated", m.dbl_number, old_status, m.status, n)
    return get_manifest(db, manifest_id)


def delete_manifest(db: Session, manifest_id: int) -> None:
    with atomic(db):
        m = get_manifest(db, manifest_id)
        number = m.dbl_number
        db.query(Shipment).filter(Shipment.dbl_id == m.id).update(
            {Shipment.dbl_id: None}, synchronize_session=False
        )
        db.delete(m)
    logger.info("deleted manifest %s", number)


# ---------- shipments on a manifest ----------
def set_shipments(db: Session, manifest_id: int, shipment_ids: Iterable[int]) -> Manifest:
    with atomic(db):
        m = get_manifest(db, manifest_id)
        _set_shipments(db, m, shipment_ids)
    return get_manifest(db, manifest_id)


def add_shipment(db: Session, manifest_id: int, shipment_id: int) -> Manifest:
    with atomic(db):
        m = get_manifest(db, manifest_id)
        s = db.get(Shipment, shipment_id)
        if not s:
            raise NotFoundError("Shipment not found", shipment_id=shipment_id)
        if not any(it.shipment_id == s.id for it in m.items):
            last = max((it.urutan for it in m.items), default=0)
            db.query(ManifestItem).filter(
                ManifestItem.shipment_id == s.id, ManifestItem.dbl_id != m.id
            ).delete(synchronize_session=False)
            m.items.append(ManifestItem(shipment_id=s.id, urutan=last + 1))
            db.flush()
        s.dbl_id = m.id
        s.status = "IN_TRANSIT"
    return get_manifest(db, manifest_id)


def remove_shipment(db: Session, manifest_id: int, shipment_id: int) -> Manifest:
    with atomic(db):
        m = get_manifest(db, manifest_id)
        link = next((it for it in m.items if it.shipment_id == shipment_id), None)
        if link is None:
            raise NotFoundError("Shipment is not on this manifest", dbl_id=m.id, shipment_id=shipment_id)
        m.items.remove(link)
        db.flush()
        s = db.get(Shipment, shipment_id)
        if s is not None:
            if s.dbl_id == m.id:
                s.dbl_id = None
            s.status = "LOADING"
    return get_manifest(db, manifest_id)


# ---------- read views ----------
def _item_row(it: ManifestItem) -> dict:
    s = it.shipment
    return {
        "shipment_id": it.shipment_id,
        "urutan": it.urutan,
        "spb_number": s.spb_number,
        "customer_name": s.resolved_customer_name,
        "pengirim_name": s.pengirim_name,
        "penerima_name": s.penerima_name,
        "macam_barang": s.macam_barang,
        "destination": s.destination,
        "total_colli": s.total_colli or 0,
        "berat": s.berat or ZERO,
        "nominal": s.nominal or ZERO,
        "status": s.status,
    }


def manifest_detail(db: Session, manifest_id: int) -> dict:
    m = get_manifest(db, manifest_id)
    row = sa_to_dict(m)
    row["items"] = [_item_row(it) for it in m.items if it.shipment is not None]
    return row


def _stats_subquery(db: Session):
    return (
        db.query(
            ManifestItem.dbl_id.label("dbl_id"),
            func.count(ManifestItem.id).label("shipment_count"),
            func.coalesce(func.sum(Shipment.nominal), 0).label("total_nominal"),
        )
        .join(Shipment, Shipment.id == ManifestItem.shipment_id)
        .group_by(ManifestItem.dbl_id)
        .subquery()
    )


def list_manifests(
    db: Session,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
) -> Tuple[List[dict], int]:
    stats = _stats_subquery(db)
    q = db.query(Manifest, stats.c.shipment_count, stats.c.total_nominal).outerjoin(
        stats, stats.c.dbl_id == Manifest.id
    )
    if status:
        q = q.filter(Manifest.status == status)
    total = q.count()
    rows = (
        q.order_by(Manifest.dbl_date.desc(), Manifest.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    out = []
    for m, count, nominal in rows:
        row = sa_to_dict(m)
        row["shipment_count"] = int(count or 0)
        row["total_nominal"] = quantize(nominal or 0)
        out.append(row)
    return out, total


def list_available_shipments(db: Session, limit: int = 100) -> List[Shipment]:
    """shipment ที่ยังไม่ขึ้นรถ และยังไม่ออก invoice"""
    return (
        db.query(Shipment)
        .filter(
            Shipment.dbl_id.is_(None),
            Shipment.status.in_(("READY", "LOADING", "BOOKED")),
            Shipment.invoice_generated.is_(False),
        )
        .order_by(Shipment.created_at.desc(), Shipment.id.desc())
        .limit(limit)
        .all()
    )


# ---------- invoices from a manifest ----------
def _customer_for_group(db: Session, shipments: List[Shipment]) -> Customer:
    for s in shipments:
        if s.customer is not None:
            return s.customer
    return get_or_create_by_name(db, shipments[0].customer_name)


def generate_invoices_from_manifest(db: Session, manifest_id: int, pph_percent: Any = ZERO) -> List[dict]:
    """
    ออก invoice จาก manifest: หนึ่งใบต่อลูกค้าหนึ่งราย

    ทั้งหมดอยู่ใน transaction เดียว ถ้าใบใดใบหนึ่งล้มเหลวจะไม่มีใบไหนถูกบันทึก
    """
    with atomic(db):
        m = get_manifest(db, manifest_id)
        candidates = [
            s for s in find_invoiceable_shipments(db, dbl_id=m.id)
            if s.customer_id is not None or (s.customer_name or "").strip()
        ]
        if not candidates:
            raise ValidationError("No invoiceable shipments on this manifest", dbl_id=m.id)

        groups: "OrderedDict[str, List[Shipment]]" = OrderedDict()
        for s in candidates:
            key = " ".join((s.resolved_customer_name or "").split()).lower()
            groups.setdefault(key, []).append(s)

        created = []
        for shipments in groups.values():
            customer = _customer_for_group(db, shipments)
            items = [
                {
                    "description": describe_shipment(s),
                    "quantity": 1,
                    "unit_price": s.nominal,
                    "shipment_id": s.id,
                }
                for s in shipments
            ]
            inv = _create_invoice(
                db,
                customer=customer,
                items=items,
                pph_percent=pph_percent,
                dbl_id=m.id,
            )
            created.append({
                "id": inv.id,
                "invoice_number": inv.invoice_number,
                "customer_name": inv.customer_name,
                "total_tagihan": inv.total_tagihan,
            })
        logger.info("manifest %s: generated %d invoices", m.dbl_number, len(created))
    return created


# ---------- operational costs ----------
def save_operational_costs(db: Session, manifest_id: int, data: dict) -> ManifestOperationalCost:
    with atomic(db):
        m = get_manifest(db, manifest_id)
        row = m.operational_cost
        if row is None:
            row = ManifestOperationalCost(dbl_id=m.id)
            db.add(row)
        for f in OPERATIONAL_COST_FIELDS:
            value = to_decimal(data.get(f))
            if value < 0:
                raise ValidationError(f"{f} must not be negative")
            setattr(row, f, value)
        row.total_operational = quantize(sum((to_decimal(data.get(f)) for f in OPERATIONAL_COST_FIELDS), ZERO))
        row.catatan = data.get("catatan")
        db.flush()
        row_id = row.id
    return db.get(ManifestOperationalCost, row_id)


def get_operational_costs(db: Session, manifest_id: int) -> dict:
    m = get_manifest(db, manifest_id)
    total_nominal = sum((to_decimal(it.shipment.nominal) for it in m.items if it.shipment is not None), ZERO)
    return {
        "item": m.operational_cost,
        "dbl": m,
        "total_nominal": quantize(total_nominal),
    }
