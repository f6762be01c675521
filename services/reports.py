# services/reports.py
"""รายงานแบบอ่านอย่างเดียว: ยอดค้าง, margin ต่อเที่ยวรถ, สรุป manifest, ยอดขาย, dashboard"""
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import (
    OPERATIONAL_COST_FIELDS,
    Invoice,
    InvoicePayment,
    Manifest,
    ManifestItem,
    ManifestOperationalCost,
    Shipment,
)
from services.invoices import list_outstanding  # noqa: F401  (ใช้ผ่าน reports router)
from services.shipment_ledger import day_start
from utils.money import CANCELLED, HUNDRED, ZERO, quantize, to_decimal

ACTIVE_SHIPMENT_STATUSES = ("READY", "LOADING", "IN_TRANSIT")


def _manifest_nominal_subquery(db: Session):
    return (
        db.query(
            ManifestItem.dbl_id.label("dbl_id"),
            func.count(ManifestItem.id).label("shipment_count"),
            func.coalesce(func.sum(Shipment.total_colli), 0).label("total_colli"),
            func.coalesce(func.sum(Shipment.berat), 0).label("total_berat"),
            func.coalesce(func.sum(Shipment.nominal), 0).label("total_nominal"),
        )
        .join(Shipment, Shipment.id == ManifestItem.shipment_id)
        .group_by(ManifestItem.dbl_id)
        .subquery()
    )


def margin_report(
    db: Session,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    destination: Optional[str] = None,
) -> dict:
    """margin ต่อเที่ยว = ค่าขนส่งรวมของ shipment - ต้นทุนดำเนินการ"""
    stats = _manifest_nominal_subquery(db)
    q = (
        db.query(Manifest, stats.c.total_nominal, ManifestOperationalCost)
        .outerjoin(stats, stats.c.dbl_id == Manifest.id)
        .outerjoin(ManifestOperationalCost, ManifestOperationalCost.dbl_id == Manifest.id)
    )
    if date_from:
        q = q.filter(Manifest.dbl_date >= date_from)
    if date_to:
        q = q.filter(Manifest.dbl_date <= date_to)
    if destination and destination.strip():
        q = q.filter(func.lower(Manifest.destination).like(f"%{destination.strip().lower()}%"))

    items = []
    for m, nominal, oc in q.order_by(Manifest.dbl_date.desc(), Manifest.id.desc()).all():
        total_nominal = quantize(nominal or 0)
        breakdown = {f: quantize(getattr(oc, f) if oc is not None else 0) for f in OPERATIONAL_COST_FIELDS}
        total_operational = quantize(oc.total_operational if oc is not None else 0)
        margin = total_nominal - total_operational
        pct = quantize(margin / total_nominal * HUNDRED) if total_nominal > 0 else ZERO
        items.append({
            "id": m.id,
            "dbl_number": m.dbl_number,
            "dbl_date": m.dbl_date,
            "origin": m.origin,
            "destination": m.destination,
            "driver_name": m.driver_name,
            "vehicle_plate": m.vehicle_plate,
            "total_nominal": total_nominal,
            "total_operational": total_operational,
            **breakdown,
            "margin": quantize(margin),
            "margin_percent": pct,
        })

    summary = {
        "total_nominal": quantize(sum((r["total_nominal"] for r in items), ZERO)),
        "total_operational": quantize(sum((r["total_operational"] for r in items), ZERO)),
        "total_margin": quantize(sum((r["margin"] for r in items), ZERO)),
    }
    return {"items": items, "summary": summary}


def manifest_report(db: Session, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
    stats = _manifest_nominal_subquery(db)
    q = db.query(
        Manifest,
        stats.c.shipment_count,
        stats.c.total_colli,
        stats.c.total_berat,
        stats.c.total_nominal,
    ).outerjoin(stats, stats.c.dbl_id == Manifest.id)
    if date_from:
        q = q.filter(Manifest.dbl_date >= date_from)
    if date_to:
        q = q.filter(Manifest.dbl_date <= date_to)

    items = []
    for m, count, colli, berat, nominal in q.order_by(Manifest.dbl_date.desc(), Manifest.id.desc()).all():
        items.append({
            "id": m.id,
            "dbl_number": m.dbl_number,
            "dbl_date": m.dbl_date,
            "vehicle_plate": m.vehicle_plate,
            "driver_name": m.driver_name,
            "destination": m.destination,
            "status": m.status,
            "shipment_count": int(count or 0),
            "total_colli": int(colli or 0),
            "total_berat": to_decimal(berat),
            "total_nominal": quantize(nominal or 0),
            "total_tagihan": quantize(m.total_tagihan),
            "total_bayar": quantize(m.total_bayar),
        })
    summary = {
        "manifest_count": len(items),
        "shipment_count": sum(r["shipment_count"] for r in items),
        "total_nominal": quantize(sum((r["total_nominal"] for r in items), ZERO)),
    }
    return {"items": items, "summary": summary}


def sales_report(
    db: Session,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    customer_id: Optional[int] = None,
) -> dict:
    """ยอดขายต่อลูกค้า (ไม่นับ invoice ที่ cancel)"""
    q = (
        db.query(
            Invoice.customer_id,
            Invoice.customer_name,
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.subtotal), 0),
            func.coalesce(func.sum(Invoice.pph_amount), 0),
            func.coalesce(func.sum(Invoice.total_tagihan), 0),
            func.coalesce(func.sum(Invoice.paid_amount), 0),
            func.coalesce(func.sum(Invoice.remaining_amount), 0),
        )
        .filter(Invoice.status != CANCELLED)
        .group_by(Invoice.customer_id, Invoice.customer_name)
    )
    if date_from:
        q = q.filter(Invoice.issued_at >= day_start(date_from))
    if date_to:
        q = q.filter(Invoice.issued_at < day_start(date_to + timedelta(days=1)))
    if customer_id is not None:
        q = q.filter(Invoice.customer_id == customer_id)

    items = []
    for cid, name, count, sub, pph, billed, paid, rem in q.order_by(Invoice.customer_name).all():
        items.append({
            "customer_id": cid,
            "customer_name": name,
            "invoice_count": int(count or 0),
            "subtotal": quantize(sub),
            "pph_amount": quantize(pph),
            "total_tagihan": quantize(billed),
            "paid_amount": quantize(paid),
            "remaining_amount": quantize(rem),
        })
    summary = {
        key: quantize(sum((r[key] for r in items), ZERO))
        for key in ("subtotal", "pph_amount", "total_tagihan", "paid_amount", "remaining_amount")
    }
    summary["invoice_count"] = sum(r["invoice_count"] for r in items)
    return {"items": items, "summary": summary}


def dashboard_stats(db: Session, today: Optional[date] = None) -> dict:
    today = today or date.today()
    start = day_start(today)
    end = day_start(today + timedelta(days=1))

    outgoing_today = (
        db.query(func.count(Shipment.id))
        .filter(Shipment.created_at >= start, Shipment.created_at < end)
        .scalar()
    )
    active = db.query(func.count(Shipment.id)).filter(Shipment.status.in_(ACTIVE_SHIPMENT_STATUSES)).scalar()
    pending = db.query(func.count(Invoice.id)).filter(Invoice.status.in_(("pending", "partial"))).scalar()
    invoices_total = db.query(func.count(Invoice.id)).scalar()
    delivery_notes = db.query(func.count(Shipment.id)).scalar()

    outstanding = list_outstanding(db)
    pay_count, pay_sum = db.query(
        func.count(InvoicePayment.id), func.coalesce(func.sum(InvoicePayment.amount), 0)
    ).one()

    return {
        "outgoing_today": int(outgoing_today or 0),
        "active_shipments": int(active or 0),
        "pending_invoices": int(pending or 0),
        "total_invoices": int(invoices_total or 0),
        "delivery_notes": int(delivery_notes or 0),
        "outstanding_count": outstanding["count"],
        "outstanding_amount": outstanding["total_remaining"],
        "payments_count": int(pay_count or 0),
        "payments_amount": quantize(pay_sum),
    }
