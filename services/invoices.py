# services/invoices.py
"""
Invoice lifecycle: สร้าง / แก้ item / รับชำระ / PPh / cancel / reopen / ลบ

หลักการ
- ยอดเงินทุกตัวคำนวณใหม่จากแหล่งจริงเสมอ (item + payment rows) ผ่าน utils.money
- paid_amount = ผลรวมของ invoice_payments ทุกแถว (ไม่บวกสะสม)
- helper ที่ขึ้นต้นด้วย _ ไม่ commit เอง เพื่อให้ manifest เรียกใช้ใน transaction เดียวได้
- การแก้ flag ของ shipment ทำเป็นขั้นตอนสุดท้ายของแต่ละ transaction
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.orm import Session, selectinload

from config import settings
from models import Customer, Invoice, InvoiceItem, InvoicePayment, Shipment
from services.customers import resolve_customer
from services.errors import ConflictError, NotFoundError, ValidationError
from services.shipment_ledger import (
    apply_returned,
    day_start,
    find_by_spb,
    get_shipment,
    mark_invoiced,
    release_invoiced,
)
from services.tx import atomic
from utils.money import (
    CANCELLED,
    HUNDRED,
    ONE,
    PAID,
    ZERO,
    compute_totals,
    prorate,
    quantize,
    to_decimal,
)
from utils.sequencer import next_invoice_number

logger = logging.getLogger(__name__)

# ถ้าเลขที่ออกมาชนกับของที่มีอยู่แล้ว (เช่นนำเข้าข้อมูลเก่า) จะขยับเลขต่อไม่เกินจำนวนนี้
MAX_NUMBER_ATTEMPTS = 20


# ---------- helpers ----------
def _now():
    return datetime.now(timezone.utc)


def _field(raw: Any, name: str, default=None):
    if isinstance(raw, dict):
        return raw.get(name, default)
    return getattr(raw, name, default)


def describe_shipment(s: Shipment) -> str:
    ref = s.spb_number or s.public_code or str(s.id)
    return f"Resi: {ref} - {s.macam_barang or 'Jasa Pengiriman'}"


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    inv = (
        db.query(Invoice)
        .options(selectinload(Invoice.items), selectinload(Invoice.payments))
        .filter(Invoice.id == invoice_id)
        .first()
    )
    if not inv:
        raise NotFoundError("Invoice not found", invoice_id=invoice_id)
    return inv


def _allocate_invoice_number(db: Session, on: Optional[date] = None) -> str:
    for _ in range(MAX_NUMBER_ATTEMPTS):
        number = next_invoice_number(db, settings.INVOICE_PREFIX, on)
        taken = db.query(exists().where(Invoice.invoice_number == number)).scalar()
        if not taken:
            return number
        logger.warning("invoice number %s already in use, advancing", number)
    raise ConflictError("Could not allocate a unique invoice number")


def _live_invoice_for(db: Session, shipment_id: int, exclude_invoice_id: Optional[int] = None) -> Optional[Invoice]:
    """invoice ที่ยังไม่ cancel ซึ่งอ้างถึง shipment นี้ (ถ้ามี)"""
    q = (
        db.query(Invoice)
        .join(InvoiceItem, InvoiceItem.invoice_id == Invoice.id)
        .filter(InvoiceItem.shipment_id == shipment_id, Invoice.status != CANCELLED)
    )
    if exclude_invoice_id is not None:
        q = q.filter(Invoice.id != exclude_invoice_id)
    return q.first()


def _build_items(db: Session, raw_items: Iterable[Any], invoice_id: Optional[int] = None) -> List[InvoiceItem]:
    """
    แปลง input เป็น InvoiceItem (ยังไม่ add เข้า session)

    - อ้าง shipment ได้ทั้ง shipment_id หรือ spb_number
    - shipment ที่ nominal <= 0 ห้ามแนบ
    - shipment เดียวกันห้ามอยู่ใน invoice ที่ยังไม่ cancel มากกว่าหนึ่งใบ
    """
    built: List[InvoiceItem] = []
    seen: Set[int] = set()
    for raw in raw_items:
        shipment = None
        sid = _field(raw, "shipment_id")
        spb = (_field(raw, "spb_number") or "").strip()
        if sid is not None:
            shipment = get_shipment(db, sid)
        elif spb:
            shipment = find_by_spb(db, spb)
            if shipment is None:
                raise NotFoundError("Shipment not found", spb_number=spb)

        description = (_field(raw, "description") or "").strip()
        unit_price = _field(raw, "unit_price")

        if shipment is not None:
            if to_decimal(shipment.nominal) <= 0:
                raise ValidationError(
                    "Shipment has no nominal and cannot be invoiced", shipment_id=shipment.id
                )
            if shipment.id in seen:
                raise ValidationError("Shipment listed twice", shipment_id=shipment.id)
            seen.add(shipment.id)
            other = _live_invoice_for(db, shipment.id, exclude_invoice_id=invoice_id)
            if other is not None:
                raise ConflictError(
                    "Shipment already invoiced",
                    shipment_id=shipment.id,
                    invoice_number=other.invoice_number,
                )
            if not description:
                description = describe_shipment(shipment)
            if unit_price is None:
                unit_price = shipment.nominal
            spb = shipment.spb_number

        if not description:
            raise ValidationError("Item description is required")

        # ไม่ระบุ = ใช้สถานะปัจจุบันของ shipment
        returned = _field(raw, "sj_returned")
        if returned is None:
            returned = shipment.sj_returned if shipment is not None else False

        qty = to_decimal(_field(raw, "quantity"), default=ONE)
        if qty <= 0:
            qty = ONE
        price = to_decimal(unit_price)
        if price < 0:
            raise ValidationError("unit_price must not be negative")
        item_discount = to_decimal(_field(raw, "item_discount"))
        if item_discount < 0:
            raise ValidationError("item_discount must not be negative")

        built.append(InvoiceItem(
            description=description,
            quantity=qty,
            unit_price=price,
            item_discount=item_discount,
            shipment_id=shipment.id if shipment is not None else None,
            spb_number=spb or None,
            tax_type=_field(raw, "tax_type") or "include",
            sj_returned=bool(returned),
        ))
    return built


def _paid_sum(db: Session, invoice_id: int):
    return db.execute(
        select(func.coalesce(func.sum(InvoicePayment.amount), 0))
        .where(InvoicePayment.invoice_id == invoice_id)
    ).scalar_one()


def _recalculate(db: Session, inv: Invoice) -> Invoice:
    """คำนวณยอดทั้งหมดของ invoice ใหม่จาก item และ payment ที่อยู่ใน DB"""
    db.flush()
    totals = compute_totals(
        inv.items,
        discount_amount=inv.discount_amount,
        pph_percent=inv.pph_percent,
        paid=_paid_sum(db, inv.id),
        amount_override=inv.amount_override,
        current_status=inv.status,
    )
    inv.subtotal = totals.subtotal
    inv.discount_amount = totals.discount_amount
    inv.pph_percent = totals.pph_percent
    inv.pph_amount = totals.pph_amount
    inv.total_tagihan = totals.total_tagihan
    inv.paid_amount = totals.paid_amount
    inv.remaining_amount = totals.remaining_amount
    inv.status = totals.status
    # paid_at ตั้งครั้งแรกที่จ่ายครบเท่านั้น
    if inv.status == PAID and inv.paid_at is None:
        inv.paid_at = _now()
    db.flush()
    return inv


def _shipment_ids(items: Iterable[InvoiceItem]) -> Set[int]:
    return {i.shipment_id for i in items if i.shipment_id is not None}


def _release_unreferenced(db: Session, shipment_ids: Iterable[int], invoice_id: int) -> None:
    # ปล่อย flag เฉพาะ shipment ที่ไม่มี invoice อื่น (ยังไม่ cancel) อ้างถึง
    free = [sid for sid in shipment_ids if _live_invoice_for(db, sid, exclude_invoice_id=invoice_id) is None]
    release_invoiced(db, free)


def _push_returned(db: Session, items: Iterable[InvoiceItem]) -> None:
    """sj_returned=True ของ item ส่งต่อไปที่ shipment (ทางเดียว, false ไม่ล้างของเดิม)"""
    for it in items:
        if it.shipment_id is None or not it.sj_returned:
            continue
        s = db.get(Shipment, it.shipment_id)
        if s is not None:
            apply_returned(s, True)
    db.flush()


def _validate_pph(pph_percent: Any) -> Any:
    pct = to_decimal(pph_percent)
    if pct < 0 or pct > HUNDRED:
        raise ValidationError("pph_percent must be between 0 and 100", pph_percent=str(pct))
    return pct


def _create_invoice(
    db: Session,
    *,
    customer: Customer,
    items: Sequence[Any] = (),
    discount_amount: Any = ZERO,
    pph_percent: Any = ZERO,
    initial_paid: Any = ZERO,
    payment_method: str = "transfer",
    amount: Any = None,
    dbl_id: Optional[int] = None,
    due_date: Optional[date] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None,
) -> Invoice:
    """สร้าง invoice ภายใน transaction ที่เปิดอยู่ (ไม่ commit)"""
    pct = _validate_pph(pph_percent)
    discount = to_decimal(discount_amount)
    if discount < 0:
        raise ValidationError("discount_amount must not be negative")
    paid = to_decimal(initial_paid)
    if paid < 0:
        raise ValidationError("paid_amount must not be negative")

    built = _build_items(db, items)
    override = None
    if not built:
        if amount is None:
            raise ValidationError("Invoice requires items or an amount")
        override = to_decimal(amount)
        if override <= 0:
            raise ValidationError("Invoice amount must be positive")
    elif amount is not None:
        override = to_decimal(amount)

    preview = compute_totals(built, discount, pct, ZERO, override)
    if preview.total_tagihan <= 0:
        raise ValidationError("Invoice total must be positive", total_tagihan=str(preview.total_tagihan))

    inv = Invoice(
        invoice_number=_allocate_invoice_number(db),
        customer_id=customer.id,
        customer_name=customer.name,
        dbl_id=dbl_id,
        amount_override=override,
        discount_amount=discount,
        pph_percent=pct,
        status="pending",
        due_date=due_date,
        notes=notes,
    )
    inv.items = built
    db.add(inv)
    db.flush()

    if paid > 0:
        inv.payments.append(InvoicePayment(
            amount=quantize(paid),
            payment_date=date.today(),
            method=payment_method or "transfer",
            notes="Initial payment",
            created_by=created_by,
        ))
    _recalculate(db, inv)

    mark_invoiced(db, _shipment_ids(built))
    _push_returned(db, built)
    logger.info(
        "created invoice %s customer=%s total=%s status=%s",
        inv.invoice_number, inv.customer_name, inv.total_tagihan, inv.status,
    )
    return inv


# ---------- public operations ----------
def create_invoice(
    db: Session,
    *,
    customer_id: Optional[int] = None,
    customer_name: Optional[str] = None,
    items: Sequence[Any] = (),
    discount_amount: Any = ZERO,
    pph_percent: Any = ZERO,
    paid_amount: Any = ZERO,
    payment_method: str = "transfer",
    amount: Any = None,
    due_date: Optional[date] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None,
) -> Invoice:
    with atomic(db):
        customer = resolve_customer(db, customer_id, customer_name)
        inv = _create_invoice(
            db,
            customer=customer,
            items=items,
            discount_amount=discount_amount,
            pph_percent=pph_percent,
            initial_paid=paid_amount,
            payment_method=payment_method,
            amount=amount,
            due_date=due_date,
            notes=notes,
            created_by=created_by,
        )
        invoice_id = inv.id
    return get_invoice(db, invoice_id)


def set_items(
    db: Session,
    invoice_id: int,
    items: Sequence[Any],
    discount_amount: Any = None,
    pph_percent: Any = None,
    notes: Optional[str] = None,
) -> Invoice:
    """แทนที่ item ทั้งชุด แล้วคำนวณยอดใหม่"""
    with atomic(db):
        inv = get_invoice(db, invoice_id)
        if inv.status == CANCELLED:
            raise ValidationError("Cancelled invoice cannot be edited", invoice_id=inv.id)
        old_ids = _shipment_ids(inv.items)

        inv.items.clear()
        db.flush()
        built = _build_items(db, items, invoice_id=inv.id)
        inv.items.extend(built)

        if discount_amount is not None:
            if to_decimal(discount_amount) < 0:
                raise ValidationError("discount_amount must not be negative")
            inv.discount_amount = to_decimal(discount_amount)
        if pph_percent is not None:
            inv.pph_percent = _validate_pph(pph_percent)
        if notes is not None:
            inv.notes = notes

        preview = compute_totals(built, inv.discount_amount, inv.pph_percent, ZERO, inv.amount_override)
        if preview.total_tagihan <= 0:
            raise ValidationError("Invoice total must be positive", total_tagihan=str(preview.total_tagihan))
        _recalculate(db, inv)

        new_ids = _shipment_ids(built)
        _release_unreferenced(db, old_ids - new_ids, inv.id)
        mark_invoiced(db, new_ids)
        _push_returned(db, built)
        logger.info("invoice %s items replaced (%d items)", inv.invoice_number, len(built))
    return get_invoice(db, invoice_id)


def record_payment(
    db: Session,
    invoice_id: int,
    amount: Any,
    payment_date: Optional[date] = None,
    method: str = "transfer",
    bank_account: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None,
) -> Invoice:
    """
    บันทึกการชำระเงิน 1 แถว แล้วคำนวณ paid/remaining/status ใหม่

    invoice ที่ cancel แล้วยังบันทึกได้ (เก็บเป็นประวัติ) แต่สถานะยังคง cancelled
    """
    value = to_decimal(amount)
    if value <= 0:
        raise ValidationError("Payment amount must be positive")
    with atomic(db):
        inv = get_invoice(db, invoice_id)
        inv.payments.append(InvoicePayment(
            amount=quantize(value),
            payment_date=payment_date or date.today(),
            method=method or "transfer",
            bank_account=bank_account,
            reference=reference,
            notes=notes,
            created_by=created_by,
        ))
        _recalculate(db, inv)
        logger.info(
            "payment %s recorded on %s -> paid=%s remaining=%s status=%s",
            quantize(value), inv.invoice_number, inv.paid_amount, inv.remaining_amount, inv.status,
        )
    return get_invoice(db, invoice_id)


def list_payments(db: Session, invoice_id: int) -> List[InvoicePayment]:
    inv = get_invoice(db, invoice_id)
    return list(inv.payments)


def delete_payment(db: Session, payment_id: int) -> Invoice:
    with atomic(db):
        payment = db.get(InvoicePayment, payment_id)
        if not payment:
            raise NotFoundError("Payment not found", payment_id=payment_id)
        inv = get_invoice(db, payment.invoice_id)
        inv.payments.remove(payment)
        _recalculate(db, inv)
        invoice_id = inv.id
        logger.info("payment id=%s removed from %s", payment_id, inv.invoice_number)
    return get_invoice(db, invoice_id)


def update_pph_percent(db: Session, invoice_id: int, pph_percent: Any) -> Invoice:
    pct = _validate_pph(pph_percent)
    with atomic(db):
        inv = get_invoice(db, invoice_id)
        inv.pph_percent = pct
        _recalculate(db, inv)
        logger.info("invoice %s pph -> %s%% total=%s", inv.invoice_number, pct, inv.total_tagihan)
    return get_invoice(db, invoice_id)


def update_invoice(db: Session, invoice_id: int, data: dict) -> Invoice:
    """แก้ header: ลูกค้า, ส่วนลด, ยอด ad hoc, due_date, notes"""
    with atomic(db):
        inv = get_invoice(db, invoice_id)
        if inv.status == CANCELLED:
            raise ValidationError("Cancelled invoice cannot be edited", invoice_id=inv.id)
        if data.get("customer_id") or (data.get("customer_name") or "").strip():
            customer = resolve_customer(db, data.get("customer_id"), data.get("customer_name"))
            inv.customer_id = customer.id
            inv.customer_name = customer.name
        if data.get("discount_amount") is not None:
            inv.discount_amount = to_decimal(data["discount_amount"])
        if "amount" in data:
            if data["amount"] is not None and to_decimal(data["amount"]) <= 0:
                raise ValidationError("Invoice amount must be positive")
            inv.amount_override = None if data["amount"] is None else to_decimal(data["amount"])
        if "due_date" in data:
            inv.due_date = data["due_date"]
        if "notes" in data:
            inv.notes = data["notes"]
        _recalculate(db, inv)
    return get_invoice(db, invoice_id)


def cancel_invoice(db: Session, invoice_id: int) -> Invoice:
    with atomic(db):
        inv = get_invoice(db, invoice_id)
        if inv.status == CANCELLED:
            return inv
        inv.status = CANCELLED
        db.flush()
        _release_unreferenced(db, _shipment_ids(inv.items), inv.id)
        logger.info("invoice %s cancelled", inv.invoice_number)
    return get_invoice(db, invoice_id)


def reopen_invoice(db: Session, invoice_id: int) -> Invoice:
    with atomic(db):
        inv = get_invoice(db, invoice_id)
        if inv.status != CANCELLED:
            raise ValidationError("Only cancelled invoices can be reopened", invoice_id=inv.id)
        ids = _shipment_ids(inv.items)
        for sid in sorted(ids):
            other = _live_invoice_for(db, sid, exclude_invoice_id=inv.id)
            if other is not None:
                raise ConflictError(
                    "Shipment was invoiced again after cancellation",
                    shipment_id=sid,
                    invoice_number=other.invoice_number,
                )
        inv.status = "pending"   # สถานะจริงได้จาก _recalculate
        _recalculate(db, inv)
        mark_invoiced(db, ids)
        logger.info("invoice %s reopened as %s", inv.invoice_number, inv.status)
    return get_invoice(db, invoice_id)


def delete_invoice(db: Session, invoice_id: int) -> None:
    with atomic(db):
        inv = get_invoice(db, invoice_id)
        ids = _shipment_ids(inv.items)
        number = inv.invoice_number
        db.delete(inv)
        db.flush()
        _release_unreferenced(db, ids, invoice_id)
    logger.info("invoice %s deleted, released %d shipments", number, len(ids))


def list_invoices(
    db: Session,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
    q: Optional[str] = None,
) -> Tuple[List[Invoice], int]:
    query = db.query(Invoice)
    if status:
        query = query.filter(Invoice.status == status)
    if q and q.strip():
        like = f"%{q.strip()}%"
        query = query.filter(or_(Invoice.invoice_number.ilike(like), Invoice.customer_name.ilike(like)))
    total = query.count()
    rows = (
        query.order_by(Invoice.issued_at.desc(), Invoice.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


# ---------- outstanding ----------
def list_outstanding(db: Session, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
    """
    ยอดค้างรับรายตัว shipment

    - shipment ที่ยังไม่มี invoice (ไม่นับที่ cancel): ค้างเต็ม nominal
    - shipment ใน invoice pending/partial: ส่วนแบ่งของ remaining ตามสัดส่วน nominal/subtotal
    - shipment ใน invoice ที่ paid แล้วไม่แสดง
    """
    q = (
        db.query(Shipment, Invoice)
        .outerjoin(InvoiceItem, InvoiceItem.shipment_id == Shipment.id)
        .outerjoin(Invoice, and_(Invoice.id == InvoiceItem.invoice_id, Invoice.status != CANCELLED))
        .filter(Shipment.nominal > 0)
    )
    if date_from:
        q = q.filter(Shipment.created_at >= day_start(date_from))
    if date_to:
        q = q.filter(Shipment.created_at < day_start(date_to + timedelta(days=1)))
    q = q.order_by(Shipment.created_at.desc(), Shipment.id.desc())

    # shipment หนึ่งอาจมีหลายแถว (item ของ invoice ที่ cancel ไปแล้ว) ใช้ invoice ที่ยังไม่ cancel ก่อน
    picked = {}
    order = []
    for shipment, inv in q.all():
        if shipment.id not in picked:
            order.append(shipment.id)
            picked[shipment.id] = (shipment, inv)
        elif inv is not None and picked[shipment.id][1] is None:
            picked[shipment.id] = (shipment, inv)

    rows = []
    total_remaining = ZERO
    for sid in order:
        shipment, inv = picked[sid]
        if inv is None:
            owed = quantize(shipment.nominal)
        elif inv.status in ("pending", "partial"):
            owed = prorate(shipment.nominal, inv.subtotal, inv.remaining_amount)
        else:
            continue
        total_remaining += owed
        rows.append({
            "shipment_id": shipment.id,
            "spb_number": shipment.spb_number,
            "customer_name": shipment.resolved_customer_name,
            "destination": shipment.destination,
            "nominal": quantize(shipment.nominal),
            "created_at": shipment.created_at,
            "invoice_id": inv.id if inv is not None else None,
            "invoice_number": inv.invoice_number if inv is not None else None,
            "invoice_status": inv.status if inv is not None else None,
            "remaining_amount": owed,
        })
    return {"items": rows, "count": len(rows), "total_remaining": quantize(total_remaining)}
