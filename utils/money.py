# utils/money.py
"""
คำนวณยอดเงินของ invoice แบบ pure function (ไม่มี side effect)

- ใช้ Decimal ทั้งหมด ไม่ปัดเศษระหว่างทาง
- ปัดเป็น 2 ตำแหน่งเฉพาะค่าสุดท้ายที่จะเก็บ/แสดง (quantize)
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

PENDING = "pending"
PARTIAL = "partial"
PAID = "paid"
CANCELLED = "cancelled"


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        # float -> str ก่อน เพื่อไม่ให้ได้เศษ binary
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def quantize(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _field(item: Any, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def line_total(item: Any) -> Decimal:
    """quantity * unit_price - item_discount (quantity ไม่ถูกต้อง = 1)"""
    qty = to_decimal(_field(item, "quantity"), default=ONE)
    if qty <= 0:
        qty = ONE
    price = to_decimal(_field(item, "unit_price"))
    discount = to_decimal(_field(item, "item_discount"))
    return qty * price - discount


def subtotal(items: Iterable[Any]) -> Decimal:
    return sum((line_total(i) for i in items), ZERO)


def after_discount(sub: Decimal, discount_amount: Any) -> Decimal:
    return max(ZERO, to_decimal(sub) - to_decimal(discount_amount))


def pph_amount(base: Decimal, pph_percent: Any) -> Decimal:
    pct = to_decimal(pph_percent)
    if pct <= 0:
        return ZERO
    return to_decimal(base) * pct / HUNDRED


def total_tagihan(base: Decimal, pph: Decimal) -> Decimal:
    return max(ZERO, to_decimal(base) - to_decimal(pph))


def remaining(total: Any, paid: Any) -> Decimal:
    return max(ZERO, to_decimal(total) - to_decimal(paid))


def derive_status(paid: Any, remaining_amount: Any, current: Optional[str] = None) -> str:
    # cancelled เปลี่ยนได้เฉพาะผ่าน cancel/reopen เท่านั้น
    if current == CANCELLED:
        return CANCELLED
    paid = to_decimal(paid)
    remaining_amount = to_decimal(remaining_amount)
    if paid > 0 and remaining_amount <= 0:
        return PAID
    if paid > 0:
        return PARTIAL
    return PENDING


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_amount: Decimal
    pph_percent: Decimal
    pph_amount: Decimal
    total_tagihan: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: str


def compute_totals(
    items: Iterable[Any],
    discount_amount: Any = ZERO,
    pph_percent: Any = ZERO,
    paid: Any = ZERO,
    amount_override: Any = None,
    current_status: Optional[str] = None,
) -> InvoiceTotals:
    """
    รวมยอดทั้งหมดของ invoice

    ถ้าไม่มี item และมี amount_override (invoice แบบ ad hoc) ใช้ยอดนั้นแทน
    subtotal จาก item (ไม่มีส่วนลด/PPh = total_tagihan ตรง ๆ) ; เมื่อมี item แล้ว
    ใช้การคำนวณจาก item เสมอ
    """
    items = list(items)
    if not items and amount_override is not None:
        total = to_decimal(amount_override)
        paid_amount = to_decimal(paid)
        rem = remaining(total, paid_amount)
        # ส่วนลด/PPh เก็บไว้ใช้ตอนมี item แล้ว
        return InvoiceTotals(
            subtotal=quantize(total),
            discount_amount=quantize(to_decimal(discount_amount)),
            pph_percent=to_decimal(pph_percent),
            pph_amount=quantize(ZERO),
            total_tagihan=quantize(total),
            paid_amount=quantize(paid_amount),
            remaining_amount=quantize(rem),
            status=derive_status(paid_amount, rem, current_status),
        )
    return totals_from_subtotal(subtotal(items), discount_amount, pph_percent, paid, current_status)


def totals_from_subtotal(
    sub: Any,
    discount_amount: Any = ZERO,
    pph_percent: Any = ZERO,
    paid: Any = ZERO,
    current_status: Optional[str] = None,
) -> InvoiceTotals:
    sub = to_decimal(sub)
    discount = to_decimal(discount_amount)
    pct = to_decimal(pph_percent)
    paid_amount = to_decimal(paid)

    base = after_discount(sub, discount)
    pph = pph_amount(base, pct)
    total = total_tagihan(base, pph)

    rem = remaining(total, paid_amount)
    return InvoiceTotals(
        subtotal=quantize(sub),
        discount_amount=quantize(discount),
        pph_percent=pct,
        pph_amount=quantize(pph),
        total_tagihan=quantize(total),
        paid_amount=quantize(paid_amount),
        remaining_amount=quantize(rem),
        status=derive_status(paid_amount, rem, current_status),
    )


def prorate(nominal: Any, invoice_subtotal: Any, invoice_remaining: Any) -> Decimal:
    """ส่วนของยอดค้างที่ตกเป็นของ shipment หนึ่ง (ประมาณตามสัดส่วน nominal)"""
    sub = to_decimal(invoice_subtotal)
    if sub > 0:
        return quantize(to_decimal(nominal) / sub * to_decimal(invoice_remaining))
    return quantize(invoice_remaining)
