# utils/sequencer.py
from datetime import date
from typing import Optional

from sqlalchemy import text, select
from sqlalchemy.orm import Session

from models import DocCounter


def next_seq(db: Session, doc_type: str, period: int) -> int:
    """ออกเลขลำดับแบบ atomic ต่อ (doc_type, period)"""
    dialect = db.bind.dialect.name

    if dialect == "postgresql":
        # One-liner atomic ด้วย upsert + returning (ล็อกแถวจน transaction จบ)
        return db.execute(
            text("""
            INSERT INTO doc_counters (doc_type, period, seq)
            VALUES (:t, :p, 1)
            ON CONFLICT (doc_type, period)
            DO UPDATE SET seq = doc_counters.seq + 1
            RETURNING seq
            """),
            {"t": doc_type, "p": period},
        ).scalar_one()

    # ทางเลือก generic: lock แถว (SQLite ไม่มี FOR UPDATE จริง แต่เขียนทีละ transaction อยู่แล้ว)
    q = (
        select(DocCounter)
        .where(DocCounter.doc_type == doc_type, DocCounter.period == period)
        .with_for_update()
    )
    row = db.execute(q).scalar_one_or_none()
    if row is None:
        row = DocCounter(doc_type=doc_type, period=period, seq=1)
        db.add(row)
    else:
        row.seq += 1
    db.flush()
    return row.seq


def next_invoice_number(db: Session, prefix: str = "INV", on: Optional[date] = None) -> str:
    """<PREFIX>-<YYYY>-<seq:04d> เช่น INV-2026-0001 (เริ่มใหม่ทุกปี)"""
    year = (on or date.today()).year
    seq = next_seq(db, prefix, year)
    return f"{prefix}-{year}-{seq:04d}"


def next_manifest_number(db: Session, prefix: str = "DBL", on: Optional[date] = None) -> str:
    """<PREFIX>.<YY><MM>.<seq:03d> เช่น DBL.2610.001 (เริ่มใหม่ทุกเดือน)"""
    d = on or date.today()
    period = (d.year % 100) * 100 + d.month
    seq = next_seq(db, prefix, period)
    return f"{prefix}.{period:04d}.{seq:03d}"
