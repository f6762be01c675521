# routers/v1/invoices.py
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask
from sqlalchemy.orm import Session

from database import get_db
from deps.auth import get_current_user
from deps.authz import require_finance
from models import User
from schemas import (
    InvoiceCreate,
    InvoiceDetail,
    InvoiceItemOut,
    InvoiceItemsIn,
    InvoicePage,
    InvoicePaymentIn,
    InvoicePaymentOut,
    InvoiceStatus,
    InvoiceUpdate,
    PphIn,
)
from services import invoices as svc
from services.company import company_profile
from services.invoice_docx import DOCX_MEDIA_TYPE, render_invoice
from utils.orm import page_info

router = APIRouter(prefix="/invoices", tags=["invoices"])


# ---------- list / detail ----------
@router.get("", response_model=InvoicePage)
def list_invoices(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    status: Optional[InvoiceStatus] = Query(None),
    q: Optional[str] = Query(None, description="Search by invoice number or customer"),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    rows, total = svc.list_invoices(db, page=page, limit=limit, status=status, q=q)
    return {"items": rows, "pagination": page_info(page, limit, total)}


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(invoice_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return svc.get_invoice(db, invoice_id)


@router.get("/{invoice_id}/items", response_model=List[InvoiceItemOut])
def get_items(invoice_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return svc.get_invoice(db, invoice_id).items


@router.get("/{invoice_id}/payments", response_model=List[InvoicePaymentOut])
def get_payments(invoice_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return svc.list_payments(db, invoice_id)


# ---------- mutations (admin / accounting) ----------
@router.post("", response_model=InvoiceDetail, status_code=201)
def create_invoice(payload: InvoiceCreate, db: Session = Depends(get_db), user: User = Depends(require_finance)):
    return svc.create_invoice(
        db,
        customer_id=payload.customer_id,
        customer_name=payload.customer_name,
        items=[i.model_dump() for i in payload.items],
        discount_amount=payload.discount_amount,
        pph_percent=payload.pph_percent,
        paid_amount=payload.paid_amount,
        payment_method=payload.payment_method,
        amount=payload.amount,
        due_date=payload.due_date,
        notes=payload.notes,
        created_by=user.id,
    )


@router.patch("/{invoice_id}", response_model=InvoiceDetail)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(require_finance),
):
    return svc.update_invoice(db, invoice_id, payload.model_dump(exclude_unset=True))


@router.put("/{invoice_id}/items", response_model=InvoiceDetail)
def replace_items(
    invoice_id: int,
    payload: InvoiceItemsIn,
    db: Session = Depends(get_db),
    _user: User = Depends(require_finance),
):
    return svc.set_items(
        db,
        invoice_id,
        [i.model_dump() for i in payload.items],
        discount_amount=payload.discount_amount,
        pph_percent=payload.pph_percent,
        notes=payload.notes,
    )


@router.post("/{invoice_id}/payments", response_model=InvoiceDetail, status_code=201)
def add_payment(
    invoice_id: int,
    payload: InvoicePaymentIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_finance),
):
    return svc.record_payment(
        db,
        invoice_id,
        payload.amount,
        payment_date=payload.payment_date,
        method=payload.method,
        bank_account=payload.bank_account,
        reference=payload.reference,
        notes=payload.notes,
        created_by=user.id,
    )


@router.delete("/payments/{payment_id}", response_model=InvoiceDetail)
def delete_payment(payment_id: int, db: Session = Depends(get_db), _user: User = Depends(require_finance)):
    return svc.delete_payment(db, payment_id)


@router.put("/{invoice_id}/pph", response_model=InvoiceDetail)
def update_pph(
    invoice_id: int,
    payload: PphIn,
    db: Session = Depends(get_db),
    _user: User = Depends(require_finance),
):
    return svc.update_pph_percent(db, invoice_id, payload.pph_percent)


@router.post("/{invoice_id}/cancel", response_model=InvoiceDetail)
def cancel_invoice(invoice_id: int, db: Session = Depends(get_db), _user: User = Depends(require_finance)):
    return svc.cancel_invoice(db, invoice_id)


@router.post("/{invoice_id}/reopen", response_model=InvoiceDetail)
def reopen_invoice(invoice_id: int, db: Session = Depends(get_db), _user: User = Depends(require_finance)):
    return svc.reopen_invoice(db, invoice_id)


@router.delete("/{invoice_id}", status_code=204)
def delete_invoice(invoice_id: int, db: Session = Depends(get_db), _user: User = Depends(require_finance)):
    svc.delete_invoice(db, invoice_id)


# ---------- document ----------
@router.get("/{invoice_id}/document")
def invoice_document(invoice_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    inv = svc.get_invoice(db, invoice_id)

    tmp_file = NamedTemporaryFile(suffix=".docx", delete=False)
    tmp_path = Path(tmp_file.name)
    tmp_file.close()

    render_invoice(inv, company_profile(db), tmp_path)
    return FileResponse(
        tmp_path,
        filename=f"{inv.invoice_number}.docx",
        media_type=DOCX_MEDIA_TYPE,
        background=BackgroundTask(tmp_path.unlink, missing_ok=True),
    )
