# routers/v1/shipments.py
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from deps.auth import get_current_user
from deps.authz import require_operations
from models import User
from schemas import (
    ShipmentCreate,
    ShipmentOut,
    ShipmentPage,
    ShipmentStatus,
    ShipmentUpdate,
    SjReturnedIn,
)
from services import shipment_ledger as svc
from services.tx import atomic
from utils.orm import page_info

router = APIRouter(prefix="/shipments", tags=["shipments"])


@router.get("", response_model=ShipmentPage)
def list_shipments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    status: Optional[ShipmentStatus] = Query(None),
    q: Optional[str] = Query(None, description="Search by SPB, customer, recipient or destination"),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    rows, total = svc.list_shipments(db, page=page, limit=limit, status=status, q=q)
    return {"items": rows, "pagination": page_info(page, limit, total)}


# ต้องอยู่ก่อน /{shipment_id}
@router.get("/invoiceable", response_model=List[ShipmentOut])
def invoiceable_shipments(
    dbl_id: Optional[int] = Query(None),
    destination: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    customer_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return svc.find_invoiceable_shipments(
        db,
        dbl_id=dbl_id,
        destination=destination,
        date_from=date_from,
        date_to=date_to,
        customer_id=customer_id,
    )


@router.get("/{shipment_id}", response_model=ShipmentOut)
def get_shipment(shipment_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return svc.get_shipment(db, shipment_id)


@router.post("", response_model=ShipmentOut, status_code=201)
def create_shipment(payload: ShipmentCreate, db: Session = Depends(get_db), _user: User = Depends(require_operations)):
    return svc.create_shipment(db, payload.model_dump())


@router.patch("/{shipment_id}", response_model=ShipmentOut)
def update_shipment(
    shipment_id: int,
    payload: ShipmentUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(require_operations),
):
    return svc.update_shipment(db, shipment_id, payload.model_dump(exclude_unset=True))


@router.put("/{shipment_id}/sj-returned", response_model=ShipmentOut)
def set_sj_returned(
    shipment_id: int,
    payload: SjReturnedIn,
    db: Session = Depends(get_db),
    _user: User = Depends(require_operations),
):
    with atomic(db):
        s = svc.set_returned(db, shipment_id, payload.returned)
    db.refresh(s)
    return s


@router.delete("/{shipment_id}", status_code=204)
def delete_shipment(shipment_id: int, db: Session = Depends(get_db), _user: User = Depends(require_operations)):
    svc.delete_shipment(db, shipment_id)
