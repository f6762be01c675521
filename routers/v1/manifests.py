# routers/v1/manifests.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from deps.auth import get_current_user
from deps.authz import require_finance, require_operations
from models import User
from schemas import (
    GeneratedInvoices,
    GenerateInvoicesIn,
    ManifestCreate,
    ManifestCreated,
    ManifestDetail,
    ManifestPage,
    ManifestStatus,
    ManifestUpdate,
    OperationalCostIn,
    OperationalCostOut,
    OperationalCostView,
    ShipmentIdsIn,
    ShipmentOut,
)
from services import manifests as svc
from utils.orm import page_info

router = APIRouter(prefix="/manifests", tags=["manifests"])


@router.get("", response_model=ManifestPage)
def list_manifests(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    status: Optional[ManifestStatus] = Query(None),
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    rows, total = svc.list_manifests(db, page=page, limit=limit, status=status)
    return {"items": rows, "pagination": page_info(page, limit, total)}


@router.get("/available-shipments", response_model=List[ShipmentOut])
def available_shipments(db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return svc.list_available_shipments(db)


@router.get("/{manifest_id}", response_model=ManifestDetail)
def get_manifest(manifest_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return svc.manifest_detail(db, manifest_id)


@router.post("", response_model=ManifestCreated, status_code=201)
def create_manifest(payload: ManifestCreate, db: Session = Depends(get_db), _user: User = Depends(require_operations)):
    m = svc.create_manifest(db, payload.model_dump())
    return {"id": m.id, "dbl_number": m.dbl_number}


@router.patch("/{manifest_id}", response_model=ManifestDetail)
def update_manifest(
    manifest_id: int,
    payload: ManifestUpdate,
    db: Session = Depends(get_db),
    _user: User = Depends(require_operations),
):
    svc.update_manifest(db, manifest_id, payload.model_dump(exclude_unset=True))
    return svc.manifest_detail(db, manifest_id)


@router.put("/{manifest_id}/shipments", response_model=ManifestDetail)
def set_shipments(
    manifest_id: int,
    payload: ShipmentIdsIn,
    db: Session = Depends(get_db),
    _user: User = Depends(require_operations),
):
    svc.set_shipments(db, manifest_id, payload.shipment_ids)
    return svc.manifest_detail(db, manifest_id)


@router.post("/{manifest_id}/shipments/{shipment_id}", response_model=ManifestDetail)
def add_shipment(
    manifest_id: int,
    shipment_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_operations),
):
    svc.add_shipment(db, manifest_id, shipment_id)
    return svc.manifest_detail(db, manifest_id)


@router.delete("/{manifest_id}/shipments/{shipment_id}", response_model=ManifestDetail)
def remove_shipment(
    manifest_id: int,
    shipment_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_operations),
):
    svc.remove_shipment(db, manifest_id, shipment_id)
    return svc.manifest_detail(db, manifest_id)


@router.delete("/{manifest_id}", status_code=204)
def delete_manifest(manifest_id: int, db: Session = Depends(get_db), _user: User = Depends(require_operations)):
    svc.delete_manifest(db, manifest_id)


@router.post("/{manifest_id}/generate-invoices", response_model=GeneratedInvoices, status_code=201)
def generate_invoices(
    manifest_id: int,
    payload: Optional[GenerateInvoicesIn] = None,
    db: Session = Depends(get_db),
    _user: User = Depends(require_finance),
):
    pph = payload.pph_percent if payload is not None else 0
    return {"invoices": svc.generate_invoices_from_manifest(db, manifest_id, pph)}


# ---------- operational costs ----------
@router.get("/{manifest_id}/operational-costs", response_model=OperationalCostView)
def get_operational_costs(manifest_id: int, db: Session = Depends(get_db), _user: User = Depends(get_current_user)):
    return svc.get_operational_costs(db, manifest_id)


@router.put("/{manifest_id}/operational-costs", response_model=OperationalCostOut)
def save_operational_costs(
    manifest_id: int,
    payload: OperationalCostIn,
    db: Session = Depends(get_db),
    _user: User = Depends(require_operations),
):
    return svc.save_operational_costs(db, manifest_id, payload.model_dump())
