# routers/v1/__init__.py
from fastapi import APIRouter

from . import auth, invoices, manifests, reports, shipments

api_v1 = APIRouter()
api_v1.include_router(auth.router)
api_v1.include_router(shipments.router)
api_v1.include_router(manifests.router)
api_v1.include_router(invoices.router)
api_v1.include_router(reports.router)

__all__ = ["api_v1"]
