# services/company.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from config import settings
from models import CompanyConfig


@dataclass(frozen=True)
class CompanyProfile:
    name: str
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""


def company_profile(db: Optional[Session] = None) -> CompanyProfile:
    """ข้อมูลบริษัทสำหรับหัวเอกสาร: ค่าใน company_config ก่อน ไม่มีค่อยใช้ค่าจาก .env"""
    row = db.query(CompanyConfig).order_by(CompanyConfig.id).first() if db is not None else None
    return CompanyProfile(
        name=(row.name if row and row.name else settings.COMPANY_NAME),
        address=(row.address if row and row.address else settings.COMPANY_ADDRESS),
        phone=(row.phone if row and row.phone else settings.COMPANY_PHONE),
        email=(row.email if row and row.email else settings.COMPANY_EMAIL),
        website=(row.website if row and row.website else ""),
    )
