from __future__ import annotations

from typing import Optional, Literal, List
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =========================
# ===== Base (Pydantic v2)
# =========================
class APIBase(BaseModel):
    """
    Base สำหรับทุก schema:
    - from_attributes=True: รองรับแปลงจาก ORM (SQLAlchemy)
    - json_encoders: แปลง Decimal -> float เพื่อส่ง JSON ได้สะดวก
    """
    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={Decimal: float}
    )


InvoiceStatus = Literal["pending", "partial", "paid", "cancelled"]
ManifestStatus = Literal["DRAFT", "DEPARTED", "ARRIVED", "COMPLETED"]
ShipmentStatus = Literal["DRAFT", "READY", "BOOKED", "LOADING", "IN_TRANSIT", "DELIVERED"]


class Page(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


# =========================================
# =============== Customers ===============
# =========================================
class CustomerBrief(APIBase):
    id: int
    code: str
    name: str


class CustomerOut(CustomerBrief):
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    npwp: Optional[str] = None


# =========================================
# =============== Shipments ===============
# =========================================
class ShipmentCreate(BaseModel):
    spb_number: Optional[str] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    pengirim_name: Optional[str] = None
    penerima_name: Optional[str] = None
    penerima_phone: Optional[str] = None
    origin: str
    destination: str
    macam_barang: Optional[str] = None
    total_colli: int = Field(..., ge=1)
    qty: Decimal = Decimal("0")
    satuan: Optional[str] = None
    berat: Decimal = Decimal("0")
    nominal: Decimal = Decimal("0")
    status: ShipmentStatus = "READY"
    keterangan: Optional[str] = None


class ShipmentUpdate(BaseModel):
    spb_number: Optional[str] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    pengirim_name: Optional[str] = None
    penerima_name: Optional[str] = None
    penerima_phone: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    macam_barang: Optional[str] = None
    total_colli: Optional[int] = None
    qty: Optional[Decimal] = None
    satuan: Optional[str] = None
    berat: Optional[Decimal] = None
    nominal: Optional[Decimal] = None
    status: Optional[ShipmentStatus] = None
    keterangan: Optional[str] = None


class ShipmentOut(APIBase):
    id: int
    spb_number: Optional[str] = None
    public_code: Optional[str] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    pengirim_name: Optional[str] = None
    penerima_name: Optional[str] = None
    penerima_phone: Optional[str] = None
    origin: str
    destination: str
    macam_barang: Optional[str] = None
    total_colli: int
    qty: Decimal
    satuan: Optional[str] = None
    berat: Decimal
    nominal: Decimal
    status: str
    dbl_id: Optional[int] = None
    invoice_generated: bool
    sj_returned: bool
    sj_returned_at: Optional[datetime] = None
    keterangan: Optional[str] = None
    created_at: Optional[datetime] = None


class ShipmentPage(BaseModel):
    items: List[ShipmentOut]
    pagination: Page


class SjReturnedIn(BaseModel):
    returned: bool


# =========================================
# ============ Manifest (DBL) =============
# =========================================
class ManifestCosts(BaseModel):
    loco_amount: Optional[Decimal] = None
    tekor_amount: Optional[Decimal] = None
    sangu: Optional[Decimal] = None
    komisi: Optional[Decimal] = None
    ongkos_muatan: Optional[Decimal] = None
    biaya_lain: Optional[Decimal] = None
    administrasi: Optional[Decimal] = None
    ongkos_lain: Optional[Decimal] = None


class ManifestCreate(ManifestCosts):
    dbl_number: Optional[str] = None
    dbl_date: date
    vehicle_plate: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    status: ManifestStatus = "DRAFT"
    catatan: Optional[str] = None
    pengurus_name: Optional[str] = None
    supir_name: Optional[str] = None
    shipment_ids: Optional[List[int]] = None


class ManifestUpdate(ManifestCosts):
    dbl_date: Optional[date] = None
    vehicle_plate: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    status: Optional[ManifestStatus] = None
    catatan: Optional[str] = None
    pengurus_name: Optional[str] = None
    supir_name: Optional[str] = None
    shipment_ids: Optional[List[int]] = None


class ManifestOut(APIBase):
    id: int
    dbl_number: str
    dbl_date: date
    vehicle_plate: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    status: str
    loco_amount: Decimal
    tekor_amount: Decimal
    sangu: Decimal
    komisi: Decimal
    ongkos_muatan: Decimal
    biaya_lain: Decimal
    administrasi: Decimal
    ongkos_lain: Decimal
    total_tagihan: Decimal
    total_bayar: Decimal
    catatan: Optional[str] = None
    pengurus_name: Optional[str] = None
    supir_name: Optional[str] = None
    created_at: Optional[datetime] = None


class ManifestListRow(ManifestOut):
    shipment_count: int = 0
    total_nominal: Decimal = Decimal("0")


class ManifestPage(BaseModel):
    items: List[ManifestListRow]
    pagination: Page


class ManifestItemOut(APIBase):
    shipment_id: int
    urutan: int
    spb_number: Optional[str] = None
    customer_name: Optional[str] = None
    pengirim_name: Optional[str] = None
    penerima_name: Optional[str] = None
    macam_barang: Optional[str] = None
    destination: Optional[str] = None
    total_colli: int = 0
    berat: Decimal = Decimal("0")
    nominal: Decimal = Decimal("0")
    status: Optional[str] = None


class ManifestDetail(ManifestOut):
    items: List[ManifestItemOut] = []


class ManifestCreated(BaseModel):
    id: int
    dbl_number: str


class ShipmentIdsIn(BaseModel):
    shipment_ids: List[int]


class GenerateInvoicesIn(BaseModel):
    pph_percent: Decimal = Field(Decimal("0"), ge=0, le=100)


class OperationalCostIn(BaseModel):
    bayar_supir: Decimal = Decimal("0")
    solar: Decimal = Decimal("0")
    sewa_mobil: Decimal = Decimal("0")
    kuli_muat: Decimal = Decimal("0")
    kuli_bongkar: Decimal = Decimal("0")
    biaya_lain: Decimal = Decimal("0")
    catatan: Optional[str] = None


class OperationalCostOut(APIBase):
    id: int
    dbl_id: int
    bayar_supir: Decimal
    solar: Decimal
    sewa_mobil: Decimal
    kuli_muat: Decimal
    kuli_bongkar: Decimal
    biaya_lain: Decimal
    total_operational: Decimal
    catatan: Optional[str] = None


class OperationalCostView(APIBase):
    item: Optional[OperationalCostOut] = None
    dbl: ManifestOut
    total_nominal: Decimal


# =========================================
# =============== Invoices ================
# =========================================
class InvoiceItemIn(BaseModel):
    description: Optional[str] = None
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None     # ว่าง = ใช้ nominal ของ shipment
    item_discount: Decimal = Field(Decimal("0"), ge=0)
    shipment_id: Optional[int] = None
    spb_number: Optional[str] = None
    tax_type: Optional[str] = "include"
    sj_returned: Optional[bool] = None       # ว่าง = ตามสถานะของ shipment

    @model_validator(mode="after")
    def _need_description_or_shipment(self):
        if not (self.description or "").strip() and self.shipment_id is None and not self.spb_number:
            raise ValueError("item requires description, shipment_id or spb_number")
        return self


class InvoiceItemOut(APIBase):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    item_discount: Decimal
    shipment_id: Optional[int] = None
    spb_number: Optional[str] = None
    tax_type: Optional[str] = None
    sj_returned: bool


class InvoicePaymentIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_date: Optional[date] = None
    method: str = "transfer"
    bank_account: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class InvoicePaymentOut(APIBase):
    id: int
    invoice_id: int
    amount: Decimal
    payment_date: date
    method: str
    bank_account: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class InvoiceCreate(BaseModel):
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    items: List[InvoiceItemIn] = []
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    pph_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    paid_amount: Decimal = Field(Decimal("0"), ge=0)
    payment_method: str = "transfer"
    amount: Optional[Decimal] = Field(None, ge=0)   # ad hoc (ไม่มี item)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    amount: Optional[Decimal] = Field(None, ge=0)
    due_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceItemsIn(BaseModel):
    items: List[InvoiceItemIn]
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    pph_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None


class PphIn(BaseModel):
    pph_percent: Decimal = Field(..., ge=0, le=100)


class InvoiceOut(APIBase):
    id: int
    invoice_number: str
    customer_id: int
    customer_name: str
    dbl_id: Optional[int] = None
    subtotal: Decimal
    discount_amount: Decimal
    pph_percent: Decimal
    pph_amount: Decimal
    total_tagihan: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: InvoiceStatus
    issued_at: Optional[datetime] = None
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None


class InvoiceDetail(InvoiceOut):
    items: List[InvoiceItemOut] = []
    payments: List[InvoicePaymentOut] = []


class InvoicePage(BaseModel):
    items: List[InvoiceOut]
    pagination: Page


class InvoiceSummary(BaseModel):
    id: int
    invoice_number: str
    customer_name: str
    total_tagihan: Decimal


class GeneratedInvoices(BaseModel):
    invoices: List[InvoiceSummary]


# =========================================
# ================ Reports ================
# =========================================
class OutstandingRow(BaseModel):
    shipment_id: int
    spb_number: Optional[str] = None
    customer_name: Optional[str] = None
    destination: Optional[str] = None
    nominal: Decimal
    created_at: Optional[datetime] = None
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None
    invoice_status: Optional[str] = None
    remaining_amount: Decimal


class OutstandingReport(BaseModel):
    items: List[OutstandingRow]
    count: int
    total_remaining: Decimal


# =========================================
# ============== Auth / Users =============
# =========================================
class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: int
    username: str
    is_superuser: bool
    roles: List[str] = []
