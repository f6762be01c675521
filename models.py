# models.py
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import relationship, validates

from database import Base


# =========================================
# =============== Master ==================
# =========================================

class Customer(Base):
    __tablename__ = "customers"
    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    npwp = Column(String, nullable=True)   # tax id
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    shipments = relationship("Shipment", back_populates="customer")
    invoices = relationship("Invoice", back_populates="customer")

    def __repr__(self):
        return f"<Customer(code={self.code}, name={self.name})>"


# ชื่อลูกค้าห้ามซ้ำแบบไม่สนตัวพิมพ์
Index("uq_customers_name_lower", func.lower(Customer.name), unique=True)


class CompanyConfig(Base):
    __tablename__ = "company_config"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=True)
    address = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    website = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# =========================================
# =============== Shipments ===============
# =========================================

SHIPMENT_STATUSES = ("DRAFT", "READY", "BOOKED", "LOADING", "IN_TRANSIT", "DELIVERED")


class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(Integer, primary_key=True)
    spb_number = Column(String, unique=True, index=True, nullable=True)
    public_code = Column(String, unique=True, index=True, nullable=True)

    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = Column(String, nullable=True)    # denormalized (ใช้เมื่อไม่มี customer_id)

    pengirim_name = Column(String, nullable=True)    # sender
    penerima_name = Column(String, nullable=True)    # recipient
    penerima_phone = Column(String, nullable=True)

    origin = Column(String, nullable=False)
    destination = Column(String, nullable=False)
    macam_barang = Column(String, nullable=True)     # goods description
    total_colli = Column(Integer, nullable=False, default=0)
    qty = Column(Numeric(18, 3), nullable=False, default=0)
    satuan = Column(String, nullable=True)
    berat = Column(Numeric(18, 3), nullable=False, default=0)   # weight (kg)
    nominal = Column(Numeric(18, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default="READY")

    dbl_id = Column(Integer, ForeignKey("dbl.id", ondelete="SET NULL"), nullable=True, index=True)

    invoice_generated = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    sj_returned = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    sj_returned_at = Column(DateTime(timezone=True), nullable=True)

    keterangan = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="shipments")
    manifest = relationship("Manifest", back_populates="shipments", foreign_keys=[dbl_id])
    invoice_items = relationship("InvoiceItem", back_populates="shipment", passive_deletes="all")

    __table_args__ = (
        Index("ix_shipments_invoiceable", "invoice_generated", "nominal"),
        Index("ix_shipments_status_created", "status", "created_at"),
    )

    @property
    def resolved_customer_name(self):
        if self.customer is not None and self.customer.name:
            return self.customer.name
        return self.customer_name

    def __repr__(self):
        return f"<Shipment(spb={self.spb_number}, nominal={self.nominal})>"


# =========================================
# ============ Manifest (DBL) =============
# =========================================

MANIFEST_STATUSES = ("DRAFT", "DEPARTED", "ARRIVED", "COMPLETED")

# ฟิลด์ที่รวมเป็น total_bayar
MANIFEST_FEE_FIELDS = ("sangu", "komisi", "ongkos_muatan", "biaya_lain", "administrasi", "ongkos_lain")
MANIFEST_COST_FIELDS = ("loco_amount", "tekor_amount") + MANIFEST_FEE_FIELDS


class Manifest(Base):
    __tablename__ = "dbl"

    id = Column(Integer, primary_key=True)
    dbl_number = Column(String, unique=True, index=True, nullable=False)
    dbl_date = Column(Date, nullable=False)
    vehicle_plate = Column(String, nullable=True)
    driver_name = Column(String, nullable=True)
    driver_phone = Column(String, nullable=True)
    origin = Column(String, nullable=True)
    destination = Column(String, nullable=True)
    status = Column(String, nullable=False, default="DRAFT")

    loco_amount = Column(Numeric(18, 2), nullable=False, default=0)    # advance payment
    tekor_amount = Column(Numeric(18, 2), nullable=False, default=0)   # shortfall
    sangu = Column(Numeric(18, 2), nullable=False, default=0)          # driver fee
    komisi = Column(Numeric(18, 2), nullable=False, default=0)
    ongkos_muatan = Column(Numeric(18, 2), nullable=False, default=0)  # loading cost
    biaya_lain = Column(Numeric(18, 2), nullable=False, default=0)
    administrasi = Column(Numeric(18, 2), nullable=False, default=0)
    ongkos_lain = Column(Numeric(18, 2), nullable=False, default=0)

    total_tagihan = Column(Numeric(18, 2), nullable=False, default=0)  # loco - tekor
    total_bayar = Column(Numeric(18, 2), nullable=False, default=0)    # sum(fee fields)

    catatan = Column(Text, nullable=True)
    pengurus_name = Column(String, nullable=True)
    supir_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "ManifestItem",
        back_populates="manifest",
        cascade="all, delete-orphan",
        order_by=lambda: [ManifestItem.urutan, ManifestItem.id],
    )
    shipments = relationship("Shipment", back_populates="manifest", foreign_keys="Shipment.dbl_id")
    operational_cost = relationship(
        "ManifestOperationalCost",
        back_populates="manifest",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_dbl_date_created", "dbl_date", "created_at"),
    )

    def __repr__(self):
        return f"<Manifest(dbl_number={self.dbl_number})>"


class ManifestItem(Base):
    __tablename__ = "dbl_items"

    id = Column(Integer, primary_key=True)
    dbl_id = Column(Integer, ForeignKey("dbl.id", ondelete="CASCADE"), nullable=False, index=True)
    shipment_id = Column(Integer, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    urutan = Column(Integer, nullable=False, default=1)   # sequence position

    manifest = relationship("Manifest", back_populates="items")
    shipment = relationship("Shipment")

    __table_args__ = (
        UniqueConstraint("dbl_id", "shipment_id", name="uq_dbl_items_dbl_shipment"),
    )

    def __repr__(self):
        return f"<ManifestItem(dbl_id={self.dbl_id}, shipment_id={self.shipment_id}, urutan={self.urutan})>"


OPERATIONAL_COST_FIELDS = ("bayar_supir", "solar", "sewa_mobil", "kuli_muat", "kuli_bongkar", "biaya_lain")


class ManifestOperationalCost(Base):
    __tablename__ = "dbl_operational_costs"

    id = Column(Integer, primary_key=True)
    dbl_id = Column(Integer, ForeignKey("dbl.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    bayar_supir = Column(Numeric(18, 2), nullable=False, default=0)
    solar = Column(Numeric(18, 2), nullable=False, default=0)
    sewa_mobil = Column(Numeric(18, 2), nullable=False, default=0)
    kuli_muat = Column(Numeric(18, 2), nullable=False, default=0)
    kuli_bongkar = Column(Numeric(18, 2), nullable=False, default=0)
    biaya_lain = Column(Numeric(18, 2), nullable=False, default=0)
    total_operational = Column(Numeric(18, 2), nullable=False, default=0)
    catatan = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    manifest = relationship("Manifest", back_populates="operational_cost")


# =========================================
# =============== Invoices ================
# =========================================

INVOICE_STATUSES = ("pending", "partial", "paid", "cancelled")


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    invoice_number = Column(String, unique=True, index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    customer_name = Column(String, nullable=False)
    dbl_id = Column(Integer, ForeignKey("dbl.id", ondelete="SET NULL"), nullable=True, index=True)

    amount_override = Column(Numeric(18, 2), nullable=True)   # ad hoc amount (ยังไม่มี item)
    subtotal = Column(Numeric(18, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(18, 2), nullable=False, default=0)
    pph_percent = Column(Numeric(5, 2), nullable=False, default=0)
    pph_amount = Column(Numeric(18, 2), nullable=False, default=0)
    total_tagihan = Column(Numeric(18, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(18, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(18, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default="pending", index=True)

    issued_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    due_date = Column(Date, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="invoices")
    manifest = relationship("Manifest")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )
    payments = relationship(
        "InvoicePayment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by=lambda: [InvoicePayment.payment_date, InvoicePayment.id],
    )

    __table_args__ = (
        CheckConstraint("status in ('pending','partial','paid','cancelled')", name="ck_invoices_status"),
        CheckConstraint("pph_percent >= 0 and pph_percent <= 100", name="ck_invoices_pph_percent"),
        Index("ix_invoices_status_issued", "status", "issued_at"),
    )

    @validates("status")
    def _validate_status(self, key, value):
        if value not in INVOICE_STATUSES:
            raise ValueError(f"invalid invoice status: {value}")
        return value

    def __repr__(self):
        return f"<Invoice(invoice_number={self.invoice_number}, status={self.status})>"


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String, nullable=False)
    quantity = Column(Numeric(18, 3), nullable=False, default=1)
    unit_price = Column(Numeric(18, 2), nullable=False, default=0)
    item_discount = Column(Numeric(18, 2), nullable=False, default=0)
    shipment_id = Column(Integer, ForeignKey("shipments.id", ondelete="RESTRICT"), nullable=True, index=True)
    spb_number = Column(String, nullable=True)
    tax_type = Column(String, nullable=True, default="include")
    sj_returned = Column(Boolean, nullable=False, default=False, server_default=text("false"))

    invoice = relationship("Invoice", back_populates="items")
    shipment = relationship("Shipment", back_populates="invoice_items")

    def __repr__(self):
        return f"<InvoiceItem(invoice_id={self.invoice_id}, description={self.description})>"


class InvoicePayment(Base):
    __tablename__ = "invoice_payments"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    method = Column(String, nullable=False, default="transfer")
    bank_account = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_invoice_payments_amount_positive"),
    )

    def __repr__(self):
        return f"<InvoicePayment(invoice_id={self.invoice_id}, amount={self.amount})>"


# =========================================
# ============== Auth / RBAC =============
# =========================================

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=True)
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)

    user_roles = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_users_active", "is_active"),)

    @property
    def role_codes(self):
        return sorted(ur.role.code for ur in self.user_roles if ur.role is not None)

    def __repr__(self):
        return f"<User(username={self.username}, active={self.is_active})>"


class Role(Base):
    __tablename__ = "roles"
    id = Column(Integer, primary_key=True)
    code = Column(String, unique=True, index=True, nullable=False)   # e.g. admin, accounting, operator
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    role_users = relationship(
        "UserRole",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Role(code={self.code})>"


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False,
    )
    role_id = Column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False,
    )
    assigned_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="user_roles")
    role = relationship("Role", back_populates="role_users")

    def __repr__(self):
        return f"<UserRole(user_id={self.user_id}, role_id={self.role_id})>"


# =========================================
# ============ Document counter ===========
# =========================================

class DocCounter(Base):
    __tablename__ = "doc_counters"
    doc_type = Column(String, primary_key=True)   # "INV", "DBL"
    period = Column(Integer, primary_key=True)    # INV: YYYY, DBL: YYMM
    seq = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("doc_type", "period", name="uq_doc_counters_type_period"),
    )

    def __repr__(self):
        return f"<DocCounter(doc_type={self.doc_type}, period={self.period}, seq={self.seq})>"
