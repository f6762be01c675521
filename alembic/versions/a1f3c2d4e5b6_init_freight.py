"""init freight back-office

Revision ID: a1f3c2d4e5b6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f3c2d4e5b6'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(name, **kw):
    return sa.Column(name, sa.Numeric(18, 2), nullable=False, server_default='0', **kw)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # ---------- master ----------
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('npwp', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_customers_id', 'customers', ['id'])
    op.create_index('ix_customers_code', 'customers', ['code'], unique=True)
    op.create_index('uq_customers_name_lower', 'customers', [sa.text('lower(name)')], unique=True)

    op.create_table(
        'company_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('website', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
    )

    # ---------- auth ----------
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('is_superuser', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_active', 'users', ['is_active'])

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
    )
    op.create_index('ix_roles_code', 'roles', ['code'], unique=True)

    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )

    # ---------- manifest (DBL) ----------
    op.create_table(
        'dbl',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('dbl_number', sa.String(), nullable=False),
        sa.Column('dbl_date', sa.Date(), nullable=False),
        sa.Column('vehicle_plate', sa.String(), nullable=True),
        sa.Column('driver_name', sa.String(), nullable=True),
        sa.Column('driver_phone', sa.String(), nullable=True),
        sa.Column('origin', sa.String(), nullable=True),
        sa.Column('destination', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='DRAFT'),
        _money('loco_amount'),
        _money('tekor_amount'),
        _money('sangu'),
        _money('komisi'),
        _money('ongkos_muatan'),
        _money('biaya_lain'),
        _money('administrasi'),
        _money('ongkos_lain'),
        _money('total_tagihan'),
        _money('total_bayar'),
        sa.Column('catatan', sa.Text(), nullable=True),
        sa.Column('pengurus_name', sa.String(), nullable=True),
        sa.Column('supir_name', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_dbl_dbl_number', 'dbl', ['dbl_number'], unique=True)
    op.create_index('ix_dbl_date_created', 'dbl', ['dbl_date', 'created_at'])

    # ---------- shipments ----------
    op.create_table(
        'shipments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('spb_number', sa.String(), nullable=True),
        sa.Column('public_code', sa.String(), nullable=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('pengirim_name', sa.String(), nullable=True),
        sa.Column('penerima_name', sa.String(), nullable=True),
        sa.Column('penerima_phone', sa.String(), nullable=True),
        sa.Column('origin', sa.String(), nullable=False),
        sa.Column('destination', sa.String(), nullable=False),
        sa.Column('macam_barang', sa.String(), nullable=True),
        sa.Column('total_colli', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('qty', sa.Numeric(18, 3), nullable=False, server_default='0'),
        sa.Column('satuan', sa.String(), nullable=True),
        sa.Column('berat', sa.Numeric(18, 3), nullable=False, server_default='0'),
        _money('nominal'),
        sa.Column('status', sa.String(), nullable=False, server_default='READY'),
        sa.Column('dbl_id', sa.Integer(), sa.ForeignKey('dbl.id', ondelete='SET NULL'), nullable=True),
        sa.Column('invoice_generated', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('sj_returned', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('sj_returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('keterangan', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_shipments_spb_number', 'shipments', ['spb_number'], unique=True)
    op.create_index('ix_shipments_public_code', 'shipments', ['public_code'], unique=True)
    op.create_index('ix_shipments_customer_id', 'shipments', ['customer_id'])
    op.create_index('ix_shipments_dbl_id', 'shipments', ['dbl_id'])
    op.create_index('ix_shipments_invoiceable', 'shipments', ['invoice_generated', 'nominal'])
    op.create_index('ix_shipments_status_created', 'shipments', ['status', 'created_at'])

    op.create_table(
        'dbl_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('dbl_id', sa.Integer(), sa.ForeignKey('dbl.id', ondelete='CASCADE'), nullable=False),
        sa.Column('shipment_id', sa.Integer(), sa.ForeignKey('shipments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('urutan', sa.Integer(), nullable=False, server_default='1'),
        sa.UniqueConstraint('dbl_id', 'shipment_id', name='uq_dbl_items_dbl_shipment'),
    )
    op.create_index('ix_dbl_items_dbl_id', 'dbl_items', ['dbl_id'])
    op.create_index('ix_dbl_items_shipment_id', 'dbl_items', ['shipment_id'])

    op.create_table(
        'dbl_operational_costs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('dbl_id', sa.Integer(), sa.ForeignKey('dbl.id', ondelete='CASCADE'), nullable=False),
        _money('bayar_supir'),
        _money('solar'),
        _money('sewa_mobil'),
        _money('kuli_muat'),
        _money('kuli_bongkar'),
        _money('biaya_lain'),
        _money('total_operational'),
        sa.Column('catatan', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_dbl_operational_costs_dbl_id', 'dbl_operational_costs', ['dbl_id'], unique=True)

    # ---------- invoices ----------
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_number', sa.String(), nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('customer_name', sa.String(), nullable=False),
        sa.Column('dbl_id', sa.Integer(), sa.ForeignKey('dbl.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount_override', sa.Numeric(18, 2), nullable=True),
        _money('subtotal'),
        _money('discount_amount'),
        sa.Column('pph_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        _money('pph_amount'),
        _money('total_tagihan'),
        _money('paid_amount'),
        _money('remaining_amount'),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('issued_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status in ('pending','partial','paid','cancelled')", name='ck_invoices_status'),
        sa.CheckConstraint('pph_percent >= 0 and pph_percent <= 100', name='ck_invoices_pph_percent'),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_dbl_id', 'invoices', ['dbl_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_status_issued', 'invoices', ['status', 'issued_at'])

    op.create_table(
        'invoice_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 3), nullable=False, server_default='1'),
        _money('unit_price'),
        _money('item_discount'),
        sa.Column('shipment_id', sa.Integer(), sa.ForeignKey('shipments.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('spb_number', sa.String(), nullable=True),
        sa.Column('tax_type', sa.String(), nullable=True, server_default='include'),
        sa.Column('sj_returned', sa.Boolean(), nullable=False, server_default=sa.text('false')),
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])
    op.create_index('ix_invoice_items_shipment_id', 'invoice_items', ['shipment_id'])

    op.create_table(
        'invoice_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('method', sa.String(), nullable=False, server_default='transfer'),
        sa.Column('bank_account', sa.String(), nullable=True),
        sa.Column('reference', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_invoice_payments_amount_positive'),
    )
    op.create_index('ix_invoice_payments_invoice_id', 'invoice_payments', ['invoice_id'])

    # ---------- document counter ----------
    op.create_table(
        'doc_counters',
        sa.Column('doc_type', sa.String(), primary_key=True),
        sa.Column('period', sa.Integer(), primary_key=True),
        sa.Column('seq', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('doc_type', 'period', name='uq_doc_counters_type_period'),
    )

    # role เริ่มต้น
    op.bulk_insert(
        sa.table('roles', sa.column('code', sa.String), sa.column('name', sa.String)),
        [
            {'code': 'admin', 'name': 'Administrator'},
            {'code': 'accounting', 'name': 'Accounting'},
            {'code': 'operator', 'name': 'Operator'},
        ],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('doc_counters')
    op.drop_table('invoice_payments')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('dbl_operational_costs')
    op.drop_table('dbl_items')
    op.drop_table('shipments')
    op.drop_table('dbl')
    op.drop_table('user_roles')
    op.drop_table('roles')
    op.drop_table('users')
    op.drop_table('company_config')
    op.drop_table('customers')
