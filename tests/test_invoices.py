"""Invoice lifecycle: totals, payments, cancel/reopen, shipment flags."""
from datetime import date
from decimal import Decimal

import pytest

from models import Invoice, InvoiceItem, Shipment
from services import invoices
from services.errors import ConflictError, NotFoundError, ValidationError
from services.shipment_ledger import find_invoiceable_shipments, set_returned
from services.tx import atomic

D = Decimal


def _flag(db, shipment_id):
    s = db.get(Shipment, shipment_id)
    db.refresh(s)
    return s.invoice_generated


# ===================================================================
# create
# ===================================================================

class TestCreate:

    def test_single_shipment_with_pph(self, db, make_shipment):
        s = make_shipment(nominal="1000000")
        inv = invoices.create_invoice(db, customer_name="PT. Maju Jaya", items=[{"shipment_id": s.id}], pph_percent=2)

        assert inv.subtotal == D("1000000")
        assert inv.pph_amount == D("20000")
        assert inv.total_tagihan == D("980000")
        assert inv.remaining_amount == D("980000")
        assert inv.status == "pending"
        assert inv.items[0].description == "Resi: SPB-0001 - Sparepart"
        assert inv.items[0].unit_price == D("1000000")
        assert _flag(db, s.id) is True

    def test_numbers_are_sequential_per_year(self, db, make_shipment):
        year = date.today().year
        a = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": make_shipment().id}])
        b = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": make_shipment().id}])
        assert a.invoice_number == f"INV-{year}-0001"
        assert b.invoice_number == f"INV-{year}-0002"

    def test_number_collision_advances(self, db, make_shipment):
        year = date.today().year
        db.add(Invoice(
            invoice_number=f"INV-{year}-0001", customer_id=invoices.resolve_customer(db, None, "Lama").id,
            customer_name="Lama", status="pending",
        ))
        db.commit()
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": make_shipment().id}])
        assert inv.invoice_number == f"INV-{year}-0002"

    def test_shipment_by_spb_number(self, db, make_shipment):
        s = make_shipment(spb_number="SPB-XYZ", nominal="250000")
        inv = invoices.create_invoice(db, customer_name="A", items=[{"spb_number": "SPB-XYZ"}])
        assert inv.items[0].shipment_id == s.id
        assert inv.total_tagihan == D("250000")

    def test_initial_payment_is_recorded_as_row(self, db, make_shipment):
        s = make_shipment(nominal="1000000")
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}], paid_amount="400000")
        assert inv.status == "partial"
        assert len(inv.payments) == 1
        assert inv.paid_amount == D("400000")

    def test_ad_hoc_amount_without_items(self, db):
        inv = invoices.create_invoice(db, customer_name="Walk In", amount="750000")
        assert inv.items == []
        assert inv.subtotal == D("750000")
        assert inv.total_tagihan == D("750000")

    def test_creates_customer_case_insensitively(self, db):
        a = invoices.create_invoice(db, customer_name="pt. maju jaya", amount="100")
        b = invoices.create_invoice(db, customer_name="PT. MAJU JAYA", amount="100")
        assert a.customer_id == b.customer_id

    def test_zero_nominal_shipment_rejected(self, db, make_shipment):
        s = make_shipment(nominal="0")
        with pytest.raises(ValidationError):
            invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        assert db.query(Invoice).count() == 0

    def test_shipment_cannot_be_on_two_live_invoices(self, db, make_shipment):
        s = make_shipment()
        invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        with pytest.raises(ConflictError):
            invoices.create_invoice(db, customer_name="B", items=[{"shipment_id": s.id}])
        assert db.query(Invoice).count() == 1

    def test_requires_items_or_amount(self, db):
        with pytest.raises(ValidationError):
            invoices.create_invoice(db, customer_name="A")

    def test_requires_customer(self, db):
        with pytest.raises(ValidationError):
            invoices.create_invoice(db, amount="1000")

    def test_unknown_shipment(self, db):
        with pytest.raises(NotFoundError):
            invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": 999}])

    def test_pph_out_of_range(self, db):
        with pytest.raises(ValidationError):
            invoices.create_invoice(db, customer_name="A", amount="1000", pph_percent=101)


# ===================================================================
# payments
# ===================================================================

class TestPayments:

    def test_partial_then_paid(self, db, make_shipment):
        s = make_shipment(nominal="1000000")
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}], pph_percent=2)

        inv = invoices.record_payment(db, inv.id, "500000")
        assert inv.status == "partial"
        assert inv.paid_amount == D("500000")
        assert inv.remaining_amount == D("480000")
        assert inv.paid_at is None

        inv = invoices.record_payment(db, inv.id, "480000", method="cash")
        assert inv.status == "paid"
        assert inv.remaining_amount == D("0")
        assert inv.paid_at is not None
        assert [p.amount for p in inv.payments] == [D("500000"), D("480000")]

    def test_paid_at_is_not_overwritten(self, db):
        inv = invoices.create_invoice(db, customer_name="A", amount="100000")
        inv = invoices.record_payment(db, inv.id, "100000")
        first_paid_at = inv.paid_at
        last = inv.payments[-1]

        inv = invoices.delete_payment(db, last.id)
        assert inv.status == "pending"
        assert inv.paid_amount == D("0")

        inv = invoices.record_payment(db, inv.id, "100000")
        assert inv.status == "paid"
        assert inv.paid_at == first_paid_at

    def test_non_positive_payment_rejected(self, db):
        inv = invoices.create_invoice(db, customer_name="A", amount="100000")
        with pytest.raises(ValidationError):
            invoices.record_payment(db, inv.id, "0")

    def test_payment_on_cancelled_invoice_keeps_status(self, db):
        inv = invoices.create_invoice(db, customer_name="A", amount="100000")
        invoices.cancel_invoice(db, inv.id)
        inv = invoices.record_payment(db, inv.id, "100000")
        assert inv.status == "cancelled"
        assert len(inv.payments) == 1

    def test_delete_unknown_payment(self, db):
        with pytest.raises(NotFoundError):
            invoices.delete_payment(db, 12345)


# ===================================================================
# pph / items / header
# ===================================================================

class TestEdits:

    def test_update_pph_recomputes(self, db, make_shipment):
        s = make_shipment(nominal="1000000")
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        invoices.record_payment(db, inv.id, "500000")

        inv = invoices.update_pph_percent(db, inv.id, "2.5")
        assert inv.pph_amount == D("25000")
        assert inv.total_tagihan == D("975000")
        assert inv.remaining_amount == D("475000")
        assert inv.status == "partial"

    def test_set_items_round_trip(self, db, make_shipment):
        s1 = make_shipment(nominal="300000")
        s2 = make_shipment(nominal="200000")
        inv = invoices.create_invoice(db, customer_name="A", amount="1")
        wanted = [
            {"description": "Ongkos kirim", "quantity": D("2"), "unit_price": D("150000"),
             "item_discount": D("0"), "shipment_id": s1.id},
            {"description": "Packing kayu", "quantity": D("1"), "unit_price": D("75000"),
             "item_discount": D("5000"), "shipment_id": None},
            {"description": "Resi tambahan", "quantity": D("1"), "unit_price": D("200000"),
             "item_discount": D("0"), "shipment_id": s2.id},
        ]
        inv = invoices.set_items(db, inv.id, wanted)

        def key(i):
            return (i["description"], D(i["quantity"]), D(i["unit_price"]), D(i["item_discount"]), i["shipment_id"])

        got = sorted(
            (i.description, D(i.quantity), D(i.unit_price), D(i.item_discount), i.shipment_id)
            for i in inv.items
        )
        assert got == sorted(key(i) for i in wanted)
        assert inv.subtotal == D("570000")
        assert _flag(db, s1.id) and _flag(db, s2.id)

    def test_set_items_releases_removed_shipments(self, db, make_shipment):
        s1 = make_shipment()
        s2 = make_shipment()
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s1.id}, {"shipment_id": s2.id}])

        invoices.set_items(db, inv.id, [{"shipment_id": s2.id}])
        assert _flag(db, s1.id) is False
        assert _flag(db, s2.id) is True

    def test_set_items_rejects_cancelled(self, db):
        inv = invoices.create_invoice(db, customer_name="A", amount="100")
        invoices.cancel_invoice(db, inv.id)
        with pytest.raises(ValidationError):
            invoices.set_items(db, inv.id, [{"description": "x", "unit_price": 1}])

    def test_item_sj_returned_is_pushed_to_shipment(self, db, make_shipment):
        s = make_shipment()
        invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id, "sj_returned": True}])
        shipment = db.get(Shipment, s.id)
        db.refresh(shipment)
        assert shipment.sj_returned is True
        assert shipment.sj_returned_at is not None

    def test_item_sj_returned_false_does_not_clear_shipment(self, db, make_shipment):
        s = make_shipment()
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        with atomic(db):
            set_returned(db, s.id, True)
        stamped = db.get(Shipment, s.id).sj_returned_at

        invoices.set_items(db, inv.id, [{"shipment_id": s.id, "sj_returned": False}])
        shipment = db.get(Shipment, s.id)
        db.refresh(shipment)
        assert shipment.sj_returned is True
        assert shipment.sj_returned_at == stamped

    def test_set_items_empty_without_amount_is_rejected(self, db, make_shipment):
        s = make_shipment(nominal="100000")
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        invoices.record_payment(db, inv.id, "50000")

        with pytest.raises(ValidationError):
            invoices.set_items(db, inv.id, [])

        inv = invoices.get_invoice(db, inv.id)
        assert inv.status == "partial"
        assert inv.paid_at is None
        assert inv.total_tagihan == D("100000")
        assert [i.shipment_id for i in inv.items] == [s.id]
        assert _flag(db, s.id) is True

    def test_negative_item_discount_rejected(self, db):
        with pytest.raises(ValidationError):
            invoices.create_invoice(
                db, customer_name="A",
                items=[{"description": "Ongkos kirim", "unit_price": D("100000"), "item_discount": D("-5000")}],
            )

    def test_update_header(self, db, make_shipment):
        s = make_shipment(nominal="100000")
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        inv = invoices.update_invoice(db, inv.id, {
            "customer_name": "B", "discount_amount": D("10000"), "notes": "revisi",
        })
        assert inv.customer_name == "B"
        assert inv.total_tagihan == D("90000")
        assert inv.notes == "revisi"

    def test_ad_hoc_total_ignores_discount_and_pph_until_items_exist(self, db):
        inv = invoices.create_invoice(db, customer_name="A", amount="100000", pph_percent=2)
        inv = invoices.update_invoice(db, inv.id, {"discount_amount": D("10000")})
        assert inv.pph_amount == D("0")
        assert inv.total_tagihan == D("100000")

        inv = invoices.set_items(db, inv.id, [{"description": "Ongkos kirim", "unit_price": D("200000")}])
        assert inv.subtotal == D("200000")
        assert inv.pph_amount == D("3800")
        assert inv.total_tagihan == D("186200")


# ===================================================================
# cancel / reopen / delete
# ===================================================================

class TestCancelReopenDelete:

    def test_cancel_releases_shipments(self, db, make_shipment):
        s = make_shipment()
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])

        inv = invoices.cancel_invoice(db, inv.id)
        assert inv.status == "cancelled"
        assert _flag(db, s.id) is False
        assert s.id in [x.id for x in find_invoiceable_shipments(db)]

    def test_reopen_restores_status_and_flags(self, db, make_shipment):
        s = make_shipment(nominal="1000000")
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}], paid_amount="100000")
        invoices.cancel_invoice(db, inv.id)

        inv = invoices.reopen_invoice(db, inv.id)
        assert inv.status == "partial"
        assert _flag(db, s.id) is True

    def test_reopen_conflicts_when_shipment_invoiced_again(self, db, make_shipment):
        s = make_shipment()
        first = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        invoices.cancel_invoice(db, first.id)
        invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])

        with pytest.raises(ConflictError):
            invoices.reopen_invoice(db, first.id)
        assert db.get(Invoice, first.id).status == "cancelled"

    def test_reopen_only_cancelled(self, db):
        inv = invoices.create_invoice(db, customer_name="A", amount="100")
        with pytest.raises(ValidationError):
            invoices.reopen_invoice(db, inv.id)

    def test_delete_releases_and_removes_rows(self, db, make_shipment):
        s = make_shipment()
        inv = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}], paid_amount="1000")

        invoices.delete_invoice(db, inv.id)
        assert db.query(Invoice).count() == 0
        assert db.query(InvoiceItem).count() == 0
        assert _flag(db, s.id) is False

    def test_delete_cancelled_does_not_release_reinvoiced_shipment(self, db, make_shipment):
        s = make_shipment()
        old = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        invoices.cancel_invoice(db, old.id)
        invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])

        invoices.delete_invoice(db, old.id)
        assert _flag(db, s.id) is True

    def test_get_missing(self, db):
        with pytest.raises(NotFoundError):
            invoices.get_invoice(db, 404)


# ===================================================================
# list / outstanding
# ===================================================================

class TestQueries:

    def test_list_filters_by_status_and_text(self, db):
        a = invoices.create_invoice(db, customer_name="Toko Abadi", amount="100")
        invoices.create_invoice(db, customer_name="CV Sentosa", amount="100")
        invoices.cancel_invoice(db, a.id)

        rows, total = invoices.list_invoices(db, status="cancelled")
        assert total == 1 and rows[0].id == a.id

        rows, total = invoices.list_invoices(db, q="sentosa")
        assert total == 1 and rows[0].customer_name == "CV Sentosa"

    def test_outstanding_mix(self, db, make_shipment):
        loose = make_shipment(nominal="300000")
        s1 = make_shipment(nominal="600000")
        s2 = make_shipment(nominal="400000")
        paid = make_shipment(nominal="50000")
        cancelled = make_shipment(nominal="80000")
        make_shipment(nominal="0")

        partial = invoices.create_invoice(
            db, customer_name="A", items=[{"shipment_id": s1.id}, {"shipment_id": s2.id}], paid_amount="500000"
        )
        invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": paid.id}], paid_amount="50000")
        c = invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": cancelled.id}])
        invoices.cancel_invoice(db, c.id)

        report = invoices.list_outstanding(db)
        by_id = {r["shipment_id"]: r for r in report["items"]}

        assert set(by_id) == {loose.id, s1.id, s2.id, cancelled.id}
        assert by_id[loose.id]["remaining_amount"] == D("300000.00")
        assert by_id[loose.id]["invoice_id"] is None
        assert by_id[s1.id]["remaining_amount"] == D("300000.00")
        assert by_id[s2.id]["remaining_amount"] == D("200000.00")
        assert by_id[s1.id]["invoice_number"] == partial.invoice_number
        assert by_id[cancelled.id]["remaining_amount"] == D("80000.00")
        assert report["count"] == 4
        assert report["total_remaining"] == D("880000.00")
