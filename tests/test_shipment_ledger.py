"""Shipment ledger: CRUD, invoiceable query, flags."""
from decimal import Decimal

import pytest

from models import Customer, Shipment
from services import invoices, shipment_ledger as ledger
from services.errors import ConflictError, NotFoundError, ValidationError
from services.tx import atomic


class TestCrud:

    def test_create_links_customer_by_name(self, db, make_shipment):
        s = make_shipment(customer_name="  CV   Sinar Terang ")
        assert s.customer_id is not None
        assert s.customer_name == "CV Sinar Terang"
        assert db.query(Customer).count() == 1
        assert db.query(Customer).one().code == "C0001"

    def test_duplicate_spb(self, db, make_shipment):
        make_shipment(spb_number="SPB-1")
        with pytest.raises(ConflictError):
            make_shipment(spb_number="SPB-1")

    def test_update_only_supplied_fields(self, db, make_shipment):
        s = make_shipment(nominal="100000", destination="Malang")
        s = ledger.update_shipment(db, s.id, {"nominal": Decimal("125000")})
        assert s.nominal == Decimal("125000")
        assert s.destination == "Malang"

    def test_update_rejects_negative_nominal(self, db, make_shipment):
        s = make_shipment()
        with pytest.raises(ValidationError):
            ledger.update_shipment(db, s.id, {"nominal": Decimal("-1")})

    def test_delete_refuses_invoiced(self, db, make_shipment):
        s = make_shipment()
        invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}])
        with pytest.raises(ConflictError):
            ledger.delete_shipment(db, s.id)

    def test_delete(self, db, make_shipment):
        s = make_shipment()
        ledger.delete_shipment(db, s.id)
        assert db.get(Shipment, s.id) is None
        with pytest.raises(NotFoundError):
            ledger.get_shipment(db, s.id)

    def test_list_paging_and_search(self, db, make_shipment):
        for i in range(5):
            make_shipment(destination="Bandung" if i % 2 else "Medan")
        rows, total = ledger.list_shipments(db, page=1, limit=2)
        assert total == 5 and len(rows) == 2
        rows, total = ledger.list_shipments(db, q="medan")
        assert total == 3


class TestInvoiceable:

    def test_excludes_zero_nominal_and_invoiced(self, db, make_shipment):
        ok = make_shipment(nominal="1000")
        make_shipment(nominal="0")
        done = make_shipment(nominal="1000")
        invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": done.id}])

        ids = [s.id for s in ledger.find_invoiceable_shipments(db)]
        assert ids == [ok.id]

    def test_stale_flag_without_live_invoice_is_invoiceable(self, db, make_shipment):
        s = make_shipment()
        with atomic(db):
            ledger.mark_invoiced(db, [s.id])
        assert s.id in [x.id for x in ledger.find_invoiceable_shipments(db)]

    def test_filters(self, db, make_shipment):
        a = make_shipment(destination="Surabaya", customer_name="A")
        make_shipment(destination="Medan", customer_name="B")
        rows = ledger.find_invoiceable_shipments(db, destination="sura", customer_id=a.customer_id)
        assert [r.id for r in rows] == [a.id]


class TestFlags:

    def test_mark_and_release_are_idempotent(self, db, make_shipment):
        s = make_shipment()
        with atomic(db):
            ledger.mark_invoiced(db, [s.id, s.id])
            ledger.mark_invoiced(db, [s.id])
        assert db.get(Shipment, s.id).invoice_generated is True
        with atomic(db):
            ledger.release_invoiced(db, [s.id])
            ledger.release_invoiced(db, [s.id])
        assert db.get(Shipment, s.id).invoice_generated is False

    def test_returned_stamp(self, db, make_shipment):
        s = make_shipment()
        with atomic(db):
            ledger.set_returned(db, s.id, True)
        s = db.get(Shipment, s.id)
        stamped = s.sj_returned_at
        assert s.sj_returned is True and stamped is not None

        with atomic(db):
            ledger.set_returned(db, s.id, True)
        assert db.get(Shipment, s.id).sj_returned_at == stamped

        with atomic(db):
            ledger.set_returned(db, s.id, False)
        s = db.get(Shipment, s.id)
        assert s.sj_returned is False and s.sj_returned_at is None
