"""Reports: margin, manifest summary, sales, dashboard, xlsx/docx exports."""
from datetime import date
from decimal import Decimal

from docx import Document
from openpyxl import load_workbook

from services import invoices, manifests, reports
from services.company import company_profile
from services.invoice_docx import render_invoice, rupiah
from services.report_export import MARGIN_COLUMNS, workbook_bytes, workbook_for

D = Decimal


def _manifest(db, shipment_ids, **kw):
    data = {"dbl_date": date(2026, 10, 1), "destination": "Surabaya", "shipment_ids": shipment_ids}
    data.update(kw)
    return manifests.create_manifest(db, data)


def test_margin_report(db, make_shipment):
    a = make_shipment(nominal="1500000")
    b = make_shipment(nominal="500000")
    m = _manifest(db, [a.id, b.id])
    manifests.save_operational_costs(db, m.id, {"bayar_supir": D("700000"), "solar": D("300000")})
    _manifest(db, [], destination="Medan")

    report = reports.margin_report(db, destination="sura")
    assert len(report["items"]) == 1
    row = report["items"][0]
    assert row["total_nominal"] == D("2000000")
    assert row["total_operational"] == D("1000000")
    assert row["margin"] == D("1000000")
    assert row["margin_percent"] == D("50.00")
    assert row["solar"] == D("300000")
    assert report["summary"]["total_margin"] == D("1000000")


def test_margin_percent_zero_without_nominal(db):
    _manifest(db, [])
    row = reports.margin_report(db)["items"][0]
    assert row["margin_percent"] == D("0")


def test_manifest_report(db, make_shipment):
    a = make_shipment(nominal="100000", total_colli=3, berat="10")
    b = make_shipment(nominal="200000", total_colli=2, berat="5.5")
    _manifest(db, [a.id, b.id])

    report = reports.manifest_report(db)
    row = report["items"][0]
    assert row["shipment_count"] == 2
    assert row["total_colli"] == 5
    assert row["total_berat"] == D("15.5")
    assert row["total_nominal"] == D("300000")


def test_sales_report_skips_cancelled(db):
    invoices.create_invoice(db, customer_name="PT. Alpha", amount="1000000")
    invoices.create_invoice(db, customer_name="PT. Alpha", amount="500000", paid_amount="500000")
    c = invoices.create_invoice(db, customer_name="CV Beta", amount="800000")
    invoices.cancel_invoice(db, c.id)

    report = reports.sales_report(db)
    assert [r["customer_name"] for r in report["items"]] == ["PT. Alpha"]
    row = report["items"][0]
    assert row["invoice_count"] == 2
    assert row["total_tagihan"] == D("1500000")
    assert row["paid_amount"] == D("500000")
    assert row["remaining_amount"] == D("1000000")
    assert report["summary"]["invoice_count"] == 2


def test_dashboard(db, make_shipment):
    s = make_shipment(nominal="400000")
    make_shipment(nominal="100000", status="DELIVERED")
    invoices.create_invoice(db, customer_name="A", items=[{"shipment_id": s.id}], paid_amount="100000")

    stats = reports.dashboard_stats(db)
    assert stats["active_shipments"] == 1
    assert stats["pending_invoices"] == 1
    assert stats["total_invoices"] == 1
    assert stats["outstanding_count"] == 2
    assert stats["outstanding_amount"] == D("400000")
    assert stats["payments_count"] == 1
    assert stats["payments_amount"] == D("100000")


def test_workbook_layout(db):
    rows = [{"dbl_number": "DBL.2610.001", "total_nominal": D("100"), "margin": D("40")}]
    wb = workbook_for("Margin per DBL", MARGIN_COLUMNS, rows, {"margin": D("40")}, company_profile(db))
    wb = load_workbook(workbook_bytes(wb))
    ws = wb.active
    values = [[c.value for c in r] for r in ws.iter_rows()]

    assert values[0][0] == "PT. SUMBER TRANS EXPRESS"
    assert values[1][0] == "Margin per DBL"
    assert values[3][0] == "No. DBL"
    assert values[4][0] == "DBL.2610.001"
    assert values[5][0] == "Total"
    assert values[5][6] == 40


def test_invoice_document(db, make_shipment, tmp_path):
    s = make_shipment(nominal="1250000")
    inv = invoices.create_invoice(db, customer_name="PT. Alpha", items=[{"shipment_id": s.id}], pph_percent=2)

    out = render_invoice(inv, company_profile(db), tmp_path / "inv.docx")
    doc = Document(str(out))
    text = "\n".join(p.text for p in doc.paragraphs)
    cells = "\n".join(c.text for t in doc.tables for r in t.rows for c in r.cells)

    assert "INVOICE" in text
    assert inv.invoice_number in cells
    assert "Resi: SPB-0001 - Sparepart" in cells
    assert rupiah(inv.total_tagihan) in cells


def test_rupiah_format():
    assert rupiah(D("1234567.5")) == "Rp 1.234.567,50"
