"""HTTP layer: routing, role checks, error bodies, exports."""
from io import BytesIO

from fastapi.testclient import TestClient
from openpyxl import load_workbook

from services.invoice_docx import DOCX_MEDIA_TYPE
from services.report_export import XLSX_MEDIA_TYPE

API = "/api/v1"


def _shipment(client, **kw):
    payload = {
        "spb_number": kw.pop("spb_number", "SPB-100"),
        "customer_name": "PT. Maju Jaya",
        "origin": "Jakarta",
        "destination": "Surabaya",
        "macam_barang": "Sparepart",
        "total_colli": 3,
        "nominal": "1000000",
    }
    payload.update(kw)
    r = client.post(f"{API}/shipments", json=payload)
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_me(client):
    body = client.get(f"{API}/auth/me").json()
    assert body["username"] == "admin"
    assert body["roles"] == ["admin"]


def test_token_login(app, make_user):
    make_user("kasir", roles=("accounting",))
    anon = TestClient(app)

    r = anon.post(f"{API}/auth/token", data={"username": "kasir", "password": "wrong"})
    assert r.status_code == 400

    r = anon.post(f"{API}/auth/token", data={"username": "kasir", "password": "secret123"})
    assert r.status_code == 200
    token = r.json()["access_token"]

    me = anon.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["username"] == "kasir"
    assert me["roles"] == ["accounting"]

    assert anon.get(f"{API}/shipments").status_code == 401


class TestShipments:

    def test_create_and_list(self, client):
        s = _shipment(client)
        assert s["customer_name"] == "PT. Maju Jaya"
        assert s["invoice_generated"] is False

        body = client.get(f"{API}/shipments", params={"q": "SPB-1"}).json()
        assert body["pagination"]["total"] == 1
        assert body["items"][0]["id"] == s["id"]

    def test_invoiceable_route_is_not_an_id(self, client):
        _shipment(client)
        r = client.get(f"{API}/shipments/invoiceable")
        assert r.status_code == 200
        assert len(r.json()) == 1

    def test_sj_returned(self, client):
        s = _shipment(client)
        r = client.put(f"{API}/shipments/{s['id']}/sj-returned", json={"returned": True})
        assert r.json()["sj_returned"] is True
        assert r.json()["sj_returned_at"] is not None

    def test_duplicate_spb_is_conflict(self, client):
        _shipment(client)
        r = client.post(f"{API}/shipments", json={
            "spb_number": "SPB-100", "origin": "A", "destination": "B", "total_colli": 1,
        })
        assert r.status_code == 409
        assert r.json()["code"] == "conflict"


class TestInvoices:

    def test_lifecycle(self, client):
        s = _shipment(client)
        r = client.post(f"{API}/invoices", json={
            "customer_name": "PT. Maju Jaya",
            "items": [{"shipment_id": s["id"]}],
            "pph_percent": "2",
        })
        assert r.status_code == 201, r.text
        inv = r.json()
        assert float(inv["total_tagihan"]) == 980000
        assert inv["status"] == "pending"

        r = client.post(f"{API}/invoices/{inv['id']}/payments", json={"amount": "480000"})
        assert r.status_code == 201
        assert r.json()["status"] == "partial"
        assert float(r.json()["remaining_amount"]) == 500000

        r = client.put(f"{API}/invoices/{inv['id']}/pph", json={"pph_percent": "0"})
        assert float(r.json()["total_tagihan"]) == 1000000

        payments = client.get(f"{API}/invoices/{inv['id']}/payments").json()
        assert len(payments) == 1

        r = client.post(f"{API}/invoices/{inv['id']}/cancel")
        assert r.json()["status"] == "cancelled"
        assert client.get(f"{API}/shipments/{s['id']}").json()["invoice_generated"] is False

    def test_not_found_body(self, client):
        r = client.get(f"{API}/invoices/999")
        assert r.status_code == 404
        body = r.json()
        assert body["code"] == "not_found"
        assert body["detail"] == "Invoice not found"

    def test_validation_error_body(self, client):
        r = client.post(f"{API}/invoices", json={"customer_name": "A"})
        assert r.status_code == 400
        assert r.json()["code"] == "validation_error"

    def test_item_needs_a_source(self, client):
        r = client.post(f"{API}/invoices", json={"customer_name": "A", "items": [{"quantity": "1"}]})
        assert r.status_code == 422

    def test_negative_item_discount_is_422(self, client):
        r = client.post(f"{API}/invoices", json={
            "customer_name": "A",
            "items": [{"description": "Packing", "unit_price": "10000", "item_discount": "-1"}],
        })
        assert r.status_code == 422

    def test_document(self, client):
        r = client.post(f"{API}/invoices", json={"customer_name": "A", "amount": "150000"})
        inv = r.json()
        r = client.get(f"{API}/invoices/{inv['id']}/document")
        assert r.status_code == 200
        assert r.headers["content-type"] == DOCX_MEDIA_TYPE
        assert r.content[:2] == b"PK"


class TestRoles:

    def test_operator_cannot_bill(self, make_user, client_as):
        op = client_as(make_user("op", roles=("operator",)))
        s = _shipment(op)
        r = op.post(f"{API}/invoices", json={"customer_name": "A", "items": [{"shipment_id": s["id"]}]})
        assert r.status_code == 403

    def test_viewer_can_read_only(self, make_user, client_as):
        viewer = client_as(make_user("viewer"))
        assert viewer.get(f"{API}/shipments").status_code == 200
        r = viewer.post(f"{API}/shipments", json={"origin": "A", "destination": "B", "total_colli": 1})
        assert r.status_code == 403


class TestManifests:

    def test_flow(self, client):
        a = _shipment(client, spb_number="SPB-A", customer_name="PT. Alpha")
        b = _shipment(client, spb_number="SPB-B", customer_name="CV Beta")

        r = client.post(f"{API}/manifests", json={
            "dbl_date": "2026-10-05", "destination": "Surabaya", "shipment_ids": [a["id"]],
        })
        assert r.status_code == 201, r.text
        m = r.json()
        assert m["dbl_number"] == "DBL.2610.001"

        r = client.post(f"{API}/manifests/{m['id']}/shipments/{b['id']}")
        assert [i["spb_number"] for i in r.json()["items"]] == ["SPB-A", "SPB-B"]

        r = client.patch(f"{API}/manifests/{m['id']}", json={"status": "DEPARTED"})
        assert r.json()["status"] == "DEPARTED"
        assert {i["status"] for i in r.json()["items"]} == {"IN_TRANSIT"}

        r = client.post(f"{API}/manifests/{m['id']}/generate-invoices", json={"pph_percent": "2"})
        assert r.status_code == 201, r.text
        names = sorted(i["customer_name"] for i in r.json()["invoices"])
        assert names == ["CV Beta", "PT. Alpha"]

        r = client.put(f"{API}/manifests/{m['id']}/operational-costs", json={"solar": "250000"})
        assert float(r.json()["total_operational"]) == 250000
        view = client.get(f"{API}/manifests/{m['id']}/operational-costs").json()
        assert float(view["total_nominal"]) == 2000000

        listing = client.get(f"{API}/manifests").json()
        assert listing["items"][0]["shipment_count"] == 2


class TestReports:

    def test_outstanding_json_and_xlsx(self, client):
        _shipment(client)
        body = client.get(f"{API}/reports/outstanding").json()
        assert body["count"] == 1
        assert float(body["total_remaining"]) == 1000000

        r = client.get(f"{API}/reports/outstanding", params={"format": "xlsx"})
        assert r.status_code == 200
        assert r.headers["content-type"] == XLSX_MEDIA_TYPE
        ws = load_workbook(BytesIO(r.content)).active
        assert ws["A2"].value == "Outstanding Receivables"

    def test_dashboard(self, client):
        _shipment(client)
        body = client.get(f"{API}/reports/dashboard").json()
        assert body["active_shipments"] == 1
        assert body["delivery_notes"] == 1

    def test_bad_format(self, client):
        assert client.get(f"{API}/reports/margin", params={"format": "pdf"}).status_code == 422
