# services/report_export.py
from decimal import Decimal
from io import BytesIO
from typing import Iterable, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

from services.company import CompanyProfile

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# (key ใน row, หัวคอลัมน์)
Column = Tuple[str, str]


def _cell_value(v):
    # openpyxl เขียน Decimal ได้ แต่ Excel เปิดเป็นตัวเลขได้ดีกว่าเมื่อเป็น float
    if isinstance(v, Decimal):
        return float(v)
    return v


def workbook_for(
    title: str,
    columns: Sequence[Column],
    rows: Iterable[dict],
    totals: Optional[dict] = None,
    company: Optional[CompanyProfile] = None,
) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    if company is not None:
        ws.append([company.name])
        ws["A1"].font = Font(bold=True, size=13)
    ws.append([title])
    ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
    ws.append([])

    ws.append([label for _, label in columns])
    header_row = ws.max_row
    for cell in ws[header_row]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")

    for row in rows:
        ws.append([_cell_value(row.get(key)) for key, _ in columns])

    if totals:
        ws.append([_cell_value(totals.get(key, "Total" if i == 0 else None)) for i, (key, _) in enumerate(columns)])
        for cell in ws[ws.max_row]:
            cell.font = Font(bold=True)

    for i, (_, label) in enumerate(columns, start=1):
        ws.column_dimensions[ws.cell(row=header_row, column=i).column_letter].width = max(12, len(label) + 4)
    return wb


def workbook_bytes(wb: Workbook) -> BytesIO:
    buf = BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf


# คอลัมน์ของรายงานแต่ละแบบ
OUTSTANDING_COLUMNS: List[Column] = [
    ("spb_number", "No. SPB"),
    ("customer_name", "Customer"),
    ("destination", "Destination"),
    ("nominal", "Nominal"),
    ("invoice_number", "Invoice"),
    ("invoice_status", "Status"),
    ("remaining_amount", "Outstanding"),
]

MARGIN_COLUMNS: List[Column] = [
    ("dbl_number", "No. DBL"),
    ("dbl_date", "Date"),
    ("destination", "Destination"),
    ("driver_name", "Driver"),
    ("total_nominal", "Nominal"),
    ("total_operational", "Operational"),
    ("margin", "Margin"),
    ("margin_percent", "Margin %"),
]

MANIFEST_COLUMNS: List[Column] = [
    ("dbl_number", "No. DBL"),
    ("dbl_date", "Date"),
    ("vehicle_plate", "Vehicle"),
    ("driver_name", "Driver"),
    ("status", "Status"),
    ("shipment_count", "Shipments"),
    ("total_colli", "Colli"),
    ("total_berat", "Weight"),
    ("total_nominal", "Nominal"),
]

SALES_COLUMNS: List[Column] = [
    ("customer_name", "Customer"),
    ("invoice_count", "Invoices"),
    ("subtotal", "Subtotal"),
    ("pph_amount", "PPh"),
    ("total_tagihan", "Billed"),
    ("paid_amount", "Paid"),
    ("remaining_amount", "Remaining"),
]
