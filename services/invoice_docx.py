# services/invoice_docx.py
import re
from decimal import Decimal
from pathlib import Path

from docx import Document
from docx.enum.table import WD_CELL_VERTICAL_ALIGNMENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt

from services.company import CompanyProfile
from utils.money import line_total, quantize

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# ==================================================
# Helpers
# ==================================================

def center_cell(cell):
    cell.vertical_alignment = WD_CELL_VERTICAL_ALIGNMENT.CENTER
    for p in cell.paragraphs:
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER


def right_cell(cell):
    cell.vertical_alignment = WD_CELL_VERTICAL_ALIGNMENT.CENTER
    for p in cell.paragraphs:
        p.alignment = WD_ALIGN_PARAGRAPH.RIGHT


def add_text_with_bold(paragraph, text):
    """
    รองรับ **bold**
    """
    parts = re.split(r"(\*\*.*?\*\*)", text or "")
    for part in parts:
        if part.startswith("**") and part.endswith("**"):
            r = paragraph.add_run(part[2:-2])
            r.bold = True
        else:
            paragraph.add_run(part)


def safe_text(v):
    if v is None:
        return ""
    return str(v)


def rupiah(v) -> str:
    """1234567.5 -> 'Rp 1.234.567,50'"""
    q = quantize(v if v is not None else Decimal("0"))
    whole, frac = f"{q:,.2f}".split(".")
    return f"Rp {whole.replace(',', '.')},{frac}"


def fmt_date(d) -> str:
    if d is None:
        return "-"
    return d.strftime("%d/%m/%Y")


# ==================================================
# MAIN GENERATOR
# ==================================================

def render_invoice(invoice, company: CompanyProfile, output_path):
    """สร้างไฟล์ .docx ของ invoice (header บริษัท, ลูกค้า, ตาราง item, สรุปยอด)"""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    doc = Document()
    style = doc.styles["Normal"]
    style.font.name = "Arial"
    style.font.size = Pt(10)

    # --------------------------------------------------
    # HEADER (company)
    # --------------------------------------------------
    p = doc.add_paragraph()
    add_text_with_bold(p, f"**{safe_text(company.name)}**")
    for line in (company.address, company.phone, company.email, company.website):
        if line:
            doc.add_paragraph(safe_text(line))

    title = doc.add_paragraph()
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = title.add_run("INVOICE")
    run.bold = True
    run.font.size = Pt(16)

    # --------------------------------------------------
    # CUSTOMER / INVOICE INFO
    # --------------------------------------------------
    info = doc.add_table(rows=4, cols=2)
    info.cell(0, 0).text = f"No. Invoice : {safe_text(invoice.invoice_number)}"
    info.cell(1, 0).text = f"Tanggal     : {fmt_date(invoice.issued_at)}"
    info.cell(2, 0).text = f"Jatuh Tempo : {fmt_date(invoice.due_date)}"
    info.cell(3, 0).text = f"Status      : {safe_text(invoice.status).upper()}"
    add_text_with_bold(info.cell(0, 1).paragraphs[0], f"Kepada: **{safe_text(invoice.customer_name)}**")
    customer = getattr(invoice, "customer", None)
    if customer is not None:
        info.cell(1, 1).text = safe_text(customer.address)
        info.cell(2, 1).text = safe_text(customer.phone)
        if customer.npwp:
            info.cell(3, 1).text = f"NPWP: {customer.npwp}"

    doc.add_paragraph()

    # --------------------------------------------------
    # ITEMS
    # --------------------------------------------------
    headers = ["No", "Keterangan", "Qty", "Harga", "Diskon", "Jumlah"]
    table = doc.add_table(rows=1, cols=len(headers))
    table.style = "Table Grid"
    for i, h in enumerate(headers):
        cell = table.rows[0].cells[i]
        cell.text = ""
        add_text_with_bold(cell.paragraphs[0], f"**{h}**")
        center_cell(cell)

    for no, it in enumerate(invoice.items, start=1):
        cells = table.add_row().cells
        cells[0].text = str(no)
        cells[1].text = safe_text(it.description)
        cells[2].text = f"{it.quantity:g}"
        cells[3].text = rupiah(it.unit_price)
        cells[4].text = rupiah(it.item_discount)
        cells[5].text = rupiah(line_total(it))
        for idx in (0, 2):
            center_cell(cells[idx])
        for idx in (3, 4, 5):
            right_cell(cells[idx])

    if not invoice.items:
        cells = table.add_row().cells
        cells[0].text = "1"
        cells[1].text = safe_text(invoice.notes) or "Jasa Pengiriman"
        cells[2].text = "1"
        cells[3].text = rupiah(invoice.subtotal)
        cells[4].text = rupiah(0)
        cells[5].text = rupiah(invoice.subtotal)

    doc.add_paragraph()

    # --------------------------------------------------
    # TOTALS
    # --------------------------------------------------
    summary = [
        ("Subtotal", invoice.subtotal),
        ("Diskon", invoice.discount_amount),
        (f"PPh {quantize(invoice.pph_percent)}%", invoice.pph_amount),
        ("**Total Tagihan**", invoice.total_tagihan),
        ("Dibayar", invoice.paid_amount),
        ("**Sisa**", invoice.remaining_amount),
    ]
    totals = doc.add_table(rows=len(summary), cols=2)
    for i, (label, value) in enumerate(summary):
        add_text_with_bold(totals.cell(i, 0).paragraphs[0], label)
        totals.cell(i, 1).text = rupiah(value)
        right_cell(totals.cell(i, 1))

    if invoice.notes:
        doc.add_paragraph()
        add_text_with_bold(doc.add_paragraph(), f"**Catatan:** {invoice.notes}")

    # --------------------------------------------------
    # SAVE
    # --------------------------------------------------
    doc.save(str(output_path))
    return output_path
