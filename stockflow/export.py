"""PDF and spreadsheet exports of the current inventory data."""
from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
import xlwt

from .metrics import inventory_stats, is_low_stock, product_value
from .models import Product, Transaction, _now

PDF_TRANSACTION_LIMIT = 50
TRANSACTION_EXPORT_HEADERS = ["Date", "Item", "Action", "Change", "Notes"]

_HEADER_BLUE = colors.HexColor("#3B82F6")
_HEADER_SLATE = colors.HexColor("#475569")
_LOW_RED = colors.HexColor("#DC2626")
_OK_GREEN = colors.HexColor("#16A34A")


def strip_report_markdown(text: str) -> str:
    """Drop bold and heading markers and tighten paragraph spacing."""

    return text.replace("**", "").replace("#", "").replace("\n\n", "\n")


def _signed_change(entry: Transaction) -> str:
    change = entry.signed_quantity()
    if change is None:
        return f"±{entry.quantity}"
    return f"{change:+d}"


def _transaction_row(entry: Transaction) -> List[str]:
    return [
        entry.date.strftime("%Y-%m-%d"),
        entry.product_name,
        entry.type.value,
        _signed_change(entry),
        entry.notes or "-",
    ]


def pdf_filename(now: Optional[datetime] = None) -> str:
    stamp = (now or _now()).strftime("%Y-%m-%d")
    return f"StockFlow_Report_{stamp}.pdf"


def build_inventory_pdf(
    products: Sequence[Product],
    transactions: Sequence[Transaction],
    report: Optional[str] = None,
    *,
    title: str = "StockFlow AI",
    generated_at: Optional[datetime] = None,
) -> bytes:
    styles = getSampleStyleSheet()
    right_style = ParagraphStyle("GeneratedAt", parent=styles["Normal"], alignment=TA_RIGHT)
    generated = generated_at or _now()
    stats = inventory_stats(products, transactions)

    story: List[Any] = [
        Paragraph(f"<b>{escape(title)}</b>", styles["Title"]),
        Paragraph("Inventory &amp; Operations Report", styles["Heading3"]),
        Paragraph(generated.strftime("%Y-%m-%d %H:%M"), right_style),
        Spacer(1, 12),
        Paragraph("Executive Summary", styles["Heading2"]),
        Paragraph(f"Total Asset Value: ${stats.total_value:,.2f}", styles["Normal"]),
        Paragraph(f"Total Stock Count: {stats.total_items} units", styles["Normal"]),
        Paragraph(f"Low Stock Alerts: {stats.low_stock_count}", styles["Normal"]),
        Spacer(1, 12),
    ]

    if report:
        cleaned = escape(strip_report_markdown(report)).replace("\n", "<br/>")
        story.append(Paragraph("AI Analysis", styles["Heading2"]))
        story.append(Paragraph(cleaned, styles["Normal"]))
        story.append(Spacer(1, 12))

    story.append(Paragraph("Current Inventory Status", styles["Heading2"]))
    inventory_rows: List[List[Any]] = [
        ["Item Name", "Category", "SKU", "Qty", "Unit Price", "Total Value", "Status"]
    ]
    status_styles = []
    for row_index, product in enumerate(products, start=1):
        low = is_low_stock(product)
        inventory_rows.append(
            [
                product.name,
                product.category,
                product.sku,
                str(product.quantity),
                f"${product.price:.2f}",
                f"${product_value(product):.2f}",
                "LOW" if low else "OK",
            ]
        )
        status_styles.append(
            ("TEXTCOLOR", (6, row_index), (6, row_index), _LOW_RED if low else _OK_GREEN)
        )
        if low:
            status_styles.append(("FONTNAME", (6, row_index), (6, row_index), "Helvetica-Bold"))
    inventory_table = Table(inventory_rows, repeatRows=1)
    inventory_table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), _HEADER_BLUE),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
            ]
            + status_styles
        )
    )
    story.append(inventory_table)
    story.append(Spacer(1, 16))

    story.append(Paragraph("Recent Activity Log", styles["Heading2"]))
    activity_rows: List[List[Any]] = [["Date", "Item", "Action", "Change", "Notes"]]
    activity_rows.extend(
        _transaction_row(entry) for entry in list(transactions)[:PDF_TRANSACTION_LIMIT]
    )
    activity_table = Table(activity_rows, repeatRows=1)
    activity_table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), _HEADER_SLATE),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    story.append(activity_table)

    buffer = BytesIO()
    document = SimpleDocTemplate(buffer, pagesize=A4, title=f"{title} Report")
    document.build(story)
    return buffer.getvalue()


def _rows_to_xls(
    fieldnames: Sequence[str],
    rows: Iterable[Dict[str, Any]],
) -> bytes:
    workbook = xlwt.Workbook(encoding="utf-8")
    sheet = workbook.add_sheet("Activity")
    header_style = xlwt.easyxf("font: bold on; pattern: pattern solid, fore_colour gray25;")
    row_index = 0
    for col_index, field in enumerate(fieldnames):
        sheet.write(row_index, col_index, field, header_style)
    row_index += 1
    for row in rows:
        for col_index, field in enumerate(fieldnames):
            value = row.get(field, "")
            if value is None:
                value = ""
            sheet.write(row_index, col_index, value)
        row_index += 1
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def transactions_to_xls(transactions: Sequence[Transaction]) -> bytes:
    """The activity log as an ``.xls`` workbook, newest entry first."""

    rows = [
        dict(zip(TRANSACTION_EXPORT_HEADERS, _transaction_row(entry)))
        for entry in transactions
    ]
    return _rows_to_xls(TRANSACTION_EXPORT_HEADERS, rows)


def xls_filename(prefix: str, now: Optional[datetime] = None) -> str:
    timestamp = (now or _now()).strftime("%Y%m%d-%H%M%S")
    return f"{prefix}_{timestamp}.xls"


__all__ = [
    "build_inventory_pdf",
    "pdf_filename",
    "strip_report_markdown",
    "transactions_to_xls",
    "xls_filename",
]
