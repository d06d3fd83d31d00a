"""
Monthly Sales Report PDF Generator

Printable monthly sales report using ReportLab.
"""

from datetime import datetime, timezone
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    HRFlowable,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

# Color scheme (matching app design)
PRIMARY_COLOR = colors.HexColor("#c45d35")  # Warm terracotta
DARK_COLOR = colors.HexColor("#1f2937")  # Dark gray
MUTED_COLOR = colors.HexColor("#6b7280")  # Muted gray
BORDER_COLOR = colors.HexColor("#e5e7eb")  # Light border
SUCCESS_COLOR = colors.HexColor("#059669")  # Green for totals

COLUMN_WIDTHS = [22*mm, 40*mm, 28*mm, 50*mm, 30*mm]


def _money(cents: int, currency: str) -> str:
    return f"{currency}{cents / 100:,.2f}"


def generate_monthly_sales_pdf(
    report: dict,
    company_name: str = "Bites & Co",
    currency: str = "Rs. ",
) -> BytesIO:
    """
    Render the monthly sales report.

    Args:
        report: output of `sales_service.monthly_report` (month, rows, totals)
        company_name: restaurant name for the header
        currency: symbol printed before amounts

    Returns:
        BytesIO buffer containing the PDF
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=20*mm,
        leftMargin=20*mm,
        topMargin=20*mm,
        bottomMargin=20*mm,
        title=f"Sales report {report['month']}",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'ReportTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=PRIMARY_COLOR,
        alignment=TA_RIGHT,
    )
    company_style = ParagraphStyle(
        'Company',
        parent=styles['Normal'],
        fontSize=14,
        textColor=DARK_COLOR,
        fontName='Helvetica-Bold',
    )
    subtitle_style = ParagraphStyle(
        'Subtitle',
        parent=styles['Normal'],
        fontSize=11,
        textColor=MUTED_COLOR,
        alignment=TA_RIGHT,
    )
    cell_style = ParagraphStyle(
        'Cell',
        parent=styles['Normal'],
        fontSize=9,
        textColor=DARK_COLOR,
        leading=12,
    )
    totals_style = ParagraphStyle(
        'Totals',
        parent=styles['Normal'],
        fontSize=10,
        textColor=DARK_COLOR,
        alignment=TA_RIGHT,
    )
    total_bold_style = ParagraphStyle(
        'TotalBold',
        parent=styles['Normal'],
        fontSize=12,
        textColor=SUCCESS_COLOR,
        fontName='Helvetica-Bold',
        alignment=TA_RIGHT,
    )
    footer_style = ParagraphStyle(
        'Footer',
        parent=styles['Normal'],
        fontSize=8,
        textColor=MUTED_COLOR,
        alignment=TA_CENTER,
    )

    month_label = datetime.strptime(report["month"], "%Y-%m").strftime("%B %Y")
    story = []

    # ===== HEADER =====
    header_table = Table(
        [
            [Paragraph(escape(company_name), company_style), Paragraph("SALES REPORT", title_style)],
            ["", Paragraph(month_label, subtitle_style)],
        ],
        colWidths=[90*mm, 80*mm],
    )
    header_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
    ]))
    story.append(header_table)
    story.append(Spacer(1, 8*mm))
    story.append(HRFlowable(width="100%", thickness=1, color=BORDER_COLOR))
    story.append(Spacer(1, 5*mm))

    # ===== ORDERS TABLE =====
    table_data = [[
        Paragraph("<b>Order</b>", cell_style),
        Paragraph("<b>Date</b>", cell_style),
        Paragraph("<b>Items sold</b>", cell_style),
        Paragraph("<b>Top item</b>", cell_style),
        Paragraph("<b>Amount</b>", cell_style),
    ]]
    for row in report["rows"]:
        created = datetime.fromisoformat(row["createdAt"])
        table_data.append([
            Paragraph(f"#{row['orderId']}", cell_style),
            Paragraph(created.strftime("%d %b %Y %H:%M"), cell_style),
            Paragraph(str(row["totalItemsSold"]), cell_style),
            Paragraph(f"{escape(row['topItemName'])} ({row['topItemCount']})", cell_style),
            Paragraph(_money(row["totalAmount_cents"], currency), cell_style),
        ])

    if not report["rows"]:
        table_data.append(["-", Paragraph("No sales recorded this month", cell_style), "-", "-", "-"])

    orders_table = Table(table_data, colWidths=COLUMN_WIDTHS, repeatRows=1)
    orders_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor("#f9fafb")),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('TOPPADDING', (0, 0), (-1, 0), 8),
        ('TOPPADDING', (0, 1), (-1, -1), 5),
        ('BOTTOMPADDING', (0, 1), (-1, -1), 5),
        ('ALIGN', (2, 0), (2, -1), 'RIGHT'),
        ('ALIGN', (4, 0), (4, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('LINEBELOW', (0, 0), (-1, 0), 1, BORDER_COLOR),
        ('LINEBELOW', (0, 1), (-1, -1), 0.5, BORDER_COLOR),
        *[('BACKGROUND', (0, i), (-1, i), colors.HexColor("#f9fafb"))
          for i in range(2, len(table_data), 2)],
    ]))
    story.append(orders_table)

    # ===== TOTALS =====
    story.append(Spacer(1, 5*mm))
    totals = report["totals"]
    totals_table = Table(
        [
            ["", "", "", Paragraph("Orders:", totals_style), Paragraph(str(totals["orders"]), totals_style)],
            ["", "", "", Paragraph("Items sold:", totals_style), Paragraph(str(totals["itemsSold"]), totals_style)],
            ["", "", "", Paragraph("<b>TOTAL:</b>", totals_style),
             Paragraph(_money(totals["sales_cents"], currency), total_bold_style)],
        ],
        colWidths=COLUMN_WIDTHS,
    )
    totals_table.setStyle(TableStyle([
        ('ALIGN', (3, 0), (-1, -1), 'RIGHT'),
        ('TOPPADDING', (0, 0), (-1, -1), 3),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
    ]))
    story.append(totals_table)

    # ===== FOOTER =====
    story.append(Spacer(1, 15*mm))
    story.append(HRFlowable(width="100%", thickness=0.5, color=BORDER_COLOR))
    story.append(Spacer(1, 3*mm))
    generated_at = datetime.now(timezone.utc).strftime('%B %d, %Y at %I:%M %p UTC')
    story.append(Paragraph(f"Generated on {generated_at}", footer_style))

    doc.build(story)
    buffer.seek(0)
    return buffer
