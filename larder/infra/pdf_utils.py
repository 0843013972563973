import io
from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet

from larder.domain.Freshness import Freshness

FRESHNESS_LABELS = {
    Freshness.Fresh: "Fresh",
    Freshness.ExpiringToday: "Expiring within 24h",
    Freshness.Expired: "Expired",
}


def generate_pdf_for_overview(overview):
    """Generate a simple PDF table: Freshness / Batches / Portions for the provided overview."""
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        rightMargin=20, leftMargin=20, topMargin=20, bottomMargin=20
    )

    styles = getSampleStyleSheet()
    elements = [
        Paragraph("Inventory Overview by Freshness", styles["Title"]),
        Paragraph(f"Generated at {overview.generated_at.strftime('%Y-%m-%d %H:%M UTC')}", styles["Normal"]),
        Spacer(1, 16),
    ]

    data = [["Freshness", "Batches", "Portions"]]
    for f in Freshness:
        data.append([FRESHNESS_LABELS[f], str(overview.batches[f]), str(overview.portions[f])])
    data.append(["Total", str(overview.total_batches), str(overview.total_portions)])

    table = Table(data, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0,0), (-1,0), colors.HexColor("#4CAF50")),
        ("TEXTCOLOR", (0,0), (-1,0), colors.whitesmoke),
        ("ALIGN", (0,0), (-1,-1), "CENTER"),
        ("FONTNAME", (0,0), (-1,0), "Helvetica-Bold"),
        ("FONTNAME", (0,-1), (-1,-1), "Helvetica-Bold"),
        ("FONTSIZE", (0,0), (-1,0), 12),
        ("BOTTOMPADDING", (0,0), (-1,0), 10),
        ("GRID", (0,0), (-1,-1), 0.5, colors.grey),
    ]))

    elements.append(table)
    doc.build(elements)
    return buf.getvalue()
