# bioharvest/utils/pdf_generators/certificate_pdf.py
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

ACCENT = colors.HexColor("#667eea")
MUTED = colors.HexColor("#666666")
FAINT = colors.HexColor("#999999")
INK = colors.HexColor("#333333")
BACKGROUND = colors.HexColor("#f8f9fa")


@dataclass
class CertificateData:
    certificate_id: str
    student_name: str
    course_title: str
    instructor_name: str
    issued_at: datetime
    valid_for_months: int = 12


def render_certificate_pdf(data: CertificateData) -> bytes:
    """Render a single-page A4 landscape certificate and return the PDF bytes."""
    buffer = BytesIO()
    width, height = landscape(A4)
    pdf = canvas.Canvas(buffer, pagesize=(width, height))
    pdf.setTitle(f"Certificate {data.certificate_id}")
    pdf.setAuthor("BioHarvest")

    pdf.setFillColor(BACKGROUND)
    pdf.rect(0, 0, width, height, stroke=0, fill=1)

    pdf.setStrokeColor(ACCENT)
    pdf.setLineWidth(10)
    pdf.rect(20, 20, width - 40, height - 40, stroke=1, fill=0)

    center = width / 2

    def line(text: str, y: float, size: int, color, font: str = "Helvetica"):
        pdf.setFont(font, size)
        pdf.setFillColor(color)
        pdf.drawCentredString(center, y, text)

    line("CERTIFICATE OF COMPLETION", height - 110, 36, ACCENT, "Helvetica-Bold")
    line("This is to certify that", height - 170, 18, MUTED)
    line(data.student_name, height - 215, 32, INK, "Helvetica-Bold")
    line("has successfully completed the course", height - 260, 16, MUTED)
    line(data.course_title, height - 300, 24, ACCENT, "Helvetica-Bold")
    line(f"Instructor: {data.instructor_name or 'Course Instructor'}", height - 345, 14, MUTED)
    line(f"Certificate ID: {data.certificate_id}", height - 375, 12, FAINT)
    line(f"Date of Completion: {data.issued_at.strftime('%B %d, %Y')}", height - 400, 14, MUTED)
    line(f"Valid for {data.valid_for_months} months from date of issue", height - 425, 12, FAINT)

    # signature line
    pdf.setStrokeColor(INK)
    pdf.setLineWidth(1)
    pdf.line(center - 150, 100, center + 150, 100)
    line("Authorized Signature", 85, 12, MUTED)

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()
