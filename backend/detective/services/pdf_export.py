"""PDF rendering of a crime report (fpdf2)."""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from detective.models.schemas import SUSPECT_ATTRIBUTES, CrimeReport, is_blank

logger = logging.getLogger(__name__)

TITLE = "Detective Desk - Crime Report"


def _latin1(text: str) -> str:
    # Core PDF fonts only cover latin-1
    return str(text).encode("latin-1", errors="replace").decode("latin-1")


def _report_rows(report: CrimeReport) -> List[Tuple[str, str]]:
    rows = [
        ("Crime type", report.crime_type),
        ("When", report.when_text),
        ("Occurred at", report.occurred_at),
        ("Location", report.location_text),
    ]
    if report.coordinates is not None:
        rows.append(("Coordinates", f"{report.coordinates.lat:.6f}, {report.coordinates.lng:.6f}"))
    rows += [
        ("Vehicles", ", ".join(report.vehicles)),
        ("Cameras", ", ".join(report.cameras)),
        ("Weapon", report.weapon),
        ("Injuries", report.injuries),
        ("Property damage", report.property_damage),
        ("Weather", report.weather),
        ("Evidence observations", report.evidence_observations),
    ]
    return [(label, value) for label, value in rows if not is_blank(value)]


class _ReportPDF(FPDF):
    def __init__(self, generated_at: datetime):
        super().__init__()
        self.generated_at = generated_at

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.cell(
            0, 10,
            f"Generated {self.generated_at.strftime('%Y-%m-%d %H:%M UTC')} - page {self.page_no()}",
            align="C",
        )


def render_report_pdf(report: CrimeReport, generated_at: Optional[datetime] = None) -> bytes:
    """Render every populated field of the report as a PDF document."""
    pdf = _ReportPDF(generated_at or datetime.now(timezone.utc))
    pdf.set_auto_page_break(auto=True, margin=20)
    pdf.add_page()

    def heading(text: str):
        pdf.ln(3)
        pdf.set_font("Helvetica", "B", 13)
        pdf.cell(0, 9, _latin1(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_font("Helvetica", "", 11)

    def paragraph(text: str, height: int = 7):
        pdf.multi_cell(0, height, _latin1(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, TITLE, align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_font("Helvetica", "", 12)
    pdf.cell(0, 8, _latin1(f"Case number: {report.case_number or 'Pending'}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    rows = _report_rows(report)
    heading("Incident")
    if rows:
        for label, value in rows:
            paragraph(f"{label}: {value}")
    else:
        paragraph("No details recorded yet.")

    suspect = [
        (attr.title(), getattr(report.suspect, attr))
        for attr in SUSPECT_ATTRIBUTES
        if not is_blank(getattr(report.suspect, attr))
    ]
    if suspect:
        heading("Suspect")
        for label, value in suspect:
            paragraph(f"{label}: {value}")

    if report.witnesses:
        heading("Witnesses")
        for i, witness in enumerate(report.witnesses, 1):
            paragraph(f"{i}. {witness}")

    if report.evidence:
        heading("Evidence")
        for i, attachment in enumerate(report.evidence, 1):
            pdf.set_text_color(0, 0, 200)
            pdf.multi_cell(0, 7, _latin1(f"{i}. {attachment.url}"), link=attachment.url,
                           new_x=XPos.LMARGIN, new_y=YPos.NEXT)
            pdf.set_text_color(0, 0, 0)

    if not is_blank(report.incident_description):
        heading("Incident description")
        paragraph(report.incident_description)

    logger.info(f"Rendered PDF for record {report.record_id or '(unsaved)'}")
    # fpdf2 returns a bytearray
    return bytes(pdf.output())
