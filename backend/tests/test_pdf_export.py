"""
Tests for PDF rendering of crime reports.
"""

from datetime import datetime, timezone

from detective.models.schemas import (
    Coordinates,
    CrimeReport,
    EvidenceAttachment,
    SuspectDetails,
    Witness,
)
from detective.services.pdf_export import _report_rows, render_report_pdf


def full_report() -> CrimeReport:
    return CrimeReport(
        record_id="rec1",
        case_number="CASE-0001",
        crime_type="Robbery",
        when_text="last night around 9",
        occurred_at="2024-05-04T21:00:00",
        location_text="100 Main St, San Antonio, TX",
        coordinates=Coordinates(lat=29.42, lng=-98.49),
        suspect=SuspectDetails(gender="male", clothing="black hoodie"),
        vehicles=["red sedan"],
        witnesses=[Witness(name="John", contact="555-1234")],
        evidence=[EvidenceAttachment(url="https://files.test/evidence/a.jpg")],
        incident_description="The reporter was approached and robbed at knifepoint.",
    )


class TestRenderReportPdf:
    def test_renders_pdf_bytes(self):
        pdf = render_report_pdf(full_report(), generated_at=datetime(2024, 5, 5, tzinfo=timezone.utc))
        assert isinstance(pdf, bytes)
        assert pdf.startswith(b"%PDF")

    def test_empty_report(self):
        assert render_report_pdf(CrimeReport()).startswith(b"%PDF")

    def test_non_latin_text_does_not_fail(self):
        report = CrimeReport(crime_type="Robo 🚗", incident_description="Él dijo “alto” 停")
        assert render_report_pdf(report).startswith(b"%PDF")

    def test_many_witnesses(self):
        report = CrimeReport(witnesses=[Witness(name=f"Witness {i}", contact=f"555-{i:04d}") for i in range(80)])
        assert render_report_pdf(report).startswith(b"%PDF")


class TestReportRows:
    def test_only_populated_rows(self):
        rows = dict(_report_rows(full_report()))
        assert rows["Crime type"] == "Robbery"
        assert rows["Coordinates"] == "29.420000, -98.490000"
        assert rows["Vehicles"] == "red sedan"
        assert "Weapon" not in rows
        assert "Cameras" not in rows
