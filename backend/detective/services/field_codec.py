"""
Flat field codec for crime reports.

Reports are structured in memory (lists of vehicles, witness objects, ...).
The storage backend keeps one flat row per report, so lists and witnesses
are written as delimited text and parsed back on read. All conversion
between the two shapes lives here.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from detective.models.schemas import (
    NOT_AVAILABLE,
    SUSPECT_ATTRIBUTES,
    Coordinates,
    CrimeReport,
    EvidenceAttachment,
    SuspectDetails,
    Witness,
    coerce_text,
    is_blank,
)

logger = logging.getLogger(__name__)

LIST_SEPARATOR = ", "
WITNESS_SEPARATOR = "; "

# Flat field name -> CrimeReport attribute, for plain text members
TEXT_FIELDS: Dict[str, str] = {
    "crimeType": "crime_type",
    "whenText": "when_text",
    "occurredAt": "occurred_at",
    "locationText": "location_text",
    "weapon": "weapon",
    "injuries": "injuries",
    "propertyDamage": "property_damage",
    "weather": "weather",
    "evidenceObservations": "evidence_observations",
    "incidentDescription": "incident_description",
    "conversationLog": "conversation_log",
}

FLAT_FIELDS = (
    *TEXT_FIELDS.keys(),
    "coordinates",
    "suspect",
    "vehicles",
    "cameras",
    "witnesses",
    "evidence",
    "caseNumber",
)

# Legacy single-column suspect summary: "Gender: male, Age: 30s, ..."
_SUSPECT_SUMMARY_PATTERN = re.compile(r"(\w+)\s*:\s*([^,]*)")


def parse_delimited_list(value: Any) -> List[str]:
    """Split comma-joined text into trimmed items; lists pass through cleaned."""
    if isinstance(value, str):
        raw: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple)):
        raw = value
    else:
        return []

    items = []
    for item in raw:
        text = coerce_text(item)
        if text is None or is_blank(text):
            continue
        items.append(text.strip())
    return items


def join_delimited_list(items: Iterable[str]) -> str:
    items = [item for item in items if not is_blank(item)]
    return LIST_SEPARATOR.join(items) if items else NOT_AVAILABLE


def parse_witnesses(value: Any) -> List[Witness]:
    """Parse "Name (contact); Name2" text, or a list of witness-like items."""
    if isinstance(value, str):
        raw: Iterable[Any] = value.split(";")
    elif isinstance(value, (list, tuple)):
        raw = value
    else:
        return []

    witnesses = []
    for item in raw:
        witness = Witness.from_value(item)
        if witness is not None:
            witnesses.append(witness)
    return witnesses


def format_witnesses(witnesses: Iterable[Witness]) -> str:
    parts = [str(w) for w in witnesses if str(w)]
    return WITNESS_SEPARATOR.join(parts) if parts else NOT_AVAILABLE


def coerce_evidence(value: Any) -> List[EvidenceAttachment]:
    """Stored evidence must already be list-shaped; anything else reads as empty."""
    if not isinstance(value, (list, tuple)):
        return []
    attachments = []
    for item in value:
        url = item.get("url") if isinstance(item, dict) else item
        url = coerce_text(url)
        if url and url.strip():
            attachment_id = coerce_text(item.get("id")) if isinstance(item, dict) else None
            attachments.append(EvidenceAttachment(url=url.strip(), id=attachment_id or None))
    return attachments


def parse_suspect(value: Any) -> SuspectDetails:
    if isinstance(value, SuspectDetails):
        return value
    if isinstance(value, dict):
        attrs = {}
        for attr in SUSPECT_ATTRIBUTES:
            text = coerce_text(value.get(attr))
            attrs[attr] = None if is_blank(text) else text
        return SuspectDetails(**attrs)
    if isinstance(value, str) and not is_blank(value):
        attrs = {}
        for key, text in _SUSPECT_SUMMARY_PATTERN.findall(value):
            key = key.lower()
            if key in SUSPECT_ATTRIBUTES and not is_blank(text):
                attrs[key] = text.strip()
        return SuspectDetails(**attrs)
    return SuspectDetails()


def report_from_fields(
    fields: Optional[Mapping[str, Any]],
    record_id: Optional[str] = None,
) -> CrimeReport:
    """Read a flat row into a structured report, tolerating malformed values."""
    if not isinstance(fields, Mapping):
        fields = {}

    values: Dict[str, Any] = {"record_id": record_id}
    for flat_name, attr in TEXT_FIELDS.items():
        text = coerce_text(fields.get(flat_name))
        values[attr] = None if is_blank(text) else text

    case_number = coerce_text(fields.get("caseNumber"))
    values["case_number"] = None if is_blank(case_number) else case_number
    values["coordinates"] = Coordinates.from_value(fields.get("coordinates"))
    values["suspect"] = parse_suspect(fields.get("suspect"))
    values["vehicles"] = parse_delimited_list(fields.get("vehicles"))
    values["cameras"] = parse_delimited_list(fields.get("cameras"))
    values["witnesses"] = parse_witnesses(fields.get("witnesses"))
    values["evidence"] = coerce_evidence(fields.get("evidence"))
    return CrimeReport(**values)


def report_to_fields(report: CrimeReport) -> Dict[str, Any]:
    """Write a structured report as a fully populated flat row."""
    fields: Dict[str, Any] = {}
    for flat_name, attr in TEXT_FIELDS.items():
        value = getattr(report, attr)
        fields[flat_name] = NOT_AVAILABLE if is_blank(value) else value

    coordinates = report.coordinates or Coordinates()
    fields["coordinates"] = {"lat": coordinates.lat, "lng": coordinates.lng}
    fields["suspect"] = {
        attr: NOT_AVAILABLE if is_blank(getattr(report.suspect, attr)) else getattr(report.suspect, attr)
        for attr in SUSPECT_ATTRIBUTES
    }
    fields["vehicles"] = join_delimited_list(report.vehicles)
    fields["cameras"] = join_delimited_list(report.cameras)
    fields["witnesses"] = format_witnesses(report.witnesses)
    fields["evidence"] = [e.to_field() for e in report.evidence]
    fields["caseNumber"] = report.case_number or NOT_AVAILABLE
    return fields
