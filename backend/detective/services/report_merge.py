"""
Record merge engine.

Combines a previously stored crime report with a partial update from the
assistant without losing data. Every report member has a reconciliation
policy; the engine is pure, deterministic and never raises on malformed
input.
"""
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from detective.models.schemas import (
    SUSPECT_ATTRIBUTES,
    Coordinates,
    CrimeReport,
    CrimeReportUpdate,
    EvidenceAttachment,
    SuspectDetails,
    Witness,
    is_blank,
)
from detective.services.field_codec import report_from_fields, report_to_fields

logger = logging.getLogger(__name__)


class MergePolicy(str, Enum):
    """How a field reconciles an incoming value with the stored one."""
    TEXT = "text"                # append on conflict, explicit clear allowed
    SUSPECT = "suspect"          # TEXT applied per attribute
    LIST = "list"                # ordered union, exact-string dedupe
    WITNESSES = "witnesses"      # append new (name, contact) pairs
    EVIDENCE = "evidence"        # append-only, no dedupe
    COORDINATES = "coordinates"  # replace only with a complete pair
    LOG = "log"                  # append-only text
    REPLACE = "replace"          # latest non-empty value wins


FIELD_POLICIES: Dict[str, MergePolicy] = {
    "crime_type": MergePolicy.TEXT,
    "when_text": MergePolicy.TEXT,
    "location_text": MergePolicy.TEXT,
    "weapon": MergePolicy.TEXT,
    "injuries": MergePolicy.TEXT,
    "property_damage": MergePolicy.TEXT,
    "weather": MergePolicy.TEXT,
    "evidence_observations": MergePolicy.TEXT,
    "suspect": MergePolicy.SUSPECT,
    "vehicles": MergePolicy.LIST,
    "cameras": MergePolicy.LIST,
    "witnesses": MergePolicy.WITNESSES,
    "evidence": MergePolicy.EVIDENCE,
    "coordinates": MergePolicy.COORDINATES,
    "conversation_log": MergePolicy.LOG,
    "occurred_at": MergePolicy.REPLACE,
    "incident_description": MergePolicy.REPLACE,
}


def merge_text(existing: Optional[str], new: Optional[str]) -> Optional[str]:
    """Scalar text policy. Returns ``None`` for "not available"."""
    if new is None:
        return existing
    if is_blank(new):
        return None
    new = new.strip()
    if is_blank(existing):
        return new
    if new in existing:
        return existing
    return f"{existing}\n{new}"


def merge_suspect(existing: SuspectDetails, new: Optional[SuspectDetails]) -> SuspectDetails:
    if new is None:
        return existing
    return SuspectDetails(**{
        attr: merge_text(getattr(existing, attr), getattr(new, attr))
        for attr in SUSPECT_ATTRIBUTES
    })


def merge_list(existing: List[str], new: Optional[Iterable[str]]) -> List[str]:
    merged: List[str] = []
    for item in [*existing, *(new or [])]:
        if item not in merged:
            merged.append(item)
    return merged


def merge_witnesses(existing: List[Witness], new: Optional[Iterable[Witness]]) -> List[Witness]:
    merged = list(existing)
    seen = {w.key() for w in merged}
    for witness in new or []:
        if witness.key() not in seen:
            merged.append(witness)
            seen.add(witness.key())
    return merged


def merge_evidence(
    existing: List[EvidenceAttachment],
    new: Optional[Iterable[EvidenceAttachment]],
) -> List[EvidenceAttachment]:
    return [*existing, *(new or [])]


def merge_coordinates(existing: Optional[Coordinates], new: Optional[Coordinates]) -> Optional[Coordinates]:
    return new if new is not None else existing


def merge_log(existing: Optional[str], new: Optional[str]) -> Optional[str]:
    parts = [part.strip() for part in (existing, new) if not is_blank(part)]
    return "\n".join(parts) if parts else None


def merge_replace(existing: Optional[str], new: Optional[str]) -> Optional[str]:
    return existing if is_blank(new) else new


_MERGERS = {
    MergePolicy.TEXT: merge_text,
    MergePolicy.SUSPECT: merge_suspect,
    MergePolicy.LIST: merge_list,
    MergePolicy.WITNESSES: merge_witnesses,
    MergePolicy.EVIDENCE: merge_evidence,
    MergePolicy.COORDINATES: merge_coordinates,
    MergePolicy.LOG: merge_log,
    MergePolicy.REPLACE: merge_replace,
}


def _as_update(update: Any) -> CrimeReportUpdate:
    if isinstance(update, CrimeReportUpdate):
        return update
    return CrimeReportUpdate.model_validate(update if isinstance(update, Mapping) else {})


def merge_report(existing: CrimeReport, update: Any) -> CrimeReport:
    """Apply a partial update to a structured report and return the new report.

    ``existing`` is left untouched. Record id and case number always come from
    ``existing``; they are never taken from an update.
    """
    update = _as_update(update)
    if update.unknown_fields:
        logger.warning(
            f"Ignoring unknown crime report fields: {', '.join(sorted(update.unknown_fields))}"
        )

    merged = existing.model_copy(deep=True)
    for field_name, policy in FIELD_POLICIES.items():
        current = getattr(merged, field_name)
        incoming = getattr(update, field_name)
        setattr(merged, field_name, _MERGERS[policy](current, incoming))
    return merged


def merge_fields(existing: Any, update: Any) -> Dict[str, Any]:
    """Merge a partial update into a stored flat row.

    Args:
        existing: Flat stored fields (``crimeType``, ``vehicles: "a, b"``,
            ``witnesses: "Name (contact)"``, ``evidence: [{url}]``, ...).
            Missing keys mean "not previously known".
        update: Raw partial update as produced by the assistant.

    Returns:
        The fully populated flat row to persist.
    """
    current = report_from_fields(existing if isinstance(existing, Mapping) else {})
    return report_to_fields(merge_report(current, update))
