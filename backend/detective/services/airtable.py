"""
Airtable storage adapter.

Each crime report is one row in the reports table. The row uses human
readable column titles; this module maps them to and from the flat field
names used by the merge engine.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from detective.config import settings
from detective.models.schemas import NOT_AVAILABLE, SUSPECT_ATTRIBUTES, coerce_text

logger = logging.getLogger(__name__)


COLUMN_NAMES: Dict[str, str] = {
    "crimeType": "Crime Type",
    "whenText": "Datetime",
    "occurredAt": "Occurred At",
    "locationText": "Location",
    "vehicles": "Vehicles",
    "cameras": "Cameras",
    "witnesses": "Witnesses",
    "weapon": "Weapon",
    "injuries": "Injuries",
    "propertyDamage": "Property Damage",
    "weather": "Weather",
    "evidenceObservations": "Evidence Observations",
    "evidence": "Evidence",
    "incidentDescription": "Incident Description",
    "conversationLog": "Conversation Log",
}
SUSPECT_COLUMNS: Dict[str, str] = {attr: f"Suspect {attr.title()}" for attr in SUSPECT_ATTRIBUTES}
LATITUDE_COLUMN = "Latitude"
LONGITUDE_COLUMN = "Longitude"
CASE_NUMBER_COLUMN = "Case Number"


class StorageError(Exception):
    """Raised when the storage backend rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """Network errors, rate limits and 5xx may succeed on a later attempt."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


@dataclass
class AirtableRecord:
    """A stored report row, with fields in flat form."""
    record_id: str
    case_number: str = NOT_AVAILABLE
    fields: Dict[str, Any] = field(default_factory=dict)


def _attachment_column(item: Any) -> Dict[str, Any]:
    # Stored attachments are kept by id; their CDN urls expire
    if isinstance(item, dict) and item.get("id"):
        return {"id": item["id"]}
    if isinstance(item, dict):
        return {"url": item.get("url")}
    return {"url": item}


def fields_to_columns(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Flat report fields -> Airtable columns. The case number is never written."""
    columns: Dict[str, Any] = {}
    for flat_name, column in COLUMN_NAMES.items():
        if flat_name in fields:
            columns[column] = fields[flat_name]

    if isinstance(fields.get("evidence"), list):
        columns[COLUMN_NAMES["evidence"]] = [_attachment_column(item) for item in fields["evidence"]]

    coordinates = fields.get("coordinates")
    if isinstance(coordinates, dict):
        columns[LATITUDE_COLUMN] = coordinates.get("lat", 0)
        columns[LONGITUDE_COLUMN] = coordinates.get("lng", 0)

    suspect = fields.get("suspect")
    if isinstance(suspect, dict):
        for attr, column in SUSPECT_COLUMNS.items():
            columns[column] = suspect.get(attr, NOT_AVAILABLE)
    return columns


def columns_to_fields(columns: Dict[str, Any]) -> Dict[str, Any]:
    """Airtable columns -> flat report fields. Missing columns stay missing."""
    fields: Dict[str, Any] = {}
    for flat_name, column in COLUMN_NAMES.items():
        if column in columns:
            fields[flat_name] = columns[column]

    if LATITUDE_COLUMN in columns and LONGITUDE_COLUMN in columns:
        fields["coordinates"] = {"lat": columns[LATITUDE_COLUMN], "lng": columns[LONGITUDE_COLUMN]}

    suspect = {attr: columns[column] for attr, column in SUSPECT_COLUMNS.items() if column in columns}
    if suspect:
        fields["suspect"] = suspect

    if CASE_NUMBER_COLUMN in columns:
        fields["caseNumber"] = coerce_text(columns[CASE_NUMBER_COLUMN]) or NOT_AVAILABLE
    return fields


class AirtableClient:
    """Create, read and update report rows through the Airtable REST API."""

    def __init__(
        self,
        base_id: Optional[str] = None,
        access_token: Optional[str] = None,
        table_name: Optional[str] = None,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ):
        self.base_id = base_id if base_id is not None else settings.airtable_base_id
        self.access_token = access_token if access_token is not None else settings.airtable_access_token
        self.table_name = table_name or settings.airtable_table_name
        self.api_url = (api_url or settings.airtable_api_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout
        if not self.is_configured:
            logger.warning("Airtable credentials not set, reports will not be persisted")

    @property
    def is_configured(self) -> bool:
        return bool(self.base_id and self.access_token)

    def _table_url(self, record_id: Optional[str] = None) -> str:
        url = f"{self.api_url}/{self.base_id}/{self.table_name}"
        return f"{url}/{record_id}" if record_id else url

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, url: str, payload: Optional[dict] = None) -> dict:
        if not self.is_configured:
            raise StorageError("Airtable is not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=payload, headers=self._headers())
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"Airtable {method} {url} failed: {status_code} {e.response.text[:200]}")
            raise StorageError(
                f"Airtable {method} failed with status {status_code}", status_code=status_code
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Airtable {method} {url} failed: {e}")
            raise StorageError(f"Airtable {method} failed: {e}") from e

    @staticmethod
    def _to_record(payload: dict) -> AirtableRecord:
        record_id = payload.get("id")
        if not record_id:
            raise StorageError("Airtable response did not include a record id")
        fields = columns_to_fields(payload.get("fields") or {})
        return AirtableRecord(
            record_id=record_id,
            case_number=fields.get("caseNumber", NOT_AVAILABLE),
            fields=fields,
        )

    async def create_record(self, fields: Dict[str, Any]) -> AirtableRecord:
        """Create a new report row."""
        data = await self._request(
            "POST",
            self._table_url(),
            {"records": [{"fields": fields_to_columns(fields)}], "typecast": True},
        )
        records = data.get("records") or []
        if not records:
            raise StorageError("Airtable create returned no records")
        record = self._to_record(records[0])
        logger.info(f"Created Airtable record {record.record_id} (case {record.case_number})")
        return record

    async def update_record(self, record_id: str, fields: Dict[str, Any]) -> AirtableRecord:
        """Overwrite the given columns of an existing row."""
        data = await self._request(
            "PATCH",
            self._table_url(record_id),
            {"fields": fields_to_columns(fields), "typecast": True},
        )
        record = self._to_record(data)
        logger.info(f"Updated Airtable record {record.record_id} (case {record.case_number})")
        return record

    async def get_record(self, record_id: str) -> AirtableRecord:
        """Read the latest stored state of a row."""
        return self._to_record(await self._request("GET", self._table_url(record_id)))


# Global instance
airtable_client = AirtableClient()
