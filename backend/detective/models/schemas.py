import re
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


NOT_AVAILABLE = "N/A"

SUSPECT_ATTRIBUTES = (
    "gender",
    "age",
    "hair",
    "clothing",
    "features",
    "height",
    "weight",
    "tattoos",
    "scars",
    "accent",
)

# "Name (contact)" - text before the parenthesized group is the name
_WITNESS_PATTERN = re.compile(r"^\s*(?P<name>[^()]*?)\s*(?:\((?P<contact>[^()]*)\))?\s*$")


def is_blank(value: Optional[str]) -> bool:
    """True for missing, empty, or not-available values."""
    if value is None:
        return True
    stripped = value.strip()
    return not stripped or stripped.upper() == NOT_AVAILABLE


def coerce_text(value: Any) -> Optional[str]:
    """Coerce a loosely typed scalar to text; anything unreadable is absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    return None


def coerce_text_list(value: Any) -> Optional[List[str]]:
    """Coerce a list-ish value to trimmed strings.

    Blank and "N/A" items are dropped; a list with nothing left is absent,
    since append-only lists are never cleared.
    """
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return None
    items = []
    for item in value:
        text = coerce_text(item)
        if not is_blank(text):
            items.append(text.strip())
    return items or None


class Coordinates(BaseModel):
    """Geocoded position of the incident."""
    lat: float = 0.0
    lng: float = 0.0

    @classmethod
    def from_value(cls, value: Any) -> Optional["Coordinates"]:
        """Build coordinates only from a complete {lat, lng} pair."""
        if isinstance(value, Coordinates):
            return value
        if not isinstance(value, dict):
            return None
        lat, lng = value.get("lat"), value.get("lng")
        if lat is None or lng is None or isinstance(lat, bool) or isinstance(lng, bool):
            return None
        try:
            return cls(lat=float(lat), lng=float(lng))
        except (TypeError, ValueError):
            return None


class SuspectDetails(BaseModel):
    """Physical description of the suspect. Every attribute is optional."""
    gender: Optional[str] = None
    age: Optional[str] = None
    hair: Optional[str] = None
    clothing: Optional[str] = None
    features: Optional[str] = None
    height: Optional[str] = None
    weight: Optional[str] = None
    tattoos: Optional[str] = None
    scars: Optional[str] = None
    accent: Optional[str] = None

    @field_validator(*SUSPECT_ATTRIBUTES, mode="before")
    @classmethod
    def _coerce_attribute(cls, v):
        return coerce_text(v)

    def is_empty(self) -> bool:
        return all(is_blank(getattr(self, attr)) for attr in SUSPECT_ATTRIBUTES)


class Witness(BaseModel):
    """A witness, identified by the exact (name, contact) pair."""
    name: str
    contact: str = ""

    @field_validator("name", "contact", mode="before")
    @classmethod
    def _strip(cls, v):
        text = coerce_text(v)
        return text.strip() if text else ""

    def key(self) -> Tuple[str, str]:
        return (self.name, self.contact)

    def __str__(self) -> str:
        return f"{self.name} ({self.contact})" if self.contact else self.name

    @classmethod
    def parse(cls, text: str) -> Optional["Witness"]:
        """Parse "Name (contact)" or "Name"; returns None for blank text."""
        if is_blank(text):
            return None
        match = _WITNESS_PATTERN.match(text)
        if not match:
            # Unbalanced or nested parentheses: keep the whole text as the name
            return cls(name=text.strip())
        name = (match.group("name") or "").strip()
        contact = (match.group("contact") or "").strip()
        if not name and not contact:
            return None
        return cls(name=name, contact=contact)

    @classmethod
    def from_value(cls, value: Any) -> Optional["Witness"]:
        if isinstance(value, Witness):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        if isinstance(value, dict):
            name = coerce_text(value.get("name")) or ""
            contact = coerce_text(value.get("contact")) or ""
            if not name.strip() and not contact.strip():
                return None
            return cls(name=name, contact=contact)
        return None


class EvidenceAttachment(BaseModel):
    """Reference to an uploaded evidence file.

    ``id`` is set once Airtable has stored the attachment; new files only
    carry a URL for Airtable to fetch.
    """
    url: str
    id: Optional[str] = None

    def to_field(self) -> Dict[str, str]:
        return {"id": self.id, "url": self.url} if self.id else {"url": self.url}


class CrimeReport(BaseModel):
    """The crime report aggregate, with structured members.

    ``None`` on a text member means nothing is known yet; delimited-text
    forms exist only at the storage boundary (see ``field_codec``).
    """
    record_id: Optional[str] = None
    case_number: Optional[str] = None

    crime_type: Optional[str] = None
    when_text: Optional[str] = None
    occurred_at: Optional[str] = None
    location_text: Optional[str] = None
    coordinates: Optional[Coordinates] = None

    suspect: SuspectDetails = Field(default_factory=SuspectDetails)
    vehicles: List[str] = []
    cameras: List[str] = []
    witnesses: List[Witness] = []

    weapon: Optional[str] = None
    injuries: Optional[str] = None
    property_damage: Optional[str] = None
    weather: Optional[str] = None
    evidence_observations: Optional[str] = None
    evidence: List[EvidenceAttachment] = []

    incident_description: Optional[str] = None
    conversation_log: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return not self.record_id


# Keys the assistant (or an API caller) may use, mapped to update members.
UPDATE_KEY_ALIASES: Dict[str, str] = {
    "crime_type": "crime_type",
    "crimeType": "crime_type",
    "datetime": "when_text",
    "when": "when_text",
    "when_text": "when_text",
    "whenText": "when_text",
    "occurred_at": "occurred_at",
    "occurredAt": "occurred_at",
    "location": "location_text",
    "location_text": "location_text",
    "locationText": "location_text",
    "coordinates": "coordinates",
    "suspect": "suspect",
    "vehicles": "vehicles",
    "cameras": "cameras",
    "witnesses": "witnesses",
    "weapon": "weapon",
    "injuries": "injuries",
    "property_damage": "property_damage",
    "propertyDamage": "property_damage",
    "weather": "weather",
    "evidence_observations": "evidence_observations",
    "evidenceObservations": "evidence_observations",
    "evidence": "evidence",
    "incident_description": "incident_description",
    "incidentDescription": "incident_description",
    "conversation_log": "conversation_log",
    "conversationLog": "conversation_log",
}

# Singular convenience keys folded into their list member.
SINGULAR_KEYS = {"vehicle": "vehicles", "camera": "cameras", "witness": "witnesses"}

UPDATE_TEXT_FIELDS = (
    "crime_type",
    "when_text",
    "location_text",
    "weapon",
    "injuries",
    "property_damage",
    "weather",
    "evidence_observations",
    "incident_description",
)


class CrimeReportUpdate(BaseModel):
    """A partial update: only the members the caller has new information about.

    ``None`` means "no new information". An explicit ``""`` or ``"N/A"`` on a
    text member means "clear this field". Validation never fails: malformed
    members are coerced or dropped, and unknown keys are kept in
    ``unknown_fields`` so callers can warn about them.
    """
    model_config = ConfigDict(extra="ignore")

    crime_type: Optional[str] = None
    when_text: Optional[str] = None
    occurred_at: Optional[str] = None
    location_text: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    suspect: Optional[SuspectDetails] = None
    vehicles: Optional[List[str]] = None
    cameras: Optional[List[str]] = None
    witnesses: Optional[List[Witness]] = None
    weapon: Optional[str] = None
    injuries: Optional[str] = None
    property_damage: Optional[str] = None
    weather: Optional[str] = None
    evidence_observations: Optional[str] = None
    evidence: Optional[List[EvidenceAttachment]] = None
    incident_description: Optional[str] = None
    conversation_log: Optional[str] = None

    unknown_fields: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _normalize_keys(cls, data: Any) -> Dict[str, Any]:
        if isinstance(data, CrimeReportUpdate):
            return data.model_dump(exclude_none=True) | {"unknown_fields": dict(data.unknown_fields)}
        if not isinstance(data, dict):
            return {}

        normalized: Dict[str, Any] = {}
        carried = data.get("unknown_fields")
        unknown: Dict[str, Any] = dict(carried) if isinstance(carried, dict) else {}
        singulars: Dict[str, Any] = {}

        for key, value in data.items():
            if key == "unknown_fields":
                continue
            if key in SINGULAR_KEYS:
                singulars[SINGULAR_KEYS[key]] = value
            elif key in UPDATE_KEY_ALIASES:
                target = UPDATE_KEY_ALIASES[key]
                # First spelling wins when two aliases collide
                normalized.setdefault(target, value)
            else:
                unknown[key] = value

        for target, value in singulars.items():
            if value is None:
                continue
            existing = normalized.get(target)
            if isinstance(existing, list):
                normalized[target] = [*existing, value]
            elif existing is None:
                normalized[target] = [value]
            else:
                normalized[target] = [existing, value]

        normalized["unknown_fields"] = unknown
        return normalized

    @field_validator(*UPDATE_TEXT_FIELDS, "occurred_at", "conversation_log", mode="before")
    @classmethod
    def _coerce_scalar(cls, v):
        return coerce_text(v)

    @field_validator("vehicles", "cameras", mode="before")
    @classmethod
    def _coerce_list(cls, v):
        return coerce_text_list(v)

    @field_validator("coordinates", mode="before")
    @classmethod
    def _coerce_coordinates(cls, v):
        return Coordinates.from_value(v)

    @field_validator("suspect", mode="before")
    @classmethod
    def _coerce_suspect(cls, v):
        if isinstance(v, SuspectDetails):
            return v
        if isinstance(v, dict):
            return {attr: v.get(attr) for attr in SUSPECT_ATTRIBUTES if attr in v}
        if isinstance(v, str) and v.strip():
            return {"features": v}
        return None

    @field_validator("witnesses", mode="before")
    @classmethod
    def _coerce_witnesses(cls, v):
        if v is None:
            return None
        if isinstance(v, (str, dict)):
            v = v.split(";") if isinstance(v, str) else [v]
        if not isinstance(v, (list, tuple)):
            return None
        witnesses = []
        for item in v:
            witness = Witness.from_value(item)
            if witness is not None:
                witnesses.append(witness)
        return witnesses

    @field_validator("evidence", mode="before")
    @classmethod
    def _coerce_evidence(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple)):
            return None
        attachments = []
        for item in v:
            url = item.get("url") if isinstance(item, dict) else item
            url = coerce_text(url)
            if not is_blank(url):
                attachments.append({"url": url.strip()})
        return attachments or None

    def updated_fields(self) -> Dict[str, Any]:
        """Members carrying information, for echoing back to the assistant."""
        return self.model_dump(exclude_none=True)

    def is_empty(self) -> bool:
        return not self.updated_fields()


# ── API request/response models ──────────────────────────


class LocationCandidate(BaseModel):
    """One geocoding match."""
    model_config = ConfigDict(populate_by_name=True)

    formatted_address: str = Field(alias="formattedAddress")
    lat: float
    lng: float


class ConversationCreated(BaseModel):
    conversation_id: str
    greeting: str


class ChatMessageRequest(BaseModel):
    content: str = Field(..., max_length=10000)


class ChatMessageResponse(BaseModel):
    conversation_id: str
    reply: str
    report: Dict[str, Any]
    function_results: List[Dict[str, Any]] = []


class TranslateRequest(BaseModel):
    text: str
    target_language: str = "en"


class TranslateResponse(BaseModel):
    success: bool
    translation: str
    source_language: Optional[str] = None


class MergeRequest(BaseModel):
    existing: Dict[str, Any] = Field(default_factory=dict)
    update: Dict[str, Any] = Field(default_factory=dict)


class EvidenceUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    file_urls: List[str] = Field(default_factory=list, alias="fileUrls")
    observations: List[str] = []
    report_update: Optional[Dict[str, Any]] = Field(default=None, alias="reportUpdate")


class SketchRequest(BaseModel):
    gender: Optional[str] = None
    age: Optional[str] = None
    hair: Optional[str] = None
    clothing: Optional[str] = None
    features: Optional[str] = None
    refinements: Optional[str] = None


class SketchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    suspect_sketch_url: Optional[str] = Field(default=None, alias="suspectSketchUrl")
    message: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str = "1.0.0"
    services: Dict[str, bool] = {}
