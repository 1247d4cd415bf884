"""
Execution of the assistant's report functions.

Every update is normalized (translation, location verification, date and
weather), merged with the latest stored copy of the report and written
back. Updates that cannot be saved stay pending and are re-applied on the
next successful save.
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from detective.agents.prompts import SUMMARY_PROMPT
from detective.config import settings
from detective.models.schemas import Coordinates, CrimeReport, CrimeReportUpdate, is_blank
from detective.services.airtable import AirtableClient, StorageError, airtable_client
from detective.services.date_normalizer import DateNormalizer, date_normalizer, parse_iso
from detective.services.field_codec import report_from_fields, report_to_fields
from detective.services.geocoding import GeocodingService, VerificationStatus, geocoding_service
from detective.services.report_merge import merge_report
from detective.services.session_store import SessionStore, get_session_store
from detective.services.translation_service import TranslationService, translation_service
from detective.services.weather import WeatherService, weather_service

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Something went wrong saving your report. Please try again."
UPDATE_REJECTED_MESSAGE = "The report system rejected this update, so it was not saved. Do not resend it unchanged."
NO_MATCHING_FUNCTION = "No matching function found."
MAX_PENDING_UPDATES = 20


class IncidentSummarizer:
    """Drafts incident descriptions with Gemini."""

    def __init__(self):
        self.client = genai.Client(api_key=settings.google_api_key) if settings.google_api_key else None

    async def summarize(self, raw_description: str) -> Optional[str]:
        if not self.client:
            return None
        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=settings.gemini_model,
                contents=SUMMARY_PROMPT.format(raw_description=raw_description),
                config=types.GenerateContentConfig(temperature=0.2, max_output_tokens=800),
            )
        except Exception as e:
            logger.error(f"Incident summary failed: {e}")
            return None
        return (response.text or "").strip() or None


class ReportToolHandler:
    """Runs report function calls for one conversation."""

    def __init__(
        self,
        conversation_id: str,
        store: Optional[SessionStore] = None,
        storage: Optional[AirtableClient] = None,
        translator: Optional[TranslationService] = None,
        geocoder: Optional[GeocodingService] = None,
        dates: Optional[DateNormalizer] = None,
        weather: Optional[WeatherService] = None,
        summarizer: Optional[IncidentSummarizer] = None,
    ):
        self.conversation_id = conversation_id
        self.store = store or get_session_store()
        self.storage = storage or airtable_client
        self.translator = translator or translation_service
        self.geocoder = geocoder or geocoding_service
        self.dates = dates or date_normalizer
        self.weather = weather or weather_service
        self.summarizer = summarizer or IncidentSummarizer()

        self.report: Optional[CrimeReport] = None
        self.pending_updates: List[CrimeReportUpdate] = []
        self.pending_log: List[str] = []

    def _log_structured(self, event: str, **kwargs):
        entry = {"event": event, "conversation_id": self.conversation_id, **kwargs}
        logger.info(json.dumps(entry, default=str))

    async def dispatch(self, name: str, args: Any) -> Dict[str, Any]:
        """Run a function call by name."""
        handlers = {
            "update_crime_report": self.update_crime_report,
            "summarize_incident_description": self.summarize_incident_description,
            "approve_incident_description": self.approve_incident_description,
        }
        handler = handlers.get(name)
        if handler is None:
            logger.warning(f"Unknown function call '{name}' in conversation {self.conversation_id}")
            return {"success": False, "message": NO_MATCHING_FUNCTION}
        return await handler(args)

    @staticmethod
    def _decode_args(args: Any) -> Optional[Dict[str, Any]]:
        """Function arguments arrive as a JSON string or a mapping. None if undecodable."""
        if isinstance(args, (str, bytes)):
            try:
                args = json.loads(args or "{}")
            except (json.JSONDecodeError, UnicodeDecodeError):
                return None
        if args is None:
            return {}
        if not isinstance(args, dict):
            return {}
        return args

    def queue_log(self, line: str):
        """Queue a conversation log line; it is written with the next save."""
        if line and line.strip():
            self.pending_log.append(line.strip())

    def withdraw_log(self, line: str):
        """Take back a queued line that has not been saved yet."""
        line = (line or "").strip()
        for index in range(len(self.pending_log) - 1, -1, -1):
            if self.pending_log[index] == line:
                del self.pending_log[index]
                return

    # ── Function calls ────────────────────────────────────

    async def update_crime_report(self, args: Any) -> Dict[str, Any]:
        decoded = self._decode_args(args)
        if decoded is None:
            return {"success": False, "message": "Could not read the update arguments."}

        update = CrimeReportUpdate.model_validate(decoded)
        update = await self.translator.translate_update_to_english(update)

        candidates = []
        if not is_blank(update.location_text):
            verification = await self.geocoder.verify_location(update.location_text)
            if verification.status == VerificationStatus.SINGLE:
                update.location_text = verification.result.formatted_address
                update.coordinates = Coordinates(lat=verification.result.lat, lng=verification.result.lng)
            elif verification.status == VerificationStatus.MULTIPLE:
                candidates = [c.model_dump(by_alias=True) for c in verification.candidates]
                update.location_text = None
                update.coordinates = None
            elif verification.error:
                logger.info(f"Location '{update.location_text}' not verified: {verification.error}")

        if not is_blank(update.when_text):
            occurred_at = await self.dates.normalize_datetime(update.when_text)
            if occurred_at:
                update.occurred_at = occurred_at

        result: Dict[str, Any]
        if update.is_empty() and not self.pending_updates and not self.pending_log:
            result = {
                "success": True,
                "message": "No new information to record.",
                "recordId": await self.store.get_record_id(self.conversation_id),
                "updatedFields": {},
            }
        else:
            result = await self._save(update)

        if candidates:
            result["locationCandidates"] = candidates
            result["message"] = (
                f"{result['message']} Several addresses matched the location; "
                "ask the reporter which one is correct."
            )
        if update.unknown_fields:
            result["unknownFields"] = sorted(update.unknown_fields)
        return result

    async def summarize_incident_description(self, args: Any) -> Dict[str, Any]:
        decoded = self._decode_args(args) or {}
        raw = decoded.get("raw_description")
        if not isinstance(raw, str) or not raw.strip():
            return {"success": False, "message": "No description provided."}

        summary = await self.summarizer.summarize(raw)
        if not summary:
            return {"success": False, "message": "Could not summarize the description."}
        self._log_structured("incident_summarized", chars=len(summary))
        return {
            "success": True,
            "summary": summary,
            "message": "Read this summary to the reporter and ask them to approve it.",
        }

    async def approve_incident_description(self, args: Any) -> Dict[str, Any]:
        decoded = self._decode_args(args) or {}
        final_summary = decoded.get("final_summary")
        if not isinstance(final_summary, str) or is_blank(final_summary):
            return {"success": False, "message": "No approved description provided."}

        update = CrimeReportUpdate(incident_description=final_summary)
        update = await self.translator.translate_update_to_english(update)
        return await self._save(update)

    # ── Read / merge / write ──────────────────────────────

    async def _load_stored(self, record_id: Optional[str]) -> CrimeReport:
        if not record_id:
            return CrimeReport()
        record = await self.storage.get_record(record_id)
        return report_from_fields(record.fields, record_id=record.record_id)

    def _apply_pending(self, base: CrimeReport, update: Optional[CrimeReportUpdate]) -> CrimeReport:
        merged = base
        for pending in [*self.pending_updates, *([update] if update is not None else [])]:
            merged = merge_report(merged, pending)
        if self.pending_log:
            merged = merge_report(merged, CrimeReportUpdate(conversation_log="\n".join(self.pending_log)))
        return merged

    async def _add_weather(self, report: CrimeReport) -> CrimeReport:
        if report.coordinates is None or not is_blank(report.weather) or is_blank(report.occurred_at):
            return report
        when: Optional[datetime] = parse_iso(report.occurred_at)
        if when is None:
            return report
        description = await self.weather.describe(report.coordinates.lat, report.coordinates.lng, when)
        if description:
            return merge_report(report, CrimeReportUpdate(weather=description))
        return report

    async def _save(self, update: CrimeReportUpdate) -> Dict[str, Any]:
        record_id = await self.store.get_record_id(self.conversation_id)
        try:
            stored = await self._load_stored(record_id)
            merged = await self._add_weather(self._apply_pending(stored, update))
            fields = report_to_fields(merged)
            if record_id:
                record = await self.storage.update_record(record_id, fields)
            else:
                record = await self.storage.create_record(fields)
                await self.store.set_record_id(self.conversation_id, record.record_id)
        except StorageError as e:
            if not e.is_transient:
                # The rejected write carried the pending updates too; none of them are replayed
                discarded = len(self.pending_updates) + 1
                self.pending_updates.clear()
                self.report = None
                self._log_structured(
                    "report_update_rejected", status=e.status_code, error=str(e)[:200], discarded=discarded
                )
                return {"success": False, "message": UPDATE_REJECTED_MESSAGE}

            base = self.report or CrimeReport(record_id=record_id)
            self.report = merge_report(base, update)
            self.pending_updates.append(update)
            if len(self.pending_updates) > MAX_PENDING_UPDATES:
                del self.pending_updates[: len(self.pending_updates) - MAX_PENDING_UPDATES]
                logger.warning(f"Dropped oldest pending update for conversation {self.conversation_id}")
            self._log_structured("report_save_failed", error=str(e)[:200], pending=len(self.pending_updates))
            return {"success": False, "message": SAVE_FAILED_MESSAGE}

        merged.record_id = record.record_id
        merged.case_number = None if is_blank(record.case_number) else record.case_number
        self.report = merged
        self.pending_updates.clear()
        self.pending_log.clear()

        self._log_structured(
            "report_saved",
            record_id=record.record_id,
            created=not record_id,
            fields=sorted(update.updated_fields()),
        )
        return {
            "success": True,
            "message": "Crime report updated." if record_id else "Crime report created.",
            "recordId": record.record_id,
            "caseNumber": record.case_number,
            "updatedFields": update.model_dump(mode="json", exclude_none=True),
        }

    async def current_report(self) -> CrimeReport:
        """The latest known report, including updates not yet saved."""
        record_id = await self.store.get_record_id(self.conversation_id)
        if record_id:
            try:
                stored = await self._load_stored(record_id)
                report = self._apply_pending(stored, None)
                report.record_id = record_id
                return report
            except StorageError as e:
                logger.warning(f"Could not read record {record_id}, using in-memory report: {e}")
        return self.report or CrimeReport(record_id=record_id)
