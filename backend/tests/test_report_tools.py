"""
Tests for the report function handler: normalization, read-merge-write and
failure handling.
"""

import json

import pytest

from detective.agents.report_tools import (
    NO_MATCHING_FUNCTION,
    MAX_PENDING_UPDATES,
    SAVE_FAILED_MESSAGE,
    UPDATE_REJECTED_MESSAGE,
    ReportToolHandler,
)
from detective.models.schemas import LocationCandidate
from detective.services.geocoding import LocationVerification, VerificationStatus

from fakes import (
    FakeDates,
    FakeGeocoder,
    FakeSummarizer,
    FakeWeather,
    PassthroughTranslator,
    single_match,
)


@pytest.fixture
def make_handler(session_store, airtable):
    def _make(geocoder=None, dates=None, weather=None, summarizer=None, conversation_id="conv-1"):
        return ReportToolHandler(
            conversation_id,
            store=session_store,
            storage=airtable,
            translator=PassthroughTranslator(),
            geocoder=geocoder or FakeGeocoder(),
            dates=dates or FakeDates(),
            weather=weather or FakeWeather(),
            summarizer=summarizer or FakeSummarizer(),
        )
    return _make


class TestUpdateCrimeReport:
    """Tests for update_crime_report."""

    async def test_first_update_creates_record(self, make_handler, airtable, session_store):
        handler = make_handler()
        result = await handler.update_crime_report({"crimeType": "Robbery", "vehicles": "red sedan"})

        assert result["success"] is True
        assert result["message"] == "Crime report created."
        assert result["recordId"] == "rec1"
        assert result["caseNumber"] == "CASE-0001"
        assert result["updatedFields"]["crime_type"] == "Robbery"
        assert await session_store.get_record_id("conv-1") == "rec1"
        assert airtable.rows["rec1"]["crimeType"] == "Robbery"
        assert airtable.rows["rec1"]["vehicles"] == "red sedan"

    async def test_second_update_reads_merges_and_writes(self, make_handler, airtable):
        handler = make_handler()
        await handler.update_crime_report({"crimeType": "Robbery", "vehicles": ["red sedan"]})
        # Another writer changed the row in between
        airtable.rows["rec1"]["weapon"] = "knife"

        result = await handler.update_crime_report({"vehicles": ["blue truck"]})

        assert result["message"] == "Crime report updated."
        assert airtable.calls == ["create", "get", "update"]
        row = airtable.rows["rec1"]
        assert row["crimeType"] == "Robbery"
        assert row["weapon"] == "knife"
        assert row["vehicles"] == "red sedan, blue truck"

    async def test_json_string_arguments(self, make_handler, airtable):
        result = await make_handler().update_crime_report(json.dumps({"weapon": "bat"}))
        assert result["success"] is True
        assert airtable.rows["rec1"]["weapon"] == "bat"

    async def test_undecodable_arguments(self, make_handler, airtable):
        result = await make_handler().update_crime_report("{not json")
        assert result["success"] is False
        assert airtable.calls == []

    async def test_empty_update_does_not_write(self, make_handler, airtable):
        result = await make_handler().update_crime_report({})
        assert result["success"] is True
        assert result["message"] == "No new information to record."
        assert airtable.calls == []

    async def test_unknown_fields_are_reported(self, make_handler):
        result = await make_handler().update_crime_report({"weapon": "bat", "shoeSize": 11})
        assert result["success"] is True
        assert result["unknownFields"] == ["shoeSize"]


class TestNormalization:
    """Tests for location, date and weather enrichment."""

    async def test_single_location_match_is_adopted(self, make_handler, airtable):
        geocoder = FakeGeocoder(single_match("100 Main St, San Antonio, TX", 29.4, -98.5))
        await make_handler(geocoder=geocoder).update_crime_report({"location": "100 main"})

        row = airtable.rows["rec1"]
        assert geocoder.queries == ["100 main"]
        assert row["locationText"] == "100 Main St, San Antonio, TX"
        assert row["coordinates"] == {"lat": 29.4, "lng": -98.5}

    async def test_multiple_matches_withhold_location(self, make_handler, airtable):
        candidates = [
            LocationCandidate(formatted_address="Main St, San Antonio", lat=1.0, lng=2.0),
            LocationCandidate(formatted_address="Main Ave, San Antonio", lat=3.0, lng=4.0),
        ]
        geocoder = FakeGeocoder(LocationVerification(status=VerificationStatus.MULTIPLE, candidates=candidates))
        result = await make_handler(geocoder=geocoder).update_crime_report({"location": "main", "weapon": "gun"})

        assert result["locationCandidates"][0]["formattedAddress"] == "Main St, San Antonio"
        assert len(result["locationCandidates"]) == 2
        assert airtable.rows["rec1"]["locationText"] == "N/A"
        assert airtable.rows["rec1"]["weapon"] == "gun"

    async def test_unverified_location_keeps_text(self, make_handler, airtable):
        geocoder = FakeGeocoder(LocationVerification(status=VerificationStatus.NONE, error="ZERO_RESULTS"))
        await make_handler(geocoder=geocoder).update_crime_report({"location": "behind the old mill"})
        assert airtable.rows["rec1"]["locationText"] == "behind the old mill"
        assert airtable.rows["rec1"]["coordinates"] == {"lat": 0.0, "lng": 0.0}

    async def test_date_and_weather(self, make_handler, airtable):
        weather = FakeWeather("Light rain, 14.2°C, wind 11 km/h")
        handler = make_handler(
            geocoder=FakeGeocoder(single_match("Main St", 29.4, -98.5)),
            dates=FakeDates("2024-05-04T21:00:00"),
            weather=weather,
        )
        await handler.update_crime_report({"location": "main st", "datetime": "last saturday 9pm"})

        row = airtable.rows["rec1"]
        assert row["whenText"] == "last saturday 9pm"
        assert row["occurredAt"] == "2024-05-04T21:00:00"
        assert row["weather"] == "Light rain, 14.2°C, wind 11 km/h"

        # Weather is looked up once
        await handler.update_crime_report({"weapon": "knife"})
        assert weather.calls == 1

    async def test_no_weather_without_coordinates(self, make_handler, airtable):
        weather = FakeWeather("Clear sky, 20.0°C, wind 5 km/h")
        await make_handler(dates=FakeDates("2024-05-04T21:00:00"), weather=weather).update_crime_report(
            {"datetime": "yesterday"}
        )
        assert weather.calls == 0
        assert airtable.rows["rec1"]["weather"] == "N/A"


class TestPersistenceFailure:
    """Tests for storage failures and pending updates."""

    async def test_failed_save_keeps_update_pending(self, make_handler, airtable):
        handler = make_handler()
        airtable.fail = True

        result = await handler.update_crime_report({"crimeType": "Burglary"})
        assert result == {"success": False, "message": SAVE_FAILED_MESSAGE}
        assert len(handler.pending_updates) == 1
        assert (await handler.current_report()).crime_type == "Burglary"

        airtable.fail = False
        result = await handler.update_crime_report({"weapon": "crowbar"})
        assert result["success"] is True
        assert airtable.rows["rec1"]["crimeType"] == "Burglary"
        assert airtable.rows["rec1"]["weapon"] == "crowbar"
        assert handler.pending_updates == []

    async def test_rejected_update_is_discarded(self, make_handler, airtable):
        airtable.reject = lambda fields: any(
            not item["url"].startswith("http") for item in fields.get("evidence", [])
        )
        handler = make_handler()

        result = await handler.update_crime_report({"crimeType": "Robbery", "evidence": "ftp://files/a.jpg"})
        assert result == {"success": False, "message": UPDATE_REJECTED_MESSAGE}
        assert handler.pending_updates == []

        for weapon in ("knife", "bat", "crowbar"):
            result = await handler.update_crime_report({"weapon": weapon})
            assert result["success"] is True
        assert handler.pending_updates == []
        assert airtable.rows["rec1"]["weapon"] == "knife\nbat\ncrowbar"
        assert airtable.rows["rec1"]["crimeType"] == "N/A"

    async def test_rejection_also_drops_earlier_pending_updates(self, make_handler, airtable):
        handler = make_handler()
        airtable.fail = True
        await handler.update_crime_report({"crimeType": "Theft"})
        assert len(handler.pending_updates) == 1

        airtable.fail_status = 422
        result = await handler.update_crime_report({"weapon": "knife"})
        assert result["message"] == UPDATE_REJECTED_MESSAGE
        assert handler.pending_updates == []

    async def test_pending_updates_are_capped(self, make_handler, airtable):
        handler = make_handler()
        airtable.fail = True
        for n in range(MAX_PENDING_UPDATES + 5):
            await handler.update_crime_report({"vehicles": f"car {n}"})

        assert len(handler.pending_updates) == MAX_PENDING_UPDATES
        assert handler.pending_updates[0].vehicles == ["car 5"]

    async def test_conversation_log_flushed_on_save(self, make_handler, airtable):
        handler = make_handler()
        handler.queue_log("Reporter: my bike was stolen")
        handler.queue_log("  ")
        await handler.update_crime_report({"crimeType": "Theft"})
        handler.queue_log("Detective: I'm sorry to hear that.")
        await handler.update_crime_report({"vehicles": "blue bicycle"})

        assert airtable.rows["rec1"]["conversationLog"] == (
            "Reporter: my bike was stolen\nDetective: I'm sorry to hear that."
        )
        assert handler.pending_log == []

    async def test_withdrawn_line_is_not_saved(self, make_handler, airtable):
        handler = make_handler()
        handler.queue_log("Reporter: my bike was stolen")
        handler.queue_log("Reporter: it was blue")
        handler.withdraw_log("Reporter: it was blue")
        handler.withdraw_log("Reporter: never queued")
        await handler.update_crime_report({"crimeType": "Theft"})

        assert airtable.rows["rec1"]["conversationLog"] == "Reporter: my bike was stolen"


class TestDescriptionFunctions:
    """Tests for the incident description functions and dispatch."""

    async def test_summarize_does_not_persist(self, make_handler, airtable):
        result = await make_handler().summarize_incident_description({"raw_description": "He grabbed my bag and ran."})
        assert result["success"] is True
        assert result["summary"] == "A concise summary."
        assert airtable.calls == []

    async def test_summarize_failure(self, make_handler):
        result = await make_handler(summarizer=FakeSummarizer(None)).summarize_incident_description(
            {"raw_description": "text"}
        )
        assert result["success"] is False

    async def test_approve_replaces_description(self, make_handler, airtable):
        handler = make_handler()
        await handler.approve_incident_description({"final_summary": "First draft."})
        await handler.approve_incident_description({"final_summary": "Approved summary."})
        assert airtable.rows["rec1"]["incidentDescription"] == "Approved summary."

    async def test_approve_requires_text(self, make_handler):
        result = await make_handler().approve_incident_description({"final_summary": "N/A"})
        assert result["success"] is False

    async def test_unknown_function(self, make_handler):
        result = await make_handler().dispatch("delete_everything", {})
        assert result == {"success": False, "message": NO_MATCHING_FUNCTION}

    async def test_dispatch_routes_by_name(self, make_handler, airtable):
        result = await make_handler().dispatch("update_crime_report", {"injuries": "none"})
        assert result["success"] is True
        assert airtable.rows["rec1"]["injuries"] == "none"
