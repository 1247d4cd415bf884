"""
Tests for the Twilio voice webhooks.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from detective.api import telephony
from detective.services.transcription_queue import TranscriptionJob

from fakes import FakeSessionStore


@pytest.fixture
def store(monkeypatch):
    store = FakeSessionStore()
    monkeypatch.setattr(telephony, "get_session_store", lambda: store)
    return store


@pytest.fixture
def enqueue(monkeypatch):
    mock = MagicMock(side_effect=lambda sid, url: TranscriptionJob(call_sid=sid, recording_url=url))
    monkeypatch.setattr(telephony.transcription_queue, "enqueue", mock)
    return mock


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(telephony.router, prefix="/twilio")
    return TestClient(app)


class TestVoiceMenu:
    """Tests for the keypad menu webhook."""

    def test_no_digits_returns_menu(self, client):
        response = client.post("/twilio/voice", data={"CallSid": "CA1"})
        assert response.status_code == 200
        assert "application/xml" in response.headers["content-type"]
        assert "<Gather" in response.text
        assert 'numDigits="1"' in response.text
        assert "Press 1 to record a statement" in response.text

    def test_digit_one_records(self, client):
        response = client.post("/twilio/voice", data={"CallSid": "CA1", "Digits": "1"})
        assert "<Record" in response.text
        assert 'maxLength="60"' in response.text
        assert 'finishOnKey="#"' in response.text

    def test_digit_two_dials_agent(self, client, monkeypatch):
        monkeypatch.setattr(telephony.settings, "agent_phone_number", "+15551234567")
        response = client.post("/twilio/voice", data={"CallSid": "CA1", "Digits": "2"})
        assert "<Dial>+15551234567</Dial>" in response.text

    def test_invalid_digit_redirects(self, client):
        response = client.post("/twilio/voice", data={"CallSid": "CA1", "Digits": "9"})
        assert "Invalid input" in response.text
        assert "<Redirect" in response.text

    def test_recording_is_enqueued(self, client, enqueue):
        response = client.post(
            "/twilio/voice",
            data={"CallSid": "CA1", "RecordingUrl": "https://api.twilio.com/rec/RE1"},
        )
        enqueue.assert_called_once_with("CA1", "https://api.twilio.com/rec/RE1")
        assert "<Hangup" in response.text

    def test_recording_without_call_sid_fails(self, client, enqueue):
        response = client.post("/twilio/voice", data={"RecordingUrl": "https://api.twilio.com/rec/RE1"})
        assert response.status_code == 500
        assert "<Hangup" in response.text
        enqueue.assert_not_called()


class TestVoiceAssistant:
    """Tests for the conversational phone flow."""

    def test_greeting_records_with_callback(self, client):
        response = client.post("/twilio/voice-assistant", data={"CallSid": "CA1"})
        assert response.status_code == 200
        assert "<Say" in response.text
        assert 'recordingStatusCallback="/twilio/voice-assistant/recording-callback"' in response.text
        assert 'action="/twilio/voice-assistant/after-record"' in response.text

    def test_recording_callback_enqueues(self, client, enqueue):
        response = client.post(
            "/twilio/voice-assistant/recording-callback",
            data={"CallSid": "CA1", "RecordingUrl": "https://api.twilio.com/rec/RE2"},
        )
        assert response.json() == {"success": True}
        enqueue.assert_called_once_with("CA1", "https://api.twilio.com/rec/RE2")

    def test_after_record_waits_without_reply(self, client, store):
        response = client.post("/twilio/voice-assistant/after-record", data={"CallSid": "CA1"})
        assert telephony.WAITING_MESSAGE in response.text
        assert "<Record" in response.text

    def test_after_record_plays_tts(self, client, store, monkeypatch):
        store.values["reply:CA1"] = "Where did this happen?"
        monkeypatch.setattr(telephony.tts_service, "generate_speech", AsyncMock(return_value=b"RIFF"))
        monkeypatch.setattr(
            telephony.storage_service, "upload_audio", AsyncMock(return_value="https://files.test/audio/a.wav")
        )

        response = client.post("/twilio/voice-assistant/after-record", data={"CallSid": "CA1"})

        assert "<Play>https://files.test/audio/a.wav</Play>" in response.text
        assert "reply:CA1" not in store.values

    def test_after_record_says_reply_when_tts_fails(self, client, store, monkeypatch):
        store.values["reply:CA1"] = "Where did this happen?"
        monkeypatch.setattr(telephony.tts_service, "generate_speech", AsyncMock(return_value=None))

        response = client.post("/twilio/voice-assistant/after-record", data={"CallSid": "CA1"})

        assert "Where did this happen?" in response.text
        assert "<Play" not in response.text

    def test_after_record_error_hangs_up(self, client, monkeypatch):
        failing = FakeSessionStore()
        failing.pop_reply = AsyncMock(side_effect=RuntimeError("db down"))
        monkeypatch.setattr(telephony, "get_session_store", lambda: failing)

        response = client.post("/twilio/voice-assistant/after-record", data={"CallSid": "CA1"})

        assert response.status_code == 500
        assert "<Hangup" in response.text
