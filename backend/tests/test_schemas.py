"""
Unit tests for partial update validation.
"""

from detective.models.schemas import CrimeReportUpdate, Witness, is_blank


class TestCrimeReportUpdate:
    """Tests for CrimeReportUpdate normalization."""

    def test_camel_and_snake_case_keys(self):
        update = CrimeReportUpdate.model_validate({
            "crimeType": "Theft",
            "property_damage": "broken window",
            "datetime": "yesterday at noon",
            "location": "5th and Main",
        })
        assert update.crime_type == "Theft"
        assert update.property_damage == "broken window"
        assert update.when_text == "yesterday at noon"
        assert update.location_text == "5th and Main"

    def test_unknown_keys_are_retained(self):
        update = CrimeReportUpdate.model_validate({"weapon": "bat", "mood": "angry"})
        assert update.unknown_fields == {"mood": "angry"}
        assert "unknown_fields" not in update.updated_fields()

    def test_singular_keys_fold_into_lists(self):
        update = CrimeReportUpdate.model_validate({
            "vehicle": "white van",
            "vehicles": ["red sedan"],
            "camera": "gas station camera",
        })
        assert update.vehicles == ["red sedan", "white van"]
        assert update.cameras == ["gas station camera"]

    def test_malformed_members_are_coerced(self):
        update = CrimeReportUpdate.model_validate({
            "injuries": 2,
            "weapon": True,
            "vehicles": "red sedan, blue truck",
            "cameras": 42,
            "coordinates": {"lat": "29.4", "lng": None},
        })
        assert update.injuries == "2"
        assert update.weapon is None
        assert update.vehicles == ["red sedan", "blue truck"]
        assert update.cameras is None
        assert update.coordinates is None

    def test_not_available_list_items_are_dropped(self):
        update = CrimeReportUpdate.model_validate({
            "vehicles": "N/A",
            "cameras": ["lobby camera", "n/a"],
            "evidence": "N/A, https://files.example/a.jpg",
        })
        assert update.vehicles is None
        assert update.cameras == ["lobby camera"]
        assert [e.url for e in update.evidence] == ["https://files.example/a.jpg"]
        assert CrimeReportUpdate.model_validate({"evidence": "N/A"}).is_empty()

    def test_suspect_string_becomes_features(self):
        update = CrimeReportUpdate.model_validate({"suspect": "tall with a limp"})
        assert update.suspect.features == "tall with a limp"

    def test_witness_forms(self):
        update = CrimeReportUpdate.model_validate({
            "witnesses": ["John (555)", {"name": "Ann", "contact": "ann@x.io"}, 12, {"name": ""}],
        })
        assert [w.key() for w in update.witnesses] == [("John", "555"), ("Ann", "ann@x.io")]

    def test_empty_update(self):
        assert CrimeReportUpdate.model_validate({}).is_empty()
        assert CrimeReportUpdate.model_validate("not a mapping").is_empty()
        assert not CrimeReportUpdate.model_validate({"weapon": "N/A"}).is_empty()


class TestHelpers:
    """Tests for small schema helpers."""

    def test_is_blank(self):
        assert is_blank(None)
        assert is_blank("  ")
        assert is_blank(" n/a ")
        assert not is_blank("knife")

    def test_witness_parse_unbalanced_parentheses(self):
        witness = Witness.parse("Bob (555")
        assert witness.name == "Bob (555"
        assert witness.contact == ""
