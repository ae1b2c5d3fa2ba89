"""Tests for data models and their serialization."""
from scoutai.core.models import (
    ArchiveState, DetailLevel, GroupType, LearningData, Photo, SuggestionStatus,
    UserCurationPreferences,
)


def test_photo_from_companycam_payload():
    photo = Photo.from_dict({
        "id": 42,
        "project_id": "p-1",
        "captured_at": "2024-03-01T12:00:00Z",
        "coordinates": [{"latitude": 40.1, "longitude": -74.2}],
        "uris": [{"type": "thumbnail", "uri": "t.jpg"}, {"type": "original", "uri": "o.jpg"}],
        "tags": ["Roof", {"id": "7", "display_value": "Gutter"}],
        "hash": "deadbeef",
    })
    assert photo.id == "42"
    assert photo.captured_at == 1709294400.0
    assert photo.primary_coordinate.latitude == 40.1
    assert photo.uri_for("web", "original") == "o.jpg"
    assert photo.tag_keys == frozenset({"roof", "gutter"})
    assert photo.archive_state is ArchiveState.ACTIVE


def test_photo_epoch_capture_time():
    assert Photo.from_dict({"id": "a", "captured_at": 1700000000}).captured_at == 1700000000.0


def test_terminal_statuses():
    assert not SuggestionStatus.PENDING.terminal
    assert all(s.terminal for s in (
        SuggestionStatus.ACCEPTED, SuggestionStatus.REJECTED, SuggestionStatus.DISMISSED))


def test_preferences_camel_case_round_trip():
    prefs = UserCurationPreferences(
        user_id="u1",
        quality_threshold=0.8,
        detail_level=DetailLevel.TECHNICAL,
        acceptance_rate={"photo_curation": 0.5},
        learning_data=LearningData(accepted_recommendations=["s1"]),
    )
    data = prefs.to_dict()
    assert data["qualityThreshold"] == 0.8
    assert data["learningData"]["acceptedRecommendations"] == ["s1"]
    assert UserCurationPreferences.from_dict(data) == prefs


def test_preferences_fill_missing_group_types():
    prefs = UserCurationPreferences.from_dict(
        {"preferredGroupTypes": {"retry_shots": False}}, user_id="u2")
    assert not prefs.allows(GroupType.RETRY_SHOTS)
    assert prefs.allows(GroupType.ANGLE_VARIATIONS)
    assert prefs.user_id == "u2"
