"""Tests for applying photo actions."""
import pytest

from conftest import make_photo
from scoutai.core.actions import (
    apply_curation_actions, archive_photo, create_actions_from_recommendation,
    filter_photos_by_archive_state, restore_photo,
)
from scoutai.core.models import (
    ActionType, ArchiveState, CurationRecommendation, GroupType, PhotoAction,
    PhotoSimilarityGroup, SimilarityScore,
)


@pytest.fixture
def photos():
    return [make_photo(f"p{i}", i) for i in range(3)]


def test_actions_from_recommendation(photos):
    group = PhotoSimilarityGroup(
        id="g1", photos=photos, similarity=SimilarityScore(overall_similarity=0.9),
        group_type=GroupType.RETRY_SHOTS, confidence=0.9,
    )
    rec = CurationRecommendation(
        group=group, keep=photos[2:], archive=photos[:2], rationale="why",
        estimated_time_saved=1.0, confidence=0.9,
    )
    actions = create_actions_from_recommendation(rec)
    assert [(a.type, a.photo_id) for a in actions] == [
        (ActionType.KEEP, "p2"), (ActionType.ARCHIVE, "p0"), (ActionType.ARCHIVE, "p1"),
    ]
    assert actions[0].metadata["group_id"] == "g1"


def test_apply_all_succeed(photos):
    updates = []
    actions = [PhotoAction(ActionType.ARCHIVE, "p0"), PhotoAction(ActionType.KEEP, "p1")]
    result = apply_curation_actions(actions, photos, updates.append)
    assert result.success
    assert result.error is None
    assert updates[0].archive_state is ArchiveState.ARCHIVED
    assert updates[1].archive_state is ArchiveState.ACTIVE
    # inputs are never mutated
    assert photos[0].archive_state is ArchiveState.ACTIVE


def test_apply_partial_failure(photos):
    def on_update(photo):
        if photo.id == "p1":
            raise RuntimeError("write rejected")

    actions = [
        PhotoAction(ActionType.ARCHIVE, "p0"),
        PhotoAction(ActionType.ARCHIVE, "p1"),
        PhotoAction(ActionType.ARCHIVE, "missing"),
    ]
    result = apply_curation_actions(actions, photos, on_update)
    assert not result.success
    assert [a.photo_id for a in result.applied_actions] == ["p0"]
    assert len(result.failed_actions) == 2
    assert result.error == "Some actions failed: 2 of 3 actions failed to apply"


def test_delete_marks_pending_deletion(photos):
    result = apply_curation_actions([PhotoAction(ActionType.DELETE, "p0")], photos, lambda p: None)
    assert result.updated_photos[0].archive_state is ArchiveState.PENDING_DELETION


def test_archive_and_restore(photos):
    updates = []
    archived = archive_photo("p1", "blurry", photos, updates.append)
    assert archived.archive_reason == "blurry"
    restored = restore_photo("p1", [archived], updates.append)
    assert restored.archive_state is ArchiveState.ACTIVE
    assert restored.archived_at is None
    assert len(updates) == 2


def test_archive_unknown_photo(photos):
    with pytest.raises(LookupError, match="Photo not found: nope"):
        archive_photo("nope", "x", photos, lambda p: None)


def test_filter_by_archive_state(photos):
    archived = archive_photo("p0", "dup", photos, lambda p: None)
    mixed = [archived] + photos[1:]
    assert filter_photos_by_archive_state(mixed, ArchiveState.ARCHIVED) == [archived]
    assert len(filter_photos_by_archive_state(mixed, ArchiveState.ACTIVE)) == 2


def test_batch_callback_receives_updated_photos(photos):
    batches = []
    actions = [PhotoAction(ActionType.ARCHIVE, "p0"), PhotoAction(ActionType.ARCHIVE, "missing")]
    apply_curation_actions(actions, photos, lambda p: None, batches.append)
    assert len(batches) == 1
    assert [p.id for p in batches[0]] == ["p0"]
