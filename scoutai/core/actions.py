"""Photo actions: turn recommendations into keep/archive updates.

Photos are never mutated in place. Every change is delivered as a new Photo
through the caller's on_photo_update callback.
"""
import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from scoutai.core.models import (
    ActionType, ApplyResult, ArchiveState, CurationRecommendation, Photo, PhotoAction,
)

log = logging.getLogger("scoutai.actions")

PhotoUpdateCallback = Callable[[Photo], None]
PhotosUpdateCallback = Callable[[list[Photo]], None]


def create_actions_from_recommendation(recommendation: CurationRecommendation) -> list[PhotoAction]:
    metadata = {
        "group_id": recommendation.group.id,
        "group_type": recommendation.group.group_type.value,
        "confidence": recommendation.confidence,
        "rationale": recommendation.rationale,
    }
    actions = [
        PhotoAction(
            type=ActionType.KEEP,
            photo_id=p.id,
            reason=f"Scout AI recommended to keep - {recommendation.rationale}",
            metadata=metadata,
        )
        for p in recommendation.keep
    ]
    actions.extend(
        PhotoAction(
            type=ActionType.ARCHIVE,
            photo_id=p.id,
            reason="Scout AI archived - similar to kept photo in same group",
            metadata=metadata,
        )
        for p in recommendation.archive
    )
    return actions


def _apply_one(action: PhotoAction, photo: Photo) -> Photo:
    if action.type is ActionType.ARCHIVE:
        return replace(photo, archive_state=ArchiveState.ARCHIVED,
                       archived_at=time.time(), archive_reason=action.reason)
    if action.type is ActionType.DELETE:
        return replace(photo, archive_state=ArchiveState.PENDING_DELETION,
                       archived_at=time.time(), archive_reason=action.reason)
    if action.type in (ActionType.KEEP, ActionType.TAG):
        # tag writes belong to the UI layer; the photo just stays active
        return replace(photo, archive_state=ArchiveState.ACTIVE)
    raise ValueError(f"Unknown action type: {action.type}")


def apply_curation_actions(
    actions: list[PhotoAction],
    photos: list[Photo],
    on_photo_update: PhotoUpdateCallback,
    on_photos_update: Optional[PhotosUpdateCallback] = None,
) -> ApplyResult:
    """Apply actions one by one, reporting per-action results.

    A failed action never rolls back the ones that already succeeded.
    on_photos_update, when given, receives every updated photo once at the end.
    """
    by_id = {p.id: p for p in photos}
    result = ApplyResult(success=True)

    for action in actions:
        photo = by_id.get(action.photo_id)
        if photo is None:
            log.warning("Photo not found for %s action: %s", action.type.value, action.photo_id)
            result.failed_actions.append(action)
            continue
        try:
            updated = _apply_one(action, photo)
            on_photo_update(updated)
        except Exception as e:
            log.error("Failed to apply %s action for photo %s: %s",
                      action.type.value, action.photo_id, e)
            result.failed_actions.append(action)
            continue
        by_id[updated.id] = updated
        result.updated_photos.append(updated)
        result.applied_actions.append(action)

    if result.failed_actions:
        result.success = False
        result.error = (
            f"Some actions failed: {len(result.failed_actions)} of {len(actions)} "
            "actions failed to apply"
        )
    if on_photos_update is not None and result.updated_photos:
        on_photos_update(list(result.updated_photos))
    log.info("Applied %d of %d photo actions", len(result.applied_actions), len(actions))
    return result


def _find(photo_id: str, photos: list[Photo]) -> Photo:
    for p in photos:
        if p.id == photo_id:
            return p
    raise LookupError(f"Photo not found: {photo_id}")


def archive_photo(photo_id: str, reason: str, photos: list[Photo],
                  on_photo_update: PhotoUpdateCallback) -> Photo:
    updated = replace(_find(photo_id, photos), archive_state=ArchiveState.ARCHIVED,
                      archived_at=time.time(), archive_reason=reason)
    on_photo_update(updated)
    return updated


def restore_photo(photo_id: str, photos: list[Photo],
                  on_photo_update: PhotoUpdateCallback) -> Photo:
    updated = replace(_find(photo_id, photos), archive_state=ArchiveState.ACTIVE,
                      archived_at=None, archive_reason=None)
    on_photo_update(updated)
    return updated


def filter_photos_by_archive_state(photos: list[Photo], state: ArchiveState) -> list[Photo]:
    return [p for p in photos if p.archive_state is state]
