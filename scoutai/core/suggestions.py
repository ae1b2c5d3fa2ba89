"""Suggestion lifecycle: analysis runs, user decisions and preference learning.

One SuggestionManager is created per user session. UI code observes it
through its Qt signals and mutates it only through the public methods.
"""
import json
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional

from PySide6.QtCore import QObject, Signal

from scoutai.core import actions as photo_actions
from scoutai.core.actions import PhotosUpdateCallback, PhotoUpdateCallback
from scoutai.core.curation import generate_curation_recommendation, generate_scout_ai_message
from scoutai.core.errors import InvalidStateError, NotFoundError, PersistenceError
from scoutai.core.models import (
    ApplyResult, CurationRecommendation, DetailLevel, LearningData, Photo, PhotoAction,
    PhotoSimilarityGroup, Suggestion, SuggestionConfidence, SuggestionStatus,
    SuggestionType, UndoAction, UserCurationPreferences,
)
from scoutai.core.pipeline import SimilarityPipeline
from scoutai.core.preferences_store import KeyValueStore, MemoryKeyValueStore, preferences_key

log = logging.getLogger("scoutai.suggestions")

HIGH_CONFIDENCE_THRESHOLD = 0.7
UNDO_STACK_LIMIT = 5

_PREFERENCE_FIELDS = {
    "preferred_group_types", "quality_threshold", "detail_level",
    "acceptance_rate", "learning_data",
}


def suggestion_confidence(recommendations: list[CurationRecommendation]) -> SuggestionConfidence:
    """high when the mean recommendation confidence reaches 0.7."""
    if not recommendations:
        return SuggestionConfidence.LOW
    average = sum(r.confidence for r in recommendations) / len(recommendations)
    if round(average, 9) >= HIGH_CONFIDENCE_THRESHOLD:
        return SuggestionConfidence.HIGH
    return SuggestionConfidence.MEDIUM


class SuggestionManager(QObject):
    suggestions_changed = Signal(object)    # list[Suggestion]
    analyzing_changed = Signal(bool)
    error_changed = Signal(object)          # Optional[str]
    preferences_changed = Signal(object)    # UserCurationPreferences

    def __init__(
        self,
        user_id: str,
        store: Optional[KeyValueStore] = None,
        pipeline: Optional[SimilarityPipeline] = None,
        service: str = "scoutai",
    ):
        super().__init__()
        if not user_id:
            raise ValueError("user_id is required")
        self.user_id = user_id
        self.service = service
        self.store = store if store is not None else MemoryKeyValueStore()
        self.pipeline = pipeline or SimilarityPipeline()
        self.suggestions: list[Suggestion] = []
        self.undo_stack: list[UndoAction] = []
        self.is_analyzing = False
        self._in_flight = 0
        self._request_counter = 0
        self.error: Optional[str] = None
        self.user_preferences = self._load_preferences()

    @property
    def preferences_key(self) -> str:
        return preferences_key(self.service, self.user_id)

    # ---- state helpers ----------------------------------------------------

    def _set_error(self, message: Optional[str]):
        if message != self.error:
            self.error = message
            self.error_changed.emit(message)

    def _set_analyzing(self, value: bool):
        if value != self.is_analyzing:
            self.is_analyzing = value
            self.analyzing_changed.emit(value)

    def _publish_suggestions(self):
        self.suggestions_changed.emit(list(self.suggestions))

    def get_suggestion(self, suggestion_id: str) -> Suggestion:
        for s in self.suggestions:
            if s.id == suggestion_id:
                return s
        raise NotFoundError(suggestion_id)

    @property
    def pending_suggestions(self) -> list[Suggestion]:
        return [s for s in self.suggestions if s.status is SuggestionStatus.PENDING]

    # ---- preferences ------------------------------------------------------

    def _default_preferences(self) -> UserCurationPreferences:
        return UserCurationPreferences(user_id=self.user_id)

    def _load_preferences(self) -> UserCurationPreferences:
        try:
            stored = self.store.get(self.preferences_key)
            if stored:
                return UserCurationPreferences.from_dict(json.loads(stored), user_id=self.user_id)
            defaults = self._default_preferences()
            self.store.set(self.preferences_key, self._serialize(defaults))
            log.info("Created default preferences for %s", self.user_id)
            return defaults
        except (PersistenceError, ValueError, TypeError) as e:
            log.warning("Failed to load user preferences for %s: %s", self.user_id, e)
            return self._default_preferences()

    @staticmethod
    def _serialize(preferences: UserCurationPreferences) -> str:
        return json.dumps(preferences.to_dict(), separators=(",", ":"))

    def update_user_preferences(self, **changes: Any) -> UserCurationPreferences:
        """Merge changes into the preferences and persist them.

        A storage failure is reported through `error`, not raised.
        """
        unknown = set(changes) - _PREFERENCE_FIELDS
        if unknown:
            raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")
        if "quality_threshold" in changes:
            threshold = float(changes["quality_threshold"])
            if not 0.0 <= threshold <= 1.0:
                raise ValueError(f"quality_threshold must be within [0, 1], got {threshold}")
            changes["quality_threshold"] = threshold
        if "detail_level" in changes:
            changes["detail_level"] = DetailLevel(changes["detail_level"])

        updated = replace(self.user_preferences, **changes, user_id=self.user_id)
        self.user_preferences = updated
        self.preferences_changed.emit(updated)
        try:
            self.store.set(self.preferences_key, self._serialize(updated))
            log.info("Updated user preferences for %s", self.user_id)
        except PersistenceError as e:
            log.error("Failed to persist preferences for %s: %s", self.user_id, e)
            self._set_error(str(e) or "Failed to update preferences")
        return updated

    def _record_decision(self, suggestion: Suggestion, accepted: bool):
        prefs = self.user_preferences
        learning = LearningData(
            accepted_recommendations=list(prefs.learning_data.accepted_recommendations),
            rejected_recommendations=list(prefs.learning_data.rejected_recommendations),
            preferred_keep_criteria=list(prefs.learning_data.preferred_keep_criteria),
        )
        if accepted:
            learning.accepted_recommendations.append(suggestion.id)
            for rec in suggestion.recommendations:
                if rec.keep_criterion not in learning.preferred_keep_criteria:
                    learning.preferred_keep_criteria.append(rec.keep_criterion)
        else:
            learning.rejected_recommendations.append(suggestion.id)

        decided = len(learning.accepted_recommendations) + len(learning.rejected_recommendations)
        rates = dict(prefs.acceptance_rate)
        rates[suggestion.type.value] = len(learning.accepted_recommendations) / decided
        self.update_user_preferences(learning_data=learning, acceptance_rate=rates)

    # ---- suggestions ------------------------------------------------------

    def generate_suggestion(self, groups: list[PhotoSimilarityGroup]) -> Suggestion:
        detail = self.user_preferences.detail_level
        recommendations = [generate_curation_recommendation(g, detail) for g in groups]
        return Suggestion(
            id=f"suggestion-{uuid.uuid4().hex[:12]}",
            type=SuggestionType.PHOTO_CURATION,
            message=generate_scout_ai_message(recommendations),
            recommendations=recommendations,
            confidence=suggestion_confidence(recommendations),
            actionable=bool(recommendations),
            created_at=datetime.now(timezone.utc),
        )

    async def analyze_similar_photos(
        self,
        photos: list[Photo],
        clear_existing: bool = True,
    ) -> list[PhotoSimilarityGroup]:
        """Run one analysis and append exactly one suggestion for it.

        With clear_existing, still-pending suggestions from earlier runs are
        dismissed. A failed run leaves earlier suggestions untouched.
        """
        self._request_counter += 1
        request = self._request_counter
        self._in_flight += 1
        self._set_analyzing(True)
        self._set_error(None)
        try:
            log.info("Analyzing %d photos for similarity", len(photos))
            groups = await self.pipeline.analyze_similarity(
                photos, similarity_threshold=self.user_preferences.quality_threshold,
            )
        except Exception as e:
            log.error("Analysis error: %s", e)
            self._set_error(str(e) or "Photo analysis failed")
            return []
        finally:
            self._in_flight -= 1
            self._set_analyzing(self._in_flight > 0)

        # pipeline state belongs to the most recently started run
        if request == self._request_counter and self.pipeline.state.error:
            self._set_error(self.pipeline.state.error)

        wanted = [g for g in groups if self.user_preferences.allows(g.group_type)]
        if clear_existing:
            for s in self.pending_suggestions:
                s.status = SuggestionStatus.DISMISSED
        suggestion = self.generate_suggestion(wanted)
        self.suggestions.append(suggestion)
        log.info("Generated suggestion %s: %s", suggestion.id, suggestion.message)
        self._publish_suggestions()
        return wanted

    def _transition(self, suggestion_id: str, status: SuggestionStatus, action: str) -> Suggestion:
        suggestion = self.get_suggestion(suggestion_id)
        if suggestion.status.terminal:
            raise InvalidStateError(suggestion_id, suggestion.status.value, action)
        suggestion.status = status
        log.info("Suggestion %s %s", suggestion_id, status.value)
        self._publish_suggestions()
        return suggestion

    async def accept_suggestion(
        self,
        suggestion_id: str,
        photos: list[Photo],
        on_photo_update: PhotoUpdateCallback,
        on_photos_update: Optional[PhotosUpdateCallback] = None,
    ) -> ApplyResult:
        try:
            suggestion = self.get_suggestion(suggestion_id)
            if suggestion.status.terminal:
                raise InvalidStateError(suggestion_id, suggestion.status.value, "accept")
        except (NotFoundError, InvalidStateError) as e:
            self._set_error(str(e))
            raise

        all_actions: list[PhotoAction] = []
        for rec in suggestion.recommendations:
            all_actions.extend(photo_actions.create_actions_from_recommendation(rec))
        log.info("Applying %d actions for suggestion %s", len(all_actions), suggestion_id)

        before = {p.id: p for p in photos}
        result = photo_actions.apply_curation_actions(
            all_actions, photos, on_photo_update, on_photos_update,
        )

        if result.applied_actions:
            touched = {a.photo_id for a in result.applied_actions}
            self.undo_stack.append(UndoAction(
                id=f"undo-{uuid.uuid4().hex[:12]}",
                suggestion_id=suggestion_id,
                description=f"Applied Scout AI suggestion: {suggestion.message[:50]}...",
                timestamp=datetime.now(timezone.utc),
                previous_photos=[before[pid] for pid in before if pid in touched],
            ))
            del self.undo_stack[:-UNDO_STACK_LIMIT]

        if result.success:
            self._transition(suggestion_id, SuggestionStatus.ACCEPTED, "accept")
            self._record_decision(suggestion, accepted=True)
            log.info("Accepted suggestion %s, applied %d actions",
                     suggestion_id, len(result.applied_actions))
        else:
            log.warning("Some actions failed when accepting %s: %s", suggestion_id, result.error)
            self._set_error(result.error or "Some photo actions failed to apply")
        return result

    def reject_suggestion(self, suggestion_id: str) -> None:
        suggestion = self._transition(suggestion_id, SuggestionStatus.REJECTED, "reject")
        self._record_decision(suggestion, accepted=False)

    def dismiss_suggestion(self, suggestion_id: str) -> None:
        """Dismiss without any learning effect; repeated dismissals are no-ops."""
        suggestion = self.get_suggestion(suggestion_id)
        if suggestion.status is SuggestionStatus.DISMISSED:
            return
        self._transition(suggestion_id, SuggestionStatus.DISMISSED, "dismiss")

    # ---- direct photo management -----------------------------------------

    def apply_curation_actions(
        self, actions: list[PhotoAction], photos: list[Photo], on_photo_update: PhotoUpdateCallback,
        on_photos_update: Optional[PhotosUpdateCallback] = None,
    ) -> ApplyResult:
        return photo_actions.apply_curation_actions(actions, photos, on_photo_update, on_photos_update)

    def archive_photo(self, photo_id: str, reason: str, photos: list[Photo],
                      on_photo_update: PhotoUpdateCallback) -> Photo:
        return photo_actions.archive_photo(photo_id, reason, photos, on_photo_update)

    def restore_photo(self, photo_id: str, photos: list[Photo],
                      on_photo_update: PhotoUpdateCallback) -> Photo:
        return photo_actions.restore_photo(photo_id, photos, on_photo_update)

    def undo_last_action(self, on_photo_update: PhotoUpdateCallback) -> Optional[UndoAction]:
        """Re-deliver the photo snapshots taken before the last accepted suggestion."""
        if not self.undo_stack:
            return None
        entry = self.undo_stack.pop()
        log.info("Undoing: %s", entry.description)
        for photo in reversed(entry.previous_photos):
            try:
                on_photo_update(photo)
            except Exception as e:
                log.error("Failed to restore photo %s: %s", photo.id, e)
                self._set_error(f"Failed to undo action: {e}")
        return entry

    def clear_undo_stack(self):
        self.undo_stack.clear()

    # ---- similarity accessors ---------------------------------------------

    def cancel_analysis(self):
        self.pipeline.cancel_analysis()

    def get_similarity_score(self, photo1_id: str, photo2_id: str):
        return self.pipeline.get_similarity_score(photo1_id, photo2_id)

    def get_group_for_photo(self, photo_id: str) -> Optional[PhotoSimilarityGroup]:
        return self.pipeline.get_group_for_photo(photo_id)
