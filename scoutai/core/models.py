"""Data models for Scout AI photo curation."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ArchiveState(Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    PENDING_DELETION = "pending_deletion"


class GroupType(Enum):
    RETRY_SHOTS = "retry_shots"
    ANGLE_VARIATIONS = "angle_variations"
    INCREMENTAL_PROGRESS = "incremental_progress"
    REDUNDANT_DOCUMENTATION = "redundant_documentation"


class SuggestionStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DISMISSED = "dismissed"

    @property
    def terminal(self) -> bool:
        return self is not SuggestionStatus.PENDING


class SuggestionConfidence(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SuggestionType(Enum):
    PHOTO_CURATION = "photo_curation"


class ActionType(Enum):
    KEEP = "keep"
    ARCHIVE = "archive"
    TAG = "tag"
    DELETE = "delete"


class DetailLevel(Enum):
    BRIEF = "brief"
    DETAILED = "detailed"
    TECHNICAL = "technical"


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float
    altitude: Optional[float] = None


@dataclass(frozen=True)
class ImageURI:
    type: str          # original | web | thumbnail
    uri: str


@dataclass(frozen=True)
class Tag:
    id: str
    display_value: str
    value: str = ""

    @property
    def key(self) -> str:
        return (self.value or self.display_value).strip().lower()


@dataclass(frozen=True)
class Photo:
    """A CompanyCam photo. Read-only; updates produce new instances."""
    id: str
    project_id: str = ""
    creator_id: str = ""
    company_id: str = ""
    creator_name: str = ""
    captured_at: Optional[float] = None     # unix seconds
    coordinates: tuple[Coordinate, ...] = ()
    uris: tuple[ImageURI, ...] = ()
    tags: tuple[Tag, ...] = ()
    description: Optional[str] = None
    hash: str = ""
    archive_state: ArchiveState = ArchiveState.ACTIVE
    archived_at: Optional[float] = None
    archive_reason: Optional[str] = None

    @property
    def primary_coordinate(self) -> Optional[Coordinate]:
        return self.coordinates[0] if self.coordinates else None

    def uri_for(self, *renditions: str) -> Optional[str]:
        """Return the first URI matching the given renditions, in order."""
        by_type = {u.type: u.uri for u in self.uris}
        for rendition in renditions or ("web", "original", "thumbnail"):
            if by_type.get(rendition):
                return by_type[rendition]
        return None

    @property
    def tag_keys(self) -> frozenset[str]:
        return frozenset(t.key for t in self.tags if t.key)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Photo":
        """Build a Photo from a CompanyCam API payload."""
        coords = data.get("coordinates") or []
        if isinstance(coords, dict):
            coords = [coords]
        tags = []
        for i, raw in enumerate(data.get("tags") or []):
            if isinstance(raw, str):
                tags.append(Tag(id=f"tag-{i}", display_value=raw, value=raw.lower()))
            else:
                display = raw.get("display_value") or raw.get("value") or ""
                tags.append(Tag(
                    id=str(raw.get("id", f"tag-{i}")),
                    display_value=display,
                    value=raw.get("value") or display.lower(),
                ))
        captured = data.get("captured_at")
        if isinstance(captured, str):
            captured = datetime.fromisoformat(captured.replace("Z", "+00:00")).timestamp()
        state = data.get("archive_state") or ArchiveState.ACTIVE.value
        return cls(
            id=str(data["id"]),
            project_id=str(data.get("project_id") or ""),
            creator_id=str(data.get("creator_id") or ""),
            company_id=str(data.get("company_id") or ""),
            creator_name=data.get("creator_name") or "",
            captured_at=float(captured) if captured is not None else None,
            coordinates=tuple(
                Coordinate(
                    latitude=float(c["latitude"]),
                    longitude=float(c["longitude"]),
                    altitude=c.get("altitude"),
                )
                for c in coords
            ),
            uris=tuple(ImageURI(type=u["type"], uri=u["uri"]) for u in data.get("uris") or []),
            tags=tuple(tags),
            description=data.get("description"),
            hash=data.get("hash") or "",
            archive_state=ArchiveState(state),
            archived_at=data.get("archived_at"),
            archive_reason=data.get("archive_reason"),
        )


@dataclass(frozen=True)
class SimilarityScore:
    visual_similarity: float = 0.0
    content_similarity: float = 0.0
    temporal_proximity: float = 0.0
    spatial_proximity: float = 0.0
    semantic_similarity: float = 0.0
    overall_similarity: float = 0.0
    # component names that actually contributed to overall_similarity
    components: frozenset[str] = frozenset()
    exact_match: bool = False
    degraded_layers: tuple[str, ...] = ()

    def component(self, name: str) -> float:
        return getattr(self, name)


@dataclass
class PhotoSimilarityGroup:
    id: str
    photos: list[Photo]
    similarity: SimilarityScore
    group_type: GroupType
    confidence: float
    incomplete: bool = False

    @property
    def photo_ids(self) -> list[str]:
        return [p.id for p in self.photos]


@dataclass
class PhotoQualityMetrics:
    information_content: float
    documentation_value: float


@dataclass
class CurationRecommendation:
    group: PhotoSimilarityGroup
    keep: list[Photo]
    archive: list[Photo]
    rationale: str
    estimated_time_saved: float     # minutes
    confidence: float
    keep_criterion: str = "documentation_value"


@dataclass
class Suggestion:
    id: str
    type: SuggestionType
    message: str
    recommendations: list[CurationRecommendation]
    confidence: SuggestionConfidence
    actionable: bool
    created_at: datetime
    status: SuggestionStatus = SuggestionStatus.PENDING


@dataclass
class LearningData:
    accepted_recommendations: list[str] = field(default_factory=list)
    rejected_recommendations: list[str] = field(default_factory=list)
    preferred_keep_criteria: list[str] = field(default_factory=list)


def _default_group_types() -> dict[str, bool]:
    return {t.value: True for t in GroupType}


@dataclass
class UserCurationPreferences:
    user_id: str
    preferred_group_types: dict[str, bool] = field(default_factory=_default_group_types)
    quality_threshold: float = 0.6
    detail_level: DetailLevel = DetailLevel.DETAILED
    acceptance_rate: dict[str, float] = field(default_factory=dict)
    learning_data: LearningData = field(default_factory=LearningData)

    def allows(self, group_type: GroupType) -> bool:
        return self.preferred_group_types.get(group_type.value, True)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used by the stored JSON blob."""
        return {
            "userId": self.user_id,
            "preferredGroupTypes": dict(self.preferred_group_types),
            "qualityThreshold": self.quality_threshold,
            "detailLevel": self.detail_level.value,
            "acceptanceRate": dict(self.acceptance_rate),
            "learningData": {
                "acceptedRecommendations": list(self.learning_data.accepted_recommendations),
                "rejectedRecommendations": list(self.learning_data.rejected_recommendations),
                "preferredKeepCriteria": list(self.learning_data.preferred_keep_criteria),
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], user_id: Optional[str] = None) -> "UserCurationPreferences":
        learning = data.get("learningData") or {}
        group_types = _default_group_types()
        group_types.update(data.get("preferredGroupTypes") or {})
        return cls(
            user_id=user_id or data.get("userId", ""),
            preferred_group_types=group_types,
            quality_threshold=float(data.get("qualityThreshold", 0.6)),
            detail_level=DetailLevel(data.get("detailLevel", DetailLevel.DETAILED.value)),
            acceptance_rate=dict(data.get("acceptanceRate") or {}),
            learning_data=LearningData(
                accepted_recommendations=list(learning.get("acceptedRecommendations") or []),
                rejected_recommendations=list(learning.get("rejectedRecommendations") or []),
                preferred_keep_criteria=list(learning.get("preferredKeepCriteria") or []),
            ),
        )


@dataclass(frozen=True)
class PhotoAction:
    type: ActionType
    photo_id: str
    reason: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class ApplyResult:
    success: bool
    applied_actions: list[PhotoAction] = field(default_factory=list)
    failed_actions: list[PhotoAction] = field(default_factory=list)
    updated_photos: list[Photo] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class UndoAction:
    id: str
    suggestion_id: str
    description: str
    timestamp: datetime
    # snapshots of photos before the suggestion was applied
    previous_photos: list[Photo] = field(default_factory=list)


@dataclass
class CaptureSession:
    id: str
    label: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    photo_ids: list[str] = field(default_factory=list)
