"""Keep/archive recommendations and user-facing curation messages."""
import logging
import math
from collections import Counter, defaultdict

from scoutai.core.models import (
    CurationRecommendation, DetailLevel, GroupType, Photo,
    PhotoQualityMetrics, PhotoSimilarityGroup,
)

log = logging.getLogger("scoutai.curation")

# minutes of review time per photo taken out of the review queue
REVIEW_MINUTES_PER_PHOTO = 0.5

# share of a group kept, and the minimum keep count, per group type
_KEEP_RATIOS = {
    GroupType.ANGLE_VARIATIONS: (0.4, 1),
    GroupType.INCREMENTAL_PROGRESS: (0.6, 2),
    GroupType.REDUNDANT_DOCUMENTATION: (0.5, 1),
}

_GROUP_DESCRIPTIONS = {
    GroupType.RETRY_SHOTS: "multiple attempts at the same shot",
    GroupType.ANGLE_VARIATIONS: "different angles of the same subject",
    GroupType.INCREMENTAL_PROGRESS: "incremental progress documentation",
    GroupType.REDUNDANT_DOCUMENTATION: "similar documentation content",
}

NOTHING_FOUND_MESSAGE = "I've analyzed your photos and everything looks well organized!"


def calculate_quality_metrics(photo: Photo) -> PhotoQualityMetrics:
    """Documentation value estimated from metadata."""
    description = photo.description or ""
    description_words = len(description.split())
    tag_count = len(photo.tags)
    information_content = min(1.0, (description_words * 0.05 + tag_count * 0.1) / 2 + 0.3)

    bonus = 0.0
    if photo.coordinates:
        bonus += 0.1
    if len(description) > 10:
        bonus += 0.1
    if tag_count > 0:
        bonus += 0.1
    return PhotoQualityMetrics(
        information_content=information_content,
        documentation_value=min(1.0, information_content * 0.7 + bonus),
    )


def _rank_key(photo: Photo):
    q = calculate_quality_metrics(photo)
    # later captures win ties: retries are assumed to improve on earlier shots
    return (-q.documentation_value, -q.information_content, -(photo.captured_at or 0.0), photo.id)


def select_best_photos(photos: list[Photo], keep_count: int) -> list[Photo]:
    if not photos:
        return []
    if keep_count >= len(photos):
        return list(photos)
    return sorted(photos, key=_rank_key)[:keep_count]


def _subject_key(photo: Photo) -> frozenset[str]:
    return photo.tag_keys


def select_keepers(group: PhotoSimilarityGroup) -> list[Photo]:
    photos = group.photos
    if group.group_type is GroupType.RETRY_SHOTS:
        subjects: dict[frozenset[str], list[Photo]] = defaultdict(list)
        for p in photos:
            subjects[_subject_key(p)].append(p)
        return [select_best_photos(members, 1)[0] for members in subjects.values()]

    ratio, minimum = _KEEP_RATIOS[group.group_type]
    keep_count = min(len(photos), max(minimum, math.ceil(len(photos) * ratio)))
    return select_best_photos(photos, keep_count)


def calculate_time_savings(archive_count: int) -> float:
    """Minutes saved; grows with archive_count, never negative."""
    if archive_count <= 0:
        return 0.0
    return round(archive_count * REVIEW_MINUTES_PER_PHOTO, 1)


def generate_rationale(
    group: PhotoSimilarityGroup,
    keep: list[Photo],
    detail_level: DetailLevel = DetailLevel.DETAILED,
) -> str:
    description = _GROUP_DESCRIPTIONS[group.group_type]
    photo_count = len(group.photos)
    summary = f"I found {photo_count} photos showing {description}."
    if detail_level is DetailLevel.BRIEF:
        return summary

    if len(keep) == 1:
        rationale = (
            f"{summary} This photo captures everything you need with the best "
            "quality and most complete documentation."
        )
    else:
        rationale = (
            f"{summary} These {len(keep)} photos provide the most comprehensive "
            "documentation while eliminating redundancy."
        )

    if detail_level is DetailLevel.TECHNICAL:
        s = group.similarity
        parts = [f"overall {s.overall_similarity:.2f}"]
        for name in sorted(s.components):
            parts.append(f"{name.replace('_', ' ')} {s.component(name):.2f}")
        rationale += f" Similarity profile: {', '.join(parts)}; group confidence {group.confidence:.2f}."
    return rationale


def generate_curation_recommendation(
    group: PhotoSimilarityGroup,
    detail_level: DetailLevel = DetailLevel.DETAILED,
) -> CurationRecommendation:
    keep = select_keepers(group)
    keep_ids = {p.id for p in keep}
    keep = [p for p in group.photos if p.id in keep_ids]
    archive = [p for p in group.photos if p.id not in keep_ids]

    confidence = min(0.95, group.confidence * 0.9 + group.similarity.overall_similarity * 0.1)
    criterion = (
        "most_recent_retry" if group.group_type is GroupType.RETRY_SHOTS
        else "documentation_value"
    )
    log.debug("Group %s (%s): keep %d, archive %d",
              group.id, group.group_type.value, len(keep), len(archive))
    return CurationRecommendation(
        group=group,
        keep=keep,
        archive=archive,
        rationale=generate_rationale(group, keep, detail_level),
        estimated_time_saved=calculate_time_savings(len(archive)),
        confidence=max(0.0, confidence),
        keep_criterion=criterion,
    )


def generate_scout_ai_message(recommendations: list[CurationRecommendation]) -> str:
    """One conversational summary across all recommendations."""
    if not recommendations:
        return NOTHING_FOUND_MESSAGE

    total_photos = sum(len(r.group.photos) for r in recommendations)
    total_keep = sum(len(r.keep) for r in recommendations)
    total_savings = sum(r.estimated_time_saved for r in recommendations)

    if len(recommendations) == 1:
        group_type = recommendations[0].group.group_type
        if group_type is GroupType.RETRY_SHOTS:
            message = (
                f"I noticed {total_photos} photos that look like retry shots of the same thing. "
                f"Would you like me to recommend the best {total_keep} that capture everything you need?"
            )
        elif group_type is GroupType.ANGLE_VARIATIONS:
            message = (
                f"I found {total_photos} photos showing the same work from different angles. "
                f"I can help you pick the {total_keep} most useful shots - want to see my suggestions?"
            )
        elif group_type is GroupType.INCREMENTAL_PROGRESS:
            message = (
                f"I see {total_photos} progress photos that tell a similar story. Would you like me "
                f"to recommend the {total_keep} key shots that best document the progression?"
            )
        else:
            message = (
                f"I've noticed {total_photos} photos that appear very similar. I can help you "
                f"streamline to the best {total_keep} photos - shall I show you?"
            )
    else:
        primary = Counter(r.group.group_type for r in recommendations).most_common(1)[0][0]
        message = (
            f"I found {len(recommendations)} groups of similar photos ({total_photos} total), "
            f"mostly {_GROUP_DESCRIPTIONS[primary]}. I can help you streamline these to "
            f"{total_keep} photos that maintain all the important documentation."
        )

    if total_savings >= 1:
        minutes = round(total_savings)
        message += (
            f" This could save you about {minutes} minute{'s' if minutes != 1 else ''} "
            "during photo reviews."
        )
    return message
