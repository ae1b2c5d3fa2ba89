"""Multi-signal pairwise similarity scoring.

Layer -> components:
    metadata          temporal_proximity, spatial_proximity, semantic_similarity
    vision_embedding  visual_similarity
    ai_analysis       content_similarity
    file_hash         none; an exact hash match forces overall_similarity = 1.0

overall_similarity is the weighted mean of the components produced by
layers that are enabled and did not fail for the pair.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from scoutai.core.config import EnabledLayers, SimilarityWeights
from scoutai.core.errors import ConfigurationError, LayerFailureError
from scoutai.core.features import cosine_similarity
from scoutai.core.hashing import hashes_equal
from scoutai.core.models import Photo, SimilarityScore

log = logging.getLogger("scoutai.similarity")

EARTH_RADIUS_KM = 6371.0

LAYER_COMPONENTS = {
    "metadata": ("temporal_proximity", "spatial_proximity", "semantic_similarity"),
    "vision_embedding": ("visual_similarity",),
    "ai_analysis": ("content_similarity",),
    "file_hash": (),
}

_WORD_RE = re.compile(r"[a-z0-9']+")


@dataclass
class PhotoEvidence:
    """Per-photo inputs gathered by the pipeline before scoring."""
    file_hash: str = ""
    embedding: Optional[np.ndarray] = None
    ai_description: Optional[str] = None
    failed_layers: set[str] = field(default_factory=set)


def calculate_temporal_proximity(a: Photo, b: Photo) -> float:
    if a.captured_at is None or b.captured_at is None:
        return 0.0
    minutes = abs(a.captured_at - b.captured_at) / 60.0
    if minutes == 0:
        return 1.0
    if minutes < 5:
        return 0.95
    if minutes < 30:
        return 0.85
    if minutes < 120:
        return 0.5
    if minutes < 1440:
        return 0.3
    return 0.1


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    h = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
         * math.sin(d_lon / 2) ** 2)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def calculate_spatial_proximity(a: Photo, b: Photo) -> float:
    ca, cb = a.primary_coordinate, b.primary_coordinate
    if ca is None or cb is None:
        return 0.0
    if ca.latitude == cb.latitude and ca.longitude == cb.longitude:
        return 1.0
    km = haversine_km(ca.latitude, ca.longitude, cb.latitude, cb.longitude)
    if km < 0.01:
        return 0.98
    if km < 0.05:
        return 0.92
    if km < 0.1:
        return 0.6
    if km < 0.5:
        return 0.4
    if km < 1.0:
        return 0.2
    return 0.0


def _jaccard(left: frozenset, right: frozenset) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def significant_words(text: Optional[str]) -> frozenset[str]:
    """Lowercased words longer than three characters."""
    return frozenset(w for w in _WORD_RE.findall((text or "").lower()) if len(w) > 3)


def calculate_semantic_similarity(a: Photo, b: Photo) -> float:
    """Tag and description overlap."""
    tag_sim = _jaccard(a.tag_keys, b.tag_keys)
    desc_sim = _jaccard(significant_words(a.description), significant_words(b.description))
    return tag_sim * 0.7 + desc_sim * 0.3


def calculate_content_similarity(a: Photo, b: Photo, desc_a: str, desc_b: str) -> float:
    """AI-description overlap, nudged by sharing a project."""
    desc_sim = _jaccard(significant_words(desc_a), significant_words(desc_b))
    same_project = 1.0 if a.project_id and a.project_id == b.project_id else 0.0
    return desc_sim * 0.7 + same_project * 0.3


def _layer_components(
    layer: str, a: Photo, b: Photo, ev_a: PhotoEvidence, ev_b: PhotoEvidence,
) -> Optional[dict[str, float]]:
    """Components for one layer, or None when the layer failed for the pair."""
    if layer in ev_a.failed_layers or layer in ev_b.failed_layers:
        return None
    if layer == "metadata":
        return {
            "temporal_proximity": calculate_temporal_proximity(a, b),
            "spatial_proximity": calculate_spatial_proximity(a, b),
            "semantic_similarity": calculate_semantic_similarity(a, b),
        }
    if layer == "vision_embedding":
        if ev_a.embedding is None or ev_b.embedding is None:
            return None
        return {"visual_similarity": cosine_similarity(ev_a.embedding, ev_b.embedding)}
    if layer == "ai_analysis":
        if ev_a.ai_description is None or ev_b.ai_description is None:
            return None
        return {"content_similarity": calculate_content_similarity(
            a, b, ev_a.ai_description, ev_b.ai_description)}
    return {}


def calculate_similarity(
    a: Photo,
    b: Photo,
    layers: EnabledLayers,
    evidence_a: Optional[PhotoEvidence] = None,
    evidence_b: Optional[PhotoEvidence] = None,
    weights: SimilarityWeights = SimilarityWeights(),
) -> SimilarityScore:
    """Score one pair of photos over the enabled layers.

    Raises ConfigurationError when no layer is enabled and LayerFailureError
    when every enabled layer failed for this pair.
    """
    enabled = layers.names()
    if not enabled:
        raise ConfigurationError("Cannot score photos with zero enabled layers")

    ev_a = evidence_a or PhotoEvidence(file_hash=a.hash)
    ev_b = evidence_b or PhotoEvidence(file_hash=b.hash)

    if a.id == b.id:
        values = {c: 1.0 for layer in enabled for c in LAYER_COMPONENTS[layer]}
        return SimilarityScore(
            **values, overall_similarity=1.0,
            components=frozenset(values), exact_match=layers.file_hash,
        )

    values: dict[str, float] = {}
    degraded: list[str] = []
    for layer in enabled:
        if layer == "file_hash":
            continue
        produced = _layer_components(layer, a, b, ev_a, ev_b)
        if produced is None:
            degraded.append(layer)
            continue
        values.update(produced)

    exact = False
    if layers.file_hash:
        if "file_hash" in ev_a.failed_layers or "file_hash" in ev_b.failed_layers:
            degraded.append("file_hash")
        else:
            exact = hashes_equal(ev_a.file_hash, ev_b.file_hash)

    if degraded and len(degraded) == len(enabled) and not exact:
        raise LayerFailureError((a.id, b.id), degraded)

    values = {k: max(0.0, min(1.0, v)) for k, v in values.items()}
    if exact:
        overall = 1.0
    elif values:
        total_weight = sum(weights.for_component(c) for c in values)
        overall = sum(weights.for_component(c) * v for c, v in values.items()) / total_weight
    else:
        # only the hash layer ran and the hashes differ
        overall = 0.0

    if degraded:
        log.debug("Degraded score %s/%s: %s", a.id, b.id, ", ".join(degraded))

    return SimilarityScore(
        **values,
        overall_similarity=max(0.0, min(1.0, overall)),
        components=frozenset(values),
        exact_match=exact,
        degraded_layers=tuple(degraded),
    )
