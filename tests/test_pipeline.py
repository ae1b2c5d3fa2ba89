"""Tests for the layered similarity pipeline."""
import asyncio

import numpy as np
import pytest

from conftest import make_photo
from scoutai.core.config import EnabledLayers, PipelineConfig
from scoutai.core.errors import BackendError, ConfigurationError
from scoutai.core.models import GroupType
from scoutai.core.pipeline import (
    CANCELLED_MESSAGE, TOO_FEW_PHOTOS_MESSAGE, CancellationToken, SimilarityPipeline,
    group_similar_photos,
)

METADATA_AI = EnabledLayers(file_hash=False, vision_embedding=False, metadata=True, ai_analysis=True)
METADATA_VISION = EnabledLayers(file_hash=False, vision_embedding=True, metadata=True, ai_analysis=False)


class FakeAnalyzer:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)

    async def describe(self, photo):
        if photo.id in self.fail_for:
            raise BackendError("service unavailable")
        return "close up of roof flashing near chimney"


class CancellingEmbedder:
    """Cancels the given token after a number of embeddings."""

    def __init__(self, token, after):
        self.token = token
        self.after = after
        self.calls = 0

    async def embed(self, photo):
        self.calls += 1
        if self.calls >= self.after:
            self.token.cancel()
        return np.ones(8, dtype=np.float32)


def test_retry_burst_forms_one_group(retry_burst):
    pipeline = SimilarityPipeline()
    groups = asyncio.run(pipeline.analyze_similarity(retry_burst))
    assert len(groups) == 1
    assert groups[0].group_type is GroupType.RETRY_SHOTS
    assert set(groups[0].photo_ids) == {"p0", "p1", "p2"}
    assert pipeline.state.result.complete
    assert pipeline.state.error is None


def test_scattered_photos_no_groups(scattered):
    assert asyncio.run(SimilarityPipeline().analyze_similarity(scattered)) == []


def test_progress_is_monotonic(retry_burst):
    pipeline = SimilarityPipeline()
    seen = []
    pipeline.progress_updated.connect(lambda value: seen.append(value))
    asyncio.run(pipeline.analyze_similarity(retry_burst))
    assert seen == sorted(seen)
    assert seen[-1] == 100
    assert pipeline.state.progress == 100
    assert not pipeline.state.is_analyzing


def test_too_few_photos():
    pipeline = SimilarityPipeline()
    assert asyncio.run(pipeline.analyze_similarity([make_photo("solo")])) == []
    assert pipeline.state.error == TOO_FEW_PHOTOS_MESSAGE


def test_missing_backend_is_configuration_error(retry_burst):
    pipeline = SimilarityPipeline(PipelineConfig(enabled_layers=METADATA_AI))
    with pytest.raises(ConfigurationError):
        asyncio.run(pipeline.analyze_similarity(retry_burst))


def test_ai_failure_degrades_pairs(retry_burst):
    pipeline = SimilarityPipeline(
        PipelineConfig(enabled_layers=METADATA_AI), analyzer=FakeAnalyzer(fail_for={"p1"}))
    groups = asyncio.run(pipeline.analyze_similarity(retry_burst))
    result = pipeline.state.result
    assert len(groups) == 1
    assert {(a, b) for a, b, _ in result.degraded_pairs} == {("p0", "p1"), ("p1", "p2")}
    full = pipeline.get_similarity_score("p0", "p2")
    assert "content_similarity" in full.components
    degraded = pipeline.get_similarity_score("p0", "p1")
    assert degraded.degraded_layers == ("ai_analysis",)


def test_cancellation_returns_incomplete_result(retry_burst):
    token = CancellationToken()
    pipeline = SimilarityPipeline(
        PipelineConfig(enabled_layers=METADATA_VISION), embedder=CancellingEmbedder(token, after=2))
    groups = asyncio.run(pipeline.analyze_similarity(retry_burst, token=token))
    assert groups == []
    assert not pipeline.state.result.complete
    assert pipeline.state.error == CANCELLED_MESSAGE
    assert not pipeline.state.is_analyzing


def test_all_groups_kept_under_confidence_gate(retry_burst):
    pipeline = SimilarityPipeline(PipelineConfig(confidence_threshold=0.99))
    assert asyncio.run(pipeline.analyze_similarity(retry_burst)) == []
    assert len(pipeline.get_all_groups()) == 1
    assert pipeline.get_filtered_groups() == []


def test_matrix_accessors(retry_burst):
    pipeline = SimilarityPipeline()
    asyncio.run(pipeline.analyze_similarity(retry_burst))
    assert pipeline.get_similarity_score("p0", "p1") == pipeline.get_similarity_score("p1", "p0")
    assert pipeline.get_similarity_score("p0", "missing") is None
    assert pipeline.get_group_for_photo("p2").photo_ids == ["p0", "p1", "p2"]
    pipeline.clear_analysis()
    assert pipeline.get_all_groups() == []


def test_capture_sessions_limit_pairs():
    photos = [make_photo(f"a{i}", minutes=i) for i in range(3)]
    photos += [make_photo(f"b{i}", minutes=60 * 10 + i) for i in range(3)]
    pipeline = SimilarityPipeline(PipelineConfig(candidate_gap_hours=4))
    asyncio.run(pipeline.analyze_similarity(photos))
    assert pipeline.state.result.pairs_scored == 6
    assert pipeline.get_similarity_score("a0", "b0") is None


def test_group_similar_photos(retry_burst):
    groups = asyncio.run(group_similar_photos(retry_burst, quality_threshold=0.6))
    assert len(groups) == 1


def test_group_similar_photos_rejects_bad_threshold(retry_burst):
    with pytest.raises(ValueError):
        asyncio.run(group_similar_photos(retry_burst, quality_threshold=1.5))
