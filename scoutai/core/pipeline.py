"""Layered similarity pipeline: evidence gathering, pairwise scoring, grouping."""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from PySide6.QtCore import QObject, Signal

from scoutai.core.backends import ImageFetcher, SemanticAnalyzer, VisionEmbedder
from scoutai.core.capture_sessions import build_capture_sessions, session_index
from scoutai.core.clustering import SimilarityMatrix, build_similarity_groups, matrix_lookup
from scoutai.core.config import PipelineConfig
from scoutai.core.errors import BackendError, ConfigurationError, LayerFailureError
from scoutai.core.models import Photo, PhotoSimilarityGroup, SimilarityScore
from scoutai.core.similarity import PhotoEvidence, calculate_similarity

log = logging.getLogger("scoutai.pipeline")

CANCELLED_MESSAGE = "Analysis cancelled by user"
TOO_FEW_PHOTOS_MESSAGE = "Need at least 2 photos for similarity analysis"

# progress checkpoints, percent
_EVIDENCE_START = 5
_SCORING_START = 40
_SCORING_END = 95


class CancellationToken:
    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class AnalysisResult:
    all_groups: list[PhotoSimilarityGroup] = field(default_factory=list)
    groups: list[PhotoSimilarityGroup] = field(default_factory=list)
    matrix: SimilarityMatrix = field(default_factory=dict)
    complete: bool = True
    pairs_scored: int = 0
    degraded_pairs: list[tuple[str, str, tuple[str, ...]]] = field(default_factory=list)
    failed_pairs: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class VisualSimilarityState:
    is_analyzing: bool = False
    progress: int = 0
    error: Optional[str] = None
    result: AnalysisResult = field(default_factory=AnalysisResult)

    @property
    def similarity_groups(self) -> list[PhotoSimilarityGroup]:
        return self.result.groups

    @property
    def similarity_matrix(self) -> SimilarityMatrix:
        return self.result.matrix


class _Run:
    """Bookkeeping for one analyze_similarity call; never shared."""

    def __init__(self, run_id: int, token: CancellationToken):
        self.run_id = run_id
        self.token = token
        self.progress = 0


class SimilarityPipeline(QObject):
    progress_updated = Signal(int)          # percent 0-100
    analysis_finished = Signal(object)      # AnalysisResult

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        embedder: Optional[VisionEmbedder] = None,
        analyzer: Optional[SemanticAnalyzer] = None,
        fetcher: Optional[ImageFetcher] = None,
    ):
        super().__init__()
        self.config = config or PipelineConfig()
        self.embedder = embedder
        self.analyzer = analyzer
        self.fetcher = fetcher
        self.state = VisualSimilarityState()
        self._run_counter = 0
        self._latest_run = 0
        self._active: dict[int, _Run] = {}

    # ---- observable state -------------------------------------------------

    def _set_progress(self, run: _Run, value: int):
        value = max(run.progress, min(100, int(value)))
        if value == run.progress:
            return
        run.progress = value
        if run.run_id == self._latest_run:
            self.state.progress = value
            self.progress_updated.emit(value)

    def cancel_analysis(self):
        if not self._active:
            return
        log.info("Cancelling %d running analysis", len(self._active))
        for run in self._active.values():
            run.token.cancel()

    def clear_analysis(self):
        self.state = VisualSimilarityState(is_analyzing=bool(self._active))

    def get_all_groups(self) -> list[PhotoSimilarityGroup]:
        return list(self.state.result.all_groups)

    def get_filtered_groups(self) -> list[PhotoSimilarityGroup]:
        return list(self.state.result.groups)

    def get_similarity_score(self, photo1_id: str, photo2_id: str) -> Optional[SimilarityScore]:
        return matrix_lookup(self.state.result.matrix, photo1_id, photo2_id)

    def get_group_for_photo(self, photo_id: str) -> Optional[PhotoSimilarityGroup]:
        for group in self.state.result.all_groups:
            if any(p.id == photo_id for p in group.photos):
                return group
        return None

    # ---- analysis ---------------------------------------------------------

    async def analyze_similarity(
        self,
        photos: list[Photo],
        similarity_threshold: Optional[float] = None,
        token: Optional[CancellationToken] = None,
    ) -> list[PhotoSimilarityGroup]:
        """Score all candidate pairs and return the confidence-filtered groups.

        The full result (including groups under the confidence gate) stays
        available through get_all_groups() and state.result.
        """
        config = self.config
        if similarity_threshold is not None:
            config = replace(config, similarity_threshold=similarity_threshold)
        config.validate()
        self._check_backends(config)

        if len(photos) < 2:
            self.state.error = TOO_FEW_PHOTOS_MESSAGE
            self.state.result = AnalysisResult()
            return []

        self._run_counter += 1
        run = _Run(self._run_counter, token or CancellationToken())
        self._latest_run = run.run_id
        self._active[run.run_id] = run
        self.state.is_analyzing = True
        self.state.error = None
        self.state.progress = 0

        try:
            result = await self._run_pipeline(photos, config, run)
        except Exception as e:
            log.exception("Similarity analysis failed")
            if run.run_id == self._latest_run:
                self.state.error = str(e) or "Unknown error during analysis"
            raise
        finally:
            del self._active[run.run_id]
            self.state.is_analyzing = bool(self._active)

        if run.run_id == self._latest_run:
            self.state.result = result
            if not result.complete:
                self.state.error = CANCELLED_MESSAGE
        self.analysis_finished.emit(result)
        return list(result.groups)

    def _check_backends(self, config: PipelineConfig):
        layers = config.enabled_layers
        if layers.vision_embedding and self.embedder is None:
            raise ConfigurationError("vision_embedding layer enabled without an embedder")
        if layers.ai_analysis and self.analyzer is None:
            raise ConfigurationError("ai_analysis layer enabled without a semantic analyzer")

    async def _run_pipeline(self, photos: list[Photo], config: PipelineConfig, run: _Run) -> AnalysisResult:
        unique: dict[str, Photo] = {}
        for p in photos:
            unique.setdefault(p.id, p)
        photos = list(unique.values())
        log.info("Starting similarity analysis of %d photos (layers: %s)",
                 len(photos), ", ".join(config.enabled_layers.names()))

        self._set_progress(run, _EVIDENCE_START)
        evidence = await self._gather_evidence(photos, config, run)
        if run.token.cancelled:
            return self._finish(photos, {}, config, run, complete=False)

        pairs = self._candidate_pairs(photos, config)
        matrix: SimilarityMatrix = {p.id: {} for p in photos}
        result = AnalysisResult()
        self._set_progress(run, _SCORING_START)

        for n, (a, b) in enumerate(pairs, start=1):
            if run.token.cancelled:
                log.info("Analysis cancelled after %d of %d pairs", n - 1, len(pairs))
                result = self._finish(photos, matrix, config, run, complete=False, partial=result)
                return result
            try:
                score = calculate_similarity(
                    a, b, config.enabled_layers, evidence[a.id], evidence[b.id], config.weights,
                )
            except LayerFailureError as e:
                log.warning("%s; pair excluded", e)
                result.failed_pairs.append((a.id, b.id))
            else:
                matrix[a.id][b.id] = score
                matrix[b.id][a.id] = score
                result.pairs_scored += 1
                if score.degraded_layers:
                    result.degraded_pairs.append((a.id, b.id, score.degraded_layers))

            span = _SCORING_END - _SCORING_START
            self._set_progress(run, _SCORING_START + span * n // len(pairs))
            if config.yield_every and n % config.yield_every == 0:
                await asyncio.sleep(0)

        return self._finish(photos, matrix, config, run, complete=True, partial=result)

    def _finish(
        self,
        photos: list[Photo],
        matrix: SimilarityMatrix,
        config: PipelineConfig,
        run: _Run,
        complete: bool,
        partial: Optional[AnalysisResult] = None,
    ) -> AnalysisResult:
        result = partial or AnalysisResult()
        result.complete = complete
        result.matrix = matrix
        result.all_groups = build_similarity_groups(
            photos, matrix, config.similarity_threshold, incomplete=not complete,
        )
        result.groups = [g for g in result.all_groups if g.confidence >= config.confidence_threshold]
        if complete:
            self._set_progress(run, 100)
        if result.degraded_pairs:
            log.warning("%d pairs scored with degraded layers", len(result.degraded_pairs))
        log.info(
            "Similarity analysis %s: %d pairs scored, %d groups (%d after confidence %.2f)",
            "complete" if complete else "cancelled",
            result.pairs_scored, len(result.all_groups), len(result.groups),
            config.confidence_threshold,
        )
        return result

    def _candidate_pairs(self, photos: list[Photo], config: PipelineConfig) -> list[tuple[Photo, Photo]]:
        same_session = None
        if config.candidate_gap_hours is not None and config.enabled_layers.metadata:
            sessions = build_capture_sessions(photos, config.candidate_gap_hours)
            same_session = session_index(sessions)

        pairs = []
        for i in range(len(photos)):
            for j in range(i + 1, len(photos)):
                a, b = photos[i], photos[j]
                if same_session is not None and same_session[a.id] != same_session[b.id]:
                    continue
                pairs.append((a, b))
        log.debug("%d candidate pairs from %d photos", len(pairs), len(photos))
        return pairs

    async def _gather_evidence(
        self, photos: list[Photo], config: PipelineConfig, run: _Run,
    ) -> dict[str, PhotoEvidence]:
        """Collect hashes, embeddings and AI descriptions, one photo at a time.

        A backend failure marks the layer failed for that photo only.
        """
        layers = config.enabled_layers
        evidence = {p.id: PhotoEvidence(file_hash=p.hash) for p in photos}
        remote_steps = [
            name for name, on in (
                ("file_hash", layers.file_hash and self.fetcher is not None),
                ("vision_embedding", layers.vision_embedding),
                ("ai_analysis", layers.ai_analysis),
            ) if on
        ]
        total = len(remote_steps) * len(photos)
        done = 0
        for step in remote_steps:
            for photo in photos:
                if run.token.cancelled:
                    return evidence
                ev = evidence[photo.id]
                try:
                    if step == "file_hash":
                        if not ev.file_hash:
                            ev.file_hash = await self.fetcher.file_hash(photo)
                    elif step == "vision_embedding":
                        ev.embedding = await self.embedder.embed(photo)
                    else:
                        ev.ai_description = await self.analyzer.describe(photo)
                except BackendError as e:
                    log.warning("%s layer unavailable for %s: %s", step, photo.id, e)
                    ev.failed_layers.add(step)
                done += 1
                span = _SCORING_START - _EVIDENCE_START
                self._set_progress(run, _EVIDENCE_START + span * done // total)
        return evidence


async def group_similar_photos(
    photos: list[Photo],
    quality_threshold: float = 0.6,
    pipeline: Optional[SimilarityPipeline] = None,
) -> list[PhotoSimilarityGroup]:
    """Group photos whose pairwise similarity clears quality_threshold.

    Returns every group (no confidence gate). Without a pipeline, only the
    metadata and file-hash layers run.
    """
    if not 0.0 <= quality_threshold <= 1.0:
        raise ValueError(f"quality_threshold must be within [0, 1], got {quality_threshold}")
    pipeline = pipeline or SimilarityPipeline()
    await pipeline.analyze_similarity(photos, similarity_threshold=quality_threshold)
    return pipeline.get_all_groups()
