"""Clustering via Union-Find for similar-photo grouping."""
import logging
import uuid
from collections import defaultdict
from statistics import mean
from typing import Optional

from scoutai.core.models import GroupType, Photo, PhotoSimilarityGroup, SimilarityScore

log = logging.getLogger("scoutai.clustering")

SimilarityMatrix = dict[str, dict[str, SimilarityScore]]

_COMPONENTS = (
    "visual_similarity",
    "content_similarity",
    "temporal_proximity",
    "spatial_proximity",
    "semantic_similarity",
)


class UnionFind:
    def __init__(self):
        self.parent: dict[str, str] = {}
        self.rank: dict[str, int] = {}

    def add(self, x: str):
        if x not in self.parent:
            self.parent[x] = x
            self.rank[x] = 0

    def find(self, x: str) -> str:
        while self.parent[x] != x:
            self.parent[x] = self.parent[self.parent[x]]  # path compression
            x = self.parent[x]
        return x

    def union(self, x: str, y: str):
        rx, ry = self.find(x), self.find(y)
        if rx == ry:
            return
        if self.rank[rx] < self.rank[ry]:
            rx, ry = ry, rx
        self.parent[ry] = rx
        if self.rank[rx] == self.rank[ry]:
            self.rank[rx] += 1

    def components(self) -> dict[str, list[str]]:
        groups: dict[str, list[str]] = defaultdict(list)
        for x in self.parent:
            groups[self.find(x)].append(x)
        return dict(groups)


def matrix_lookup(matrix: SimilarityMatrix, a: str, b: str) -> Optional[SimilarityScore]:
    return matrix.get(a, {}).get(b)


def aggregate_scores(scores: list[SimilarityScore]) -> SimilarityScore:
    """Component-wise mean over the scores that carry each component."""
    values: dict[str, float] = {}
    for name in _COMPONENTS:
        carried = [s.component(name) for s in scores if name in s.components]
        if carried:
            values[name] = mean(carried)
    degraded = sorted({layer for s in scores for layer in s.degraded_layers})
    return SimilarityScore(
        **values,
        overall_similarity=mean(s.overall_similarity for s in scores) if scores else 0.0,
        components=frozenset(values),
        exact_match=bool(scores) and all(s.exact_match for s in scores),
        degraded_layers=tuple(degraded),
    )


def _is_incremental(photos: list[Photo], matrix: SimilarityMatrix, use_visual: bool) -> bool:
    """Monotonic time spread with similarity to the first shot steadily falling."""
    if len(photos) < 3 or any(p.captured_at is None for p in photos):
        return False
    ordered = sorted(photos, key=lambda p: p.captured_at)
    times = [p.captured_at for p in ordered]
    if any(t2 <= t1 for t1, t2 in zip(times, times[1:])):
        return False

    first = ordered[0]
    scores: list[SimilarityScore] = []
    for photo in ordered[1:]:
        score = matrix_lookup(matrix, first.id, photo.id)
        if score is None:
            return False
        scores.append(score)
    # a pair with a degraded vision layer carries no visual component
    if use_visual and all("visual_similarity" in s.components for s in scores):
        trail = [s.visual_similarity for s in scores]
    else:
        trail = [s.overall_similarity for s in scores]
    non_increasing = all(b <= a for a, b in zip(trail, trail[1:]))
    return non_increasing and trail[-1] < trail[0]


def classify_group_type(
    photos: list[Photo],
    profile: SimilarityScore,
    matrix: SimilarityMatrix,
) -> GroupType:
    """Deterministic group type from the similarity profile and capture order.

    Every group gets exactly one type; redundant_documentation is the fallback.
    """
    has = profile.components
    temporal = profile.temporal_proximity if "temporal_proximity" in has else None
    spatial = profile.spatial_proximity if "spatial_proximity" in has else None
    visual = profile.visual_similarity if "visual_similarity" in has else None

    # spatial closeness stands in for visual closeness without the vision layer
    if visual is not None:
        visually_close = visual >= 0.8
    else:
        visually_close = spatial is not None and spatial >= 0.85
    if "content_similarity" in has:
        same_content = profile.content_similarity >= 0.8
    else:
        same_content = True

    if temporal is not None and temporal >= 0.85 and visually_close and same_content:
        return GroupType.RETRY_SHOTS

    if temporal is not None and _is_incremental(photos, matrix, use_visual=visual is not None):
        return GroupType.INCREMENTAL_PROGRESS

    if visual is not None:
        if visual >= 0.7 and spatial is not None and 0.4 <= spatial < 0.95:
            return GroupType.ANGLE_VARIATIONS
    elif spatial is not None and temporal is not None and spatial >= 0.7 and temporal >= 0.5:
        return GroupType.ANGLE_VARIATIONS

    return GroupType.REDUNDANT_DOCUMENTATION


def build_similarity_groups(
    photos: list[Photo],
    matrix: SimilarityMatrix,
    threshold: float,
    incomplete: bool = False,
) -> list[PhotoSimilarityGroup]:
    """Connected components of the graph with edges at overall >= threshold.

    Components smaller than two photos are dropped. Groups are disjoint by
    photo id and sorted by confidence, highest first.
    """
    by_id: dict[str, Photo] = {}
    for p in photos:
        by_id.setdefault(p.id, p)
    ids = list(by_id)

    uf = UnionFind()
    for pid in ids:
        uf.add(pid)

    edges = 0
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            score = matrix_lookup(matrix, ids[i], ids[j])
            if score is not None and score.overall_similarity >= threshold:
                uf.union(ids[i], ids[j])
                edges += 1

    groups: list[PhotoSimilarityGroup] = []
    order = {pid: i for i, pid in enumerate(ids)}
    for member_ids in uf.components().values():
        if len(member_ids) < 2:
            continue
        member_ids.sort(key=order.__getitem__)
        members = [by_id[pid] for pid in member_ids]

        scores: list[SimilarityScore] = []
        for i, a in enumerate(member_ids):
            for b in member_ids[i + 1:]:
                score = matrix_lookup(matrix, a, b)
                if score is not None:
                    scores.append(score)
        profile = aggregate_scores(scores)
        groups.append(PhotoSimilarityGroup(
            id=f"group-{uuid.uuid4().hex[:12]}",
            photos=members,
            similarity=profile,
            group_type=classify_group_type(members, profile, matrix),
            confidence=max(0.0, min(1.0, profile.overall_similarity)),
            incomplete=incomplete,
        ))

    groups.sort(key=lambda g: (-g.confidence, order[g.photos[0].id]))
    log.info("Found %d groups from %d photos (%d edges, threshold %.2f)",
             len(groups), len(ids), edges, threshold)
    return groups
