"""Pipeline and backend configuration."""
import os
from dataclasses import dataclass, field
from typing import Iterable, Optional

from scoutai.core.errors import ConfigurationError

# layer name -> accepted aliases (camelCase names come from stored configs)
_LAYER_ALIASES = {
    "file_hash": ("file_hash", "filehash", "hash"),
    "vision_embedding": ("vision_embedding", "visionembedding", "tensorflow", "vision"),
    "metadata": ("metadata", "temporal"),
    "ai_analysis": ("ai_analysis", "aianalysis", "ai"),
}


@dataclass(frozen=True)
class EnabledLayers:
    file_hash: bool = True
    vision_embedding: bool = False
    metadata: bool = True
    ai_analysis: bool = False

    @classmethod
    def all(cls) -> "EnabledLayers":
        return cls(file_hash=True, vision_embedding=True, metadata=True, ai_analysis=True)

    @classmethod
    def none(cls) -> "EnabledLayers":
        return cls(file_hash=False, vision_embedding=False, metadata=False, ai_analysis=False)

    @classmethod
    def metadata_only(cls) -> "EnabledLayers":
        return cls(file_hash=False, vision_embedding=False, metadata=True, ai_analysis=False)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "EnabledLayers":
        flags = {name: False for name in _LAYER_ALIASES}
        for raw in names:
            key = raw.strip().replace("-", "_").lower()
            if not key:
                continue
            for layer, aliases in _LAYER_ALIASES.items():
                if key in aliases or key.replace("_", "") in aliases:
                    flags[layer] = True
                    break
            else:
                raise ConfigurationError(f"Unknown similarity layer: {raw}")
        return cls(**flags)

    def names(self) -> list[str]:
        return [name for name in _LAYER_ALIASES if getattr(self, name)]

    def any_enabled(self) -> bool:
        return bool(self.names())


@dataclass(frozen=True)
class SimilarityWeights:
    visual: float = 0.30
    content: float = 0.25
    temporal: float = 0.20
    spatial: float = 0.15
    semantic: float = 0.10

    def for_component(self, component: str) -> float:
        return {
            "visual_similarity": self.visual,
            "content_similarity": self.content,
            "temporal_proximity": self.temporal,
            "spatial_proximity": self.spatial,
            "semantic_similarity": self.semantic,
        }[component]


@dataclass(frozen=True)
class PipelineConfig:
    enabled_layers: EnabledLayers = field(default_factory=EnabledLayers)
    similarity_threshold: float = 0.6
    confidence_threshold: float = 0.6
    weights: SimilarityWeights = field(default_factory=SimilarityWeights)
    # split photos into capture sessions and only compare within one
    candidate_gap_hours: Optional[float] = None
    # pairs scored between cooperative yields to the event loop
    yield_every: int = 25

    def validate(self) -> None:
        if not self.enabled_layers.any_enabled():
            raise ConfigurationError("At least one similarity layer must be enabled")
        for name in ("similarity_threshold", "confidence_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
        if self.candidate_gap_hours is not None and self.candidate_gap_hours <= 0:
            raise ConfigurationError("candidate_gap_hours must be positive")


@dataclass(frozen=True)
class BackendSettings:
    embedding_url: Optional[str] = None
    analysis_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "BackendSettings":
        return cls(
            embedding_url=os.getenv("SCOUTAI_EMBEDDING_URL") or None,
            analysis_url=os.getenv("SCOUTAI_ANALYSIS_URL") or None,
            api_key=os.getenv("SCOUTAI_API_KEY") or None,
            timeout=float(os.getenv("SCOUTAI_HTTP_TIMEOUT", "30")),
        )
