"""Command-line entry point: analyze a CompanyCam photo export."""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from scoutai.core.backends import build_backends
from scoutai.core.config import BackendSettings, EnabledLayers, PipelineConfig
from scoutai.core.errors import ConfigurationError, PersistenceError
from scoutai.core.models import Photo, Suggestion
from scoutai.core.pipeline import SimilarityPipeline
from scoutai.core.preferences_store import SqliteKeyValueStore
from scoutai.core.suggestions import SuggestionManager
from scoutai.util.logging_util import setup_logging
from scoutai.util.paths import get_db_path, get_log_dir

log = logging.getLogger("scoutai.main")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scoutai",
        description="Group similar photos and suggest which ones to keep.",
    )
    parser.add_argument("photos", help="JSON file holding a list of CompanyCam photos")
    parser.add_argument("--user", default="local", help="user id for stored preferences")
    parser.add_argument("--threshold", type=float, default=None,
                        help="similarity threshold (defaults to the stored quality threshold)")
    parser.add_argument("--confidence", type=float, default=0.6,
                        help="minimum group confidence")
    parser.add_argument("--layers", default="fileHash,metadata",
                        help="comma-separated layers: fileHash, visionEmbedding, metadata, aiAnalysis")
    parser.add_argument("--gap-hours", type=float, default=None,
                        help="only compare photos taken within the same capture session")
    parser.add_argument("--db", default=None, help="preference database path")
    parser.add_argument("--json", action="store_true", help="print the suggestion as JSON")
    parser.add_argument("--log-dir", default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def load_photos(path: str) -> list[Photo]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("photos", [])
    if not isinstance(data, list):
        raise ValueError("expected a JSON array of photos")
    return [Photo.from_dict(item) for item in data]


def suggestion_to_dict(suggestion: Suggestion) -> dict:
    return {
        "id": suggestion.id,
        "type": suggestion.type.value,
        "message": suggestion.message,
        "confidence": suggestion.confidence.value,
        "actionable": suggestion.actionable,
        "status": suggestion.status.value,
        "createdAt": suggestion.created_at.isoformat(),
        "recommendations": [
            {
                "groupId": r.group.id,
                "groupType": r.group.group_type.value,
                "groupConfidence": round(r.group.confidence, 4),
                "keep": [p.id for p in r.keep],
                "archive": [p.id for p in r.archive],
                "rationale": r.rationale,
                "estimatedTimeSaved": r.estimated_time_saved,
                "confidence": round(r.confidence, 4),
            }
            for r in suggestion.recommendations
        ],
    }


def _print_suggestion(suggestion: Suggestion):
    print(suggestion.message)
    for n, rec in enumerate(suggestion.recommendations, start=1):
        print()
        print(f"Group {n} ({rec.group.group_type.value}, confidence {rec.group.confidence:.2f})")
        print(f"  keep:    {', '.join(p.id for p in rec.keep)}")
        print(f"  archive: {', '.join(p.id for p in rec.archive) or '-'}")
        print(f"  {rec.rationale}")


async def _run(args, photos: list[Photo], config: PipelineConfig, store) -> Optional[Suggestion]:
    fetcher = embedder = analyzer = None
    layers = config.enabled_layers
    if layers.vision_embedding or layers.ai_analysis:
        fetcher, embedder, analyzer = build_backends(BackendSettings.from_env())
    pipeline = SimilarityPipeline(config, embedder=embedder, analyzer=analyzer, fetcher=fetcher)
    manager = SuggestionManager(args.user, store, pipeline=pipeline)
    if args.threshold is not None:
        manager.update_user_preferences(quality_threshold=args.threshold)
    try:
        await manager.analyze_similar_photos(photos)
    finally:
        for backend in (fetcher, embedder, analyzer):
            if hasattr(backend, "aclose"):
                await backend.aclose()
    if manager.error:
        log.warning("Analysis reported: %s", manager.error)
    return manager.suggestions[-1] if manager.suggestions else None


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(args.log_dir or get_log_dir(),
                  console_level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        layers = EnabledLayers.from_names(args.layers.split(","))
        config = PipelineConfig(
            enabled_layers=layers,
            confidence_threshold=args.confidence,
            candidate_gap_hours=args.gap_hours,
        )
        config.validate()
        if args.threshold is not None and not 0.0 <= args.threshold <= 1.0:
            raise ConfigurationError(f"threshold must be within [0, 1], got {args.threshold}")
        photos = load_photos(args.photos)
        store = SqliteKeyValueStore(args.db or get_db_path())
    except (ConfigurationError, PersistenceError, OSError, ValueError, KeyError) as e:
        print(f"scoutai: {e}", file=sys.stderr)
        return 2

    try:
        suggestion = asyncio.run(_run(args, photos, config, store))
    finally:
        store.close()

    if suggestion is None:
        print("scoutai: analysis failed", file=sys.stderr)
        return 1
    if args.json:
        print(json.dumps(suggestion_to_dict(suggestion), indent=2))
    else:
        _print_suggestion(suggestion)
    return 0


if __name__ == "__main__":
    sys.exit(main())
