"""Exception taxonomy for the curation engine."""
from typing import Iterable


class ScoutAiError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(ScoutAiError):
    """The pipeline configuration cannot produce meaningful scores."""


class LayerFailureError(ScoutAiError):
    """Every enabled layer failed for one photo pair."""

    def __init__(self, photo_ids: tuple[str, str], layers: Iterable[str]):
        self.photo_ids = photo_ids
        self.layers = tuple(layers)
        super().__init__(
            f"All enabled layers failed for {photo_ids[0]} / {photo_ids[1]}: "
            + ", ".join(self.layers)
        )


class InvalidStateError(ScoutAiError):
    """An action was attempted on a suggestion that is already terminal."""

    def __init__(self, suggestion_id: str, status: str, action: str):
        self.suggestion_id = suggestion_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} suggestion {suggestion_id}: already {status}")


class NotFoundError(ScoutAiError):
    def __init__(self, suggestion_id: str):
        self.suggestion_id = suggestion_id
        super().__init__(f"Suggestion not found: {suggestion_id}")


class PersistenceError(ScoutAiError):
    """The preference store could not be read or written."""


class BackendError(ScoutAiError):
    """A remote vision/AI/image call failed."""
