"""
Artifact Store Interface

Persistence of CovarianceData, EigenData and PerformanceCurveSet is owned
by the caller. The core only looks artifacts up by a deterministic key and
hands newly built ones back for optional saving.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, Optional


class ArtifactStore(ABC):
    """Keyed lookup/save of detector artifacts."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the artifact stored under key, or None on a miss."""
        pass

    @abstractmethod
    def put(self, key: str, artifact: Any) -> None:
        """Store artifact under key, replacing any previous value."""
        pass

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryArtifactStore(ArtifactStore):
    """Dictionary-backed store, used for tests and single-process runs."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._items: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._items.get(key)

    def put(self, key: str, artifact: Any) -> None:
        self._items[key] = artifact

    def keys(self) -> Iterator[str]:
        return iter(self._items.keys())

    def __len__(self) -> int:
        return len(self._items)
