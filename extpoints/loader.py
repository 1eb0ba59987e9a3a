"""Built-in discovery loader: manifest-backed candidate classes, scope-based instantiation.

Also discovers the externally supplied loaders listed in the DiscoveryLoader manifest.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Sequence

from extpoints.contract import CandidateProvider, DiscoveryLoader, ExtensionScope
from extpoints.errors import InstantiationError
from extpoints.manifest import entries_for, resolve_type, type_id
from extpoints.registry import DescriptorTable, descriptors

logger = logging.getLogger(__name__)


class ScopeCache:
    """Instances kept for GLOBAL (per class) and SESSION (per session id and class) scopes."""

    def __init__(self) -> None:
        self._global: dict[type, Any] = {}
        self._sessions: dict[str, dict[type, Any]] = {}
        self._lock = threading.Lock()

    def global_instance(self, cls: type, factory: Callable[[type], Any | None]) -> Any | None:
        with self._lock:
            if cls in self._global:
                return self._global[cls]
        return self._construct_if_absent(self._global, cls, factory)

    def session_instance(
        self, session_id: str, cls: type, factory: Callable[[type], Any | None]
    ) -> Any | None:
        with self._lock:
            instances = self._sessions.setdefault(session_id, {})
            if cls in instances:
                return instances[cls]
        return self._construct_if_absent(instances, cls, factory)

    def _construct_if_absent(
        self, instances: dict[type, Any], cls: type, factory: Callable[[type], Any | None]
    ) -> Any | None:
        # Racing callers may all construct; the first stored instance wins
        instance = factory(cls)
        if instance is None:
            return None
        with self._lock:
            return instances.setdefault(cls, instance)

    def invalidate_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)


class ManifestCandidateProvider:
    """Candidate classes listed in the discovery manifest of the extension point."""

    def candidates(self, point_type: type, manifest_paths: Sequence[Path]) -> list[type]:
        classes: list[type] = []
        for entry in entries_for(type_id(point_type), manifest_paths):
            try:
                classes.append(resolve_type(entry))
            except Exception as e:
                logger.error(
                    "Cannot load class %s declared for %s: %s", entry, type_id(point_type), e
                )
        return classes


def new_instance(cls: type) -> Any | None:
    """Construct cls with no arguments. Logs and returns None on failure."""
    try:
        return cls()
    except Exception as e:
        error = InstantiationError(
            f"Class {type_id(cls)} cannot be instantiated, "
            "a constructor with zero arguments is required"
        )
        logger.error("%s [error was: %r]", error, e)
        return None


class BuiltinLoader:
    """Default DiscoveryLoader. Ignores classes without metadata and externally managed ones.

    Externally managed classes are remembered and never inspected again. Classes without
    metadata are re-checked on every load, since declarations can be registered at runtime.
    """

    def __init__(
        self,
        provider: CandidateProvider | None = None,
        cache: ScopeCache | None = None,
        table: DescriptorTable | None = None,
    ) -> None:
        self._provider = provider or ManifestCandidateProvider()
        self._cache = cache or ScopeCache()
        self._table = table or descriptors
        self._ignored: set[type] = set()
        self._lock = threading.Lock()

    @property
    def cache(self) -> ScopeCache:
        return self._cache

    def load(
        self,
        point_type: type,
        manifest_paths: Sequence[Path],
        session_id: str | None,
    ) -> list[Any]:
        instances: list[Any] = []
        for cls in self._provider.candidates(point_type, manifest_paths):
            if not self._accepts(cls):
                continue
            instance = self._instantiate(cls, session_id)
            if instance is not None:
                instances.append(instance)
        return instances

    def invalidate_session(self, session_id: str) -> None:
        self._cache.invalidate_session(session_id)

    def _accepts(self, cls: type) -> bool:
        if cls in self._ignored:
            return False
        metadata = self._table.extension_descriptor(cls)
        if metadata is None:
            # Not remembered: the descriptor may be registered later
            logger.debug("Class %s has no extension metadata so it is ignored", type_id(cls))
            return False
        if not metadata.externally_managed:
            return True
        logger.debug(
            "Class %s is externally managed and ignored by the built-in loader", type_id(cls)
        )
        with self._lock:
            self._ignored.add(cls)
        return False

    def _instantiate(self, cls: type, session_id: str | None) -> Any | None:
        scope = self._table.extension_descriptor(cls).scope
        if scope is ExtensionScope.GLOBAL:
            return self._cache.global_instance(cls, new_instance)
        if scope is ExtensionScope.SESSION and session_id is not None:
            return self._cache.session_instance(session_id, cls, new_instance)
        return new_instance(cls)

    def __str__(self) -> str:
        return "Built-in extension loader"


_builtin_loader: BuiltinLoader | None = None
_builtin_lock = threading.Lock()


def get_builtin_loader() -> BuiltinLoader:
    """Process-wide built-in loader, created on first use and shared by every manager."""
    global _builtin_loader
    with _builtin_lock:
        if _builtin_loader is None:
            _builtin_loader = BuiltinLoader()
        return _builtin_loader


def discover_external_loaders(manifest_paths: Sequence[Path]) -> list[DiscoveryLoader]:
    """Instantiate the loaders listed in the DiscoveryLoader manifest. Bad entries are skipped."""
    loaders: list[DiscoveryLoader] = []
    for entry in entries_for(type_id(DiscoveryLoader), manifest_paths):
        try:
            loader = resolve_type(entry)()
        except Exception as e:
            logger.exception("Cannot load extension loader %s: %s", entry, e)
            continue
        if not isinstance(loader, DiscoveryLoader):
            logger.error("%s does not implement DiscoveryLoader; ignored", entry)
            continue
        loaders.append(loader)
    if loaders:
        logger.info("Discovered %d external extension loaders", len(loaders))
    return loaders
