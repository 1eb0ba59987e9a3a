"""Extension manager: discovery across channels, validation, overrides, priority ordering."""

import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Iterable

from extpoints.context import LoadContext
from extpoints.contract import DiscoveryLoader
from extpoints.descriptors import ExtensionDescriptor, ExtensionPointDescriptor
from extpoints.errors import (
    ChannelMismatchError,
    DiscoveryLoaderError,
    IncompatibleVersionError,
)
from extpoints.loader import BuiltinLoader, discover_external_loaders, get_builtin_loader
from extpoints.registry import DescriptorTable, descriptors, load_declarations
from extpoints.version import Version

logger = logging.getLogger(__name__)


def _identifier(provider: str, name: str, version: str) -> Callable[[ExtensionDescriptor], bool]:
    """Case-insensitive provider and name, extension version compatible with version."""
    required = Version.parse(version)

    def matches(metadata: ExtensionDescriptor) -> bool:
        return (
            metadata.provider.casefold() == provider.casefold()
            and metadata.name.casefold() == name.casefold()
            and Version.parse(metadata.version).is_compatible_with(required)
        )

    return matches


class ExtensionManager:
    """Resolves extension points into priority-ordered extension instances.

    Each manager is a session: SESSION-scoped extensions are singletons per manager.
    Use new_session() for isolated units of work and call clear() before discarding
    a session, otherwise its instances stay cached in the loaders.

    Lower priority values come first; single-result lookups return the lowest.
    """

    def __init__(
        self,
        manifest_paths: Iterable[Path | str] | None = None,
        *,
        builtin_loader: DiscoveryLoader | None = None,
        external_loaders: Iterable[DiscoveryLoader] | None = None,
        table: DescriptorTable | None = None,
    ) -> None:
        self._session_id = str(uuid.uuid4())
        self._manifest_paths = tuple(Path(p) for p in manifest_paths or ())
        self._table = table or descriptors
        if builtin_loader is None:
            # The process-wide loader reads the process-wide table only
            if self._table is descriptors:
                builtin_loader = get_builtin_loader()
            else:
                builtin_loader = BuiltinLoader(table=self._table)
        self._builtin_loader = builtin_loader
        if external_loaders is None:
            external_loaders = discover_external_loaders(self._manifest_paths)
        self._external_loaders = list(external_loaders)
        self._valid: dict[type, set[type]] = {}
        self._invalid: dict[type, set[type]] = {}
        self._metadata: dict[type, ExtensionDescriptor] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "ExtensionManager":
        """Register the configured declaration files, then build a manager over manifest_paths."""
        for path in settings.get("declarations") or ():
            load_declarations(Path(path))
        return cls(settings.get("manifest_paths") or ())

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def manifest_paths(self) -> tuple[Path, ...]:
        return self._manifest_paths

    @property
    def external_loaders(self) -> tuple[DiscoveryLoader, ...]:
        return tuple(self._external_loaders)

    # --- metadata ---

    def get_extension_metadata(self, extension: Any) -> ExtensionDescriptor | None:
        """Descriptor of an extension instance, or None if it is not an extension."""
        cls = type(extension)
        with self._lock:
            if cls in self._metadata:
                return self._metadata[cls]
        metadata = self._table.extension_descriptor(cls)
        if metadata is None:
            return None
        with self._lock:
            return self._metadata.setdefault(cls, metadata)

    def get_extensions_metadata(self, point: type) -> list[ExtensionDescriptor]:
        return [self.get_extension_metadata(e) for e in self.get_extensions(point)]

    # --- single result ---

    def get_extension(self, point: type) -> Any | None:
        """Instance with the highest precedence for the extension point, or None."""
        return self._load_first(LoadContext.all(self._session_id, point, self._table))

    def get_extension_matching(self, point: type, condition: Callable[[Any], bool]) -> Any | None:
        return self._load_first(
            LoadContext.satisfying(self._session_id, point, condition, self._table)
        )

    def get_extension_matching_metadata(
        self, point: type, condition: Callable[[ExtensionDescriptor], bool]
    ) -> Any | None:
        return self._load_first(
            LoadContext.satisfying_metadata(self._session_id, point, condition, self._table)
        )

    def get_extension_by_identifier(
        self, point: type, provider: str, name: str, version: str
    ) -> Any | None:
        """Extension by provider and name; a higher compatible version is accepted."""
        return self.get_extension_matching_metadata(point, _identifier(provider, name, version))

    # --- all results ---

    def get_extensions(self, point: type) -> list[Any]:
        """Priority-ordered extensions for the extension point; empty if none."""
        return self._load_all(LoadContext.all(self._session_id, point, self._table))

    def get_extensions_matching(self, point: type, condition: Callable[[Any], bool]) -> list[Any]:
        return self._load_all(
            LoadContext.satisfying(self._session_id, point, condition, self._table)
        )

    def get_extensions_matching_metadata(
        self, point: type, condition: Callable[[ExtensionDescriptor], bool]
    ) -> list[Any]:
        return self._load_all(
            LoadContext.satisfying_metadata(self._session_id, point, condition, self._table)
        )

    # --- lifecycle ---

    def new_session(self) -> "ExtensionManager":
        """New manager sharing manifests and loaders, with its own session and caches."""
        return ExtensionManager(
            self._manifest_paths,
            builtin_loader=self._builtin_loader,
            external_loaders=self._external_loaders,
            table=self._table,
        )

    def clear(self) -> None:
        """Drop cached verdicts and metadata and invalidate the session in every loader.

        Last call before discarding the manager. Not synchronized with lookups in flight.
        """
        with self._lock:
            self._valid.clear()
            self._invalid.clear()
            self._metadata.clear()
        for loader in [self._builtin_loader, *self._external_loaders]:
            try:
                loader.invalidate_session(self._session_id)
            except Exception as e:
                logger.exception("Failed to invalidate session in %s: %s", loader, e)

    # --- pipeline ---

    def _load_all(self, context: LoadContext) -> list[Any]:
        extensions = [e for e in self._obtain_valid_extensions(context) if context.condition(e)]
        return sorted(extensions, key=self._priority)

    def _load_first(self, context: LoadContext) -> Any | None:
        extensions = [e for e in self._obtain_valid_extensions(context) if context.condition(e)]
        return min(extensions, key=self._priority, default=None)

    def _obtain_valid_extensions(self, context: LoadContext) -> list[Any]:
        collected: list[Any] = []
        self._collect_valid_extensions(
            context.with_builtin_loader(self._manifest_paths, self._builtin_loader), collected
        )
        for loader in self._external_loaders:
            self._collect_valid_extensions(
                context.with_external_loader(self._manifest_paths, loader), collected
            )
        self._remove_overridden_extensions(collected)
        return collected

    def _collect_valid_extensions(self, context: LoadContext, collected: list[Any]) -> None:
        logger.debug("%s :: Searching...", context)
        try:
            candidates = context.load()
        except Exception as e:
            error = DiscoveryLoaderError(f"{context} :: loader failed: {e}")
            logger.exception("%s", error)
            return
        for extension in candidates:
            cls = type(extension)
            verdict = self._verdict(context.point_type, cls)
            if verdict is False:
                logger.debug("%s :: Found %s but ignored (marked as invalid)", context, cls)
                continue
            metadata = self.get_extension_metadata(extension)
            if metadata is not None:
                # Checked on every candidate: a valid class may also come from a foreign loader
                try:
                    self._check_channel(context, metadata)
                except ChannelMismatchError as e:
                    logger.debug("%s; ignored", e)
                    if verdict is None:
                        self._record(context.point_type, cls, False)
                    continue
            if verdict or self._validate_extension(context, extension, metadata):
                logger.debug("%s :: Found %s", context, cls)
                collected.append(extension)

    def _validate_extension(
        self, context: LoadContext, extension: Any, metadata: ExtensionDescriptor | None
    ) -> bool:
        cls = type(extension)
        if metadata is None:
            logger.debug("%s :: %s has no extension metadata; ignored", context, cls)
            valid = False
        else:
            try:
                self._check_version(context, metadata)
                valid = True
            except IncompatibleVersionError as e:
                logger.warning("%s", e)
                valid = False
        self._record(context.point_type, cls, valid)
        return valid

    def _verdict(self, point: type, cls: type) -> bool | None:
        """True/False when cls was already validated for point, None otherwise."""
        with self._lock:
            if cls in self._invalid.get(point, ()):
                return False
            if cls in self._valid.get(point, ()):
                return True
        return None

    def _record(self, point: type, cls: type, valid: bool) -> None:
        with self._lock:
            if valid:
                self._valid.setdefault(point, set()).add(cls)
            else:
                self._invalid.setdefault(point, set()).add(cls)

    @staticmethod
    def _check_channel(context: LoadContext, metadata: ExtensionDescriptor) -> None:
        # External loaders are not guaranteed to return only externally managed extensions
        if metadata.externally_managed != context.externally_managed:
            raise ChannelMismatchError(
                f"Class {metadata.type_id} is{'' if metadata.externally_managed else ' not'} "
                f"externally managed and the extension loader is"
                f"{'' if context.externally_managed else ' not'}"
            )

    @staticmethod
    def _check_version(context: LoadContext, metadata: ExtensionDescriptor) -> None:
        if not _are_compatible(context.point, metadata):
            raise IncompatibleVersionError(
                f"Extension point version of {metadata.identifier} "
                f"({metadata.extension_point_version}) is not compatible with "
                f"expected version {context.point.version}"
            )

    def _remove_overridden_extensions(self, extensions: list[Any]) -> None:
        overridable: dict[str, Any] = {}
        for extension in extensions:
            metadata = self.get_extension_metadata(extension)
            if metadata.overridable:
                overridable[metadata.type_id] = extension
        for extension in list(extensions):
            metadata = self.get_extension_metadata(extension)
            if not metadata.overrides:
                continue
            replaced = overridable.get(metadata.overrides)
            if replaced is None or replaced is extension:
                continue
            extensions[:] = [e for e in extensions if e is not replaced]
            logger.info(
                "Extension %s overrides extension %s",
                metadata.identifier,
                self.get_extension_metadata(replaced).identifier,
            )

    def _priority(self, extension: Any) -> int:
        return self.get_extension_metadata(extension).priority


def _are_compatible(point: ExtensionPointDescriptor, metadata: ExtensionDescriptor) -> bool:
    return Version.parse(metadata.extension_point_version).is_compatible_with(
        Version.parse(point.version)
    )
