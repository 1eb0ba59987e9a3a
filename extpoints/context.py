"""Load context: immutable per-request bundle passed through the resolution pipeline."""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Sequence

from extpoints.contract import DiscoveryLoader
from extpoints.descriptors import ExtensionDescriptor, ExtensionPointDescriptor
from extpoints.registry import DescriptorTable, descriptors


def _select_all(extension: Any) -> bool:
    return True


@dataclass(frozen=True)
class LoadContext:
    """Extension point + selection predicate + session, bound to one discovery channel.

    externally_managed tells whether the bound loader is an external one; candidates
    whose own flag disagrees are rejected during validation.
    """

    session_id: str | None
    point_type: type
    point: ExtensionPointDescriptor
    condition: Callable[[Any], bool] = _select_all
    manifest_paths: tuple[Path, ...] = ()
    loader: DiscoveryLoader | None = None
    externally_managed: bool = False

    @classmethod
    def all(
        cls, session_id: str | None, point_type: type, table: DescriptorTable | None = None
    ) -> "LoadContext":
        point = (table or descriptors).require_point(point_type)
        return cls(session_id, point_type, point)

    @classmethod
    def satisfying(
        cls,
        session_id: str | None,
        point_type: type,
        condition: Callable[[Any], bool],
        table: DescriptorTable | None = None,
    ) -> "LoadContext":
        point = (table or descriptors).require_point(point_type)
        return cls(session_id, point_type, point, condition)

    @classmethod
    def satisfying_metadata(
        cls,
        session_id: str | None,
        point_type: type,
        condition: Callable[[ExtensionDescriptor], bool],
        table: DescriptorTable | None = None,
    ) -> "LoadContext":
        table = table or descriptors
        point = table.require_point(point_type)

        def metadata_condition(extension: Any) -> bool:
            metadata = table.extension_descriptor(type(extension))
            return metadata is not None and condition(metadata)

        return cls(session_id, point_type, point, metadata_condition)

    def with_builtin_loader(
        self, manifest_paths: Sequence[Path], loader: DiscoveryLoader
    ) -> "LoadContext":
        return replace(
            self, manifest_paths=tuple(manifest_paths), loader=loader, externally_managed=False
        )

    def with_external_loader(
        self, manifest_paths: Sequence[Path], loader: DiscoveryLoader
    ) -> "LoadContext":
        return replace(
            self, manifest_paths=tuple(manifest_paths), loader=loader, externally_managed=True
        )

    def load(self) -> list[Any]:
        if self.loader is None:
            return []
        return list(self.loader.load(self.point_type, self.manifest_paths, self.session_id))

    def __str__(self) -> str:
        text = f"[Extensions of type {self.point.type_id}"
        if self.externally_managed:
            text += " (externally managed)"
        if self.loader is not None:
            text += f" loaded by {self.loader}"
        if self.manifest_paths:
            text += f" using manifests {[str(p) for p in self.manifest_paths]}"
        return text + "]"
