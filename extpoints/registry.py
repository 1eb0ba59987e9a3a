"""Descriptor table: static, type-keyed metadata for extension points and extensions.

Filled at import time by the @extension_point / @extension decorators, by explicit
register_* calls, or from a YAML declaration file. Resolution never inspects classes
beyond a lookup in this table.
"""

import logging
import threading
import typing
from pathlib import Path
from typing import Any, Callable, TypeVar

import yaml
from pydantic import ValidationError

from extpoints.contract import NORMAL_PRIORITY, ExtensionScope
from extpoints.descriptors import (
    ExtensionDescriptor,
    ExtensionPointDescriptor,
    load_declaration_file,
)
from extpoints.errors import DeclarationError
from extpoints.manifest import normalize_type_name, resolve_type, type_id

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=type)


class DescriptorTable:
    """Thread-safe mapping type -> descriptor. One process-wide instance: `descriptors`."""

    def __init__(self) -> None:
        self._points: dict[type, ExtensionPointDescriptor] = {}
        self._extensions: dict[type, ExtensionDescriptor] = {}
        self._lock = threading.Lock()

    def add_point(self, cls: type, descriptor: ExtensionPointDescriptor) -> None:
        with self._lock:
            self._points[cls] = descriptor

    def add_extension(self, cls: type, descriptor: ExtensionDescriptor) -> None:
        with self._lock:
            self._extensions[cls] = descriptor

    def point_descriptor(self, cls: type) -> ExtensionPointDescriptor | None:
        return self._points.get(cls)

    def extension_descriptor(self, cls: type) -> ExtensionDescriptor | None:
        return self._extensions.get(cls)

    def require_point(self, cls: type) -> ExtensionPointDescriptor:
        """Descriptor of an extension point type. Raises DeclarationError when not declared."""
        descriptor = self._points.get(cls) if isinstance(cls, type) else None
        if descriptor is None:
            raise DeclarationError(f"{cls!r} must be declared as an extension point")
        return descriptor

    def discard(self, cls: type) -> None:
        with self._lock:
            self._points.pop(cls, None)
            self._extensions.pop(cls, None)


descriptors = DescriptorTable()


def _type_name(value: type | str | None) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, type):
        return type_id(value)
    return normalize_type_name(value)


def _infer_extension_point(cls: type, table: DescriptorTable) -> str:
    """Type id of the sole directly inherited extension point (generic parameters stripped)."""
    bases = cls.__dict__.get("__orig_bases__", cls.__bases__)
    points = []
    for base in bases:
        origin = typing.get_origin(base) or base
        if isinstance(origin, type) and table.point_descriptor(origin) is not None:
            points.append(origin)
    if len(points) != 1:
        raise DeclarationError(
            f"Cannot infer the extension point of {type_id(cls)} "
            f"({len(points)} candidates); declare extension_point explicitly"
        )
    return type_id(points[0])


def register_extension_point(
    cls: T, version: str = "1.0", table: DescriptorTable | None = None
) -> ExtensionPointDescriptor:
    """Declare cls as an extension point. Raises DeclarationError on a malformed version."""
    table = table or descriptors
    try:
        descriptor = ExtensionPointDescriptor(type_id=type_id(cls), version=version)
    except ValidationError as e:
        raise DeclarationError(f"Invalid extension point {type_id(cls)}: {e}") from e
    table.add_point(cls, descriptor)
    return descriptor


def register_extension(
    cls: type,
    *,
    provider: str,
    name: str,
    version: str,
    extension_point: type | str | None = None,
    extension_point_version: str = "1.0",
    externally_managed: bool = False,
    scope: ExtensionScope | str = ExtensionScope.GLOBAL,
    priority: int = NORMAL_PRIORITY,
    overridable: bool = True,
    overrides: type | str | None = None,
    table: DescriptorTable | None = None,
) -> ExtensionDescriptor:
    """Attach an ExtensionDescriptor to cls. Raises DeclarationError on invalid metadata."""
    table = table or descriptors
    point_id = _type_name(extension_point) or _infer_extension_point(cls, table)
    if isinstance(scope, str):
        scope = scope.lower()
    try:
        descriptor = ExtensionDescriptor(
            type_id=type_id(cls),
            provider=provider,
            name=name,
            version=version,
            extension_point=point_id,
            extension_point_version=extension_point_version,
            externally_managed=externally_managed,
            scope=scope,
            priority=priority,
            overridable=overridable,
            overrides=_type_name(overrides),
        )
    except ValidationError as e:
        raise DeclarationError(f"Invalid extension {type_id(cls)}: {e}") from e
    table.add_extension(cls, descriptor)
    logger.debug("Registered extension %s for %s", descriptor.identifier, point_id)
    return descriptor


def extension_point(version: str = "1.0") -> Callable[[T], T]:
    """Class decorator: @extension_point(version="1.2")."""

    def decorate(cls: T) -> T:
        register_extension_point(cls, version)
        return cls

    return decorate


def extension(**metadata: Any) -> Callable[[T], T]:
    """Class decorator: @extension(provider=..., name=..., version=..., ...)."""

    def decorate(cls: T) -> T:
        register_extension(cls, **metadata)
        return cls

    return decorate


def load_declarations(path: Path, table: DescriptorTable | None = None) -> int:
    """Register every declaration in a YAML file. Returns the number of types registered.

    Extension points are registered before extensions so that inference works
    within a single file. Raises DeclarationError on any invalid entry.
    """
    table = table or descriptors
    try:
        declared = load_declaration_file(path)
    except (ValueError, OSError, yaml.YAMLError) as e:
        raise DeclarationError(f"Invalid declaration file {path}: {e}") from e
    count = 0
    for point in declared.extension_points:
        register_extension_point(_resolve(point.type), point.version, table=table)
        count += 1
    for ext in declared.extensions:
        metadata = ext.model_dump(exclude={"type"})
        register_extension(_resolve(ext.type), table=table, **metadata)
        count += 1
    logger.info("Loaded %d declarations from %s", count, path)
    return count


def _resolve(name: str) -> type:
    try:
        return resolve_type(name)
    except ImportError as e:
        raise DeclarationError(str(e)) from e
