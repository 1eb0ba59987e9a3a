"""Discovery manifest: one file per extension point type, one qualified class name per line.

For type id P and manifest root R the resource is R / P. Entries are either
"package.module:QualName" or dotted "package.module.QualName". Blank lines and
"#" comments are ignored.
"""

import importlib
from pathlib import Path
from typing import Iterable


def type_id(cls: type) -> str:
    """Qualified name used as identity in manifests and descriptors."""
    return f"{cls.__module__}.{cls.__qualname__}"


def normalize_type_name(name: str) -> str:
    """'pkg.mod:Outer.Inner' -> 'pkg.mod.Outer.Inner'; generic parameters are stripped."""
    name = name.strip()
    if "[" in name:
        name = name[: name.index("[")]
    return name.replace(":", ".")


def manifest_file(root: Path, point_id: str) -> Path:
    return Path(root) / point_id


def read_manifest(files: Iterable[Path]) -> list[str]:
    """Entries of all existing files as an order-preserving unique list."""
    entries: dict[str, None] = {}
    for path in files:
        if not path.is_file():
            continue
        for line in path.read_text(encoding="utf-8").splitlines():
            entry = line.split("#", 1)[0].strip()
            if entry:
                entries.setdefault(entry, None)
    return list(entries)


def entries_for(point_id: str, manifest_paths: Iterable[Path]) -> list[str]:
    return read_manifest(manifest_file(root, point_id) for root in manifest_paths)


def resolve_type(name: str) -> type:
    """Import the class named by a manifest entry. Raises ImportError when it cannot be found."""
    if ":" in name:
        module_name, qualname = name.split(":", 1)
        module = importlib.import_module(module_name)
        return _walk(module, qualname, name)
    parts = name.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            module = importlib.import_module(module_name)
        except ModuleNotFoundError as e:
            # Only a missing candidate module means "try a shorter prefix"
            if e.name and module_name.startswith(e.name):
                continue
            raise
        return _walk(module, ".".join(parts[split:]), name)
    raise ImportError(f"Cannot resolve {name!r}: no importable module prefix")


def _walk(module: object, qualname: str, name: str) -> type:
    target = module
    for attr in qualname.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise ImportError(f"Cannot resolve {name!r}: {e}") from e
    if not isinstance(target, type):
        raise ImportError(f"{name!r} is not a class")
    return target
