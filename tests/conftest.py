"""Shared fixtures: isolated built-in loaders, static candidate providers, manifest files."""

from pathlib import Path
from typing import Callable, Sequence

import pytest

from extpoints.loader import BuiltinLoader, ScopeCache
from extpoints.manifest import type_id


class StaticCandidateProvider:
    """CandidateProvider returning a fixed list of classes per extension point."""

    def __init__(self, classes: dict[type, list[type]] | None = None) -> None:
        self.classes: dict[type, list[type]] = classes or {}
        self.calls = 0

    def candidates(self, point_type: type, manifest_paths: Sequence[Path]) -> list[type]:
        self.calls += 1
        return list(self.classes.get(point_type, []))


def entry(cls: type) -> str:
    """Manifest line for a class defined in a test module."""
    return f"{cls.__module__}:{cls.__qualname__}"


@pytest.fixture
def provider() -> StaticCandidateProvider:
    return StaticCandidateProvider()


@pytest.fixture
def builtin_loader(provider: StaticCandidateProvider) -> BuiltinLoader:
    """Built-in loader with its own scope cache, independent of the process-wide one."""
    return BuiltinLoader(provider=provider, cache=ScopeCache())


@pytest.fixture
def write_manifest(tmp_path: Path) -> Callable[..., Path]:
    """write_manifest(point, *classes_or_lines, root=tmp_path) -> manifest file path."""

    def write(point: type, *entries: type | str, root: Path | None = None) -> Path:
        root = root or tmp_path
        root.mkdir(parents=True, exist_ok=True)
        path = root / type_id(point)
        lines = [e if isinstance(e, str) else entry(e) for e in entries]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return write
