"""Discovery protocols and instance scopes.

The manager detects loaders via isinstance(obj, DiscoveryLoader). No base class required.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable

NORMAL_PRIORITY = 5


class ExtensionScope(Enum):
    """Lifetime of the instances handed out for an extension."""

    GLOBAL = "global"  # one instance per process
    LOCAL = "local"  # new instance per lookup
    SESSION = "session"  # one instance per manager session


@runtime_checkable
class DiscoveryLoader(Protocol):
    """Locates and constructs raw candidate instances for an extension point."""

    def load(
        self,
        point_type: type,
        manifest_paths: Sequence[Path],
        session_id: str | None,
    ) -> list[Any]:
        """Return candidate instances. Never fails on a single bad candidate; may be empty."""

    def invalidate_session(self, session_id: str) -> None:
        """Drop any state kept for the session. No-op when nothing is cached."""


@runtime_checkable
class CandidateProvider(Protocol):
    """Source of candidate classes for the built-in loader."""

    def candidates(self, point_type: type, manifest_paths: Sequence[Path]) -> list[type]:
        """Classes declared as implementations of point_type, in declaration order."""
