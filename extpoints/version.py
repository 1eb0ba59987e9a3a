"""Version tokens in the form major.minor[.tail] and the compatibility rule."""

import re
from dataclasses import dataclass

from extpoints.errors import DeclarationError

# ASCII digits only; fullmatch so a trailing newline is rejected
VERSION_PATTERN = re.compile(r"\d+\.\d+(\..*)?", re.ASCII)


@dataclass(frozen=True)
class Version:
    major: int
    minor: int
    tail: str = ""

    @classmethod
    def parse(cls, value: str) -> "Version":
        """Parse a version string. Raises DeclarationError when malformed."""
        if not isinstance(value, str) or not VERSION_PATTERN.fullmatch(value):
            raise DeclarationError(
                f"Not valid version number {value!r} (expected <major>.<minor>[.<tail>])"
            )
        major, minor, *rest = value.split(".", 2)
        return cls(int(major), int(minor), rest[0] if rest else "")

    def is_compatible_with(self, required: "Version") -> bool:
        """Same major, and at least the required minor. Tail is ignored."""
        return self.major == required.major and self.minor >= required.minor

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


def parse(value: str) -> Version:
    return Version.parse(value)


def compatible(candidate: Version, required: Version) -> bool:
    return candidate.is_compatible_with(required)


def is_valid_version(value: str) -> bool:
    return isinstance(value, str) and VERSION_PATTERN.fullmatch(value) is not None
