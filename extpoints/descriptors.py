"""Extension and extension point descriptors: Pydantic models and YAML declaration loader.

Descriptors are immutable and attached to types through the descriptor table (extpoints.registry).
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from extpoints.contract import NORMAL_PRIORITY, ExtensionScope
from extpoints.version import Version, is_valid_version


def _check_version(value: str) -> str:
    if not is_valid_version(value):
        raise ValueError(f"Not valid version number {value!r} (expected <major>.<minor>[.<tail>])")
    return value


class ExtensionPointDescriptor(BaseModel):
    """Versioned contract that extensions implement."""

    model_config = ConfigDict(frozen=True)

    type_id: str
    version: str = "1.0"

    @field_validator("version")
    @classmethod
    def _valid_version(cls, value: str) -> str:
        return _check_version(value)

    @property
    def parsed_version(self) -> Version:
        return Version.parse(self.version)


class ExtensionDescriptor(BaseModel):
    """Metadata of one extension class."""

    model_config = ConfigDict(frozen=True)

    type_id: str
    provider: str
    name: str
    version: str
    extension_point: str
    extension_point_version: str = "1.0"
    # Found only through external loaders, never by the built-in loader
    externally_managed: bool = False
    scope: ExtensionScope = ExtensionScope.GLOBAL
    priority: int = NORMAL_PRIORITY
    overridable: bool = True
    # Type id of the extension replaced by this one when both are valid
    overrides: str | None = None

    @field_validator("version", "extension_point_version")
    @classmethod
    def _valid_versions(cls, value: str) -> str:
        return _check_version(value)

    @property
    def identifier(self) -> str:
        return f"{self.provider}:{self.name}:{self.version}"


class ExtensionPointDeclaration(BaseModel):
    """extension_points[] entry of a declaration file."""

    type: str
    version: str = "1.0"


class ExtensionDeclaration(BaseModel):
    """extensions[] entry of a declaration file. extension_point is inferred when omitted."""

    type: str
    provider: str
    name: str
    version: str
    extension_point: str | None = None
    extension_point_version: str = "1.0"
    externally_managed: bool = False
    scope: ExtensionScope = ExtensionScope.GLOBAL
    priority: int = NORMAL_PRIORITY
    overridable: bool = True
    overrides: str | None = None

    @field_validator("scope", mode="before")
    @classmethod
    def _scope_by_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.lower()
        return value


class DeclarationFile(BaseModel):
    """Schema of a YAML declaration file."""

    extension_points: list[ExtensionPointDeclaration] = Field(default_factory=list)
    extensions: list[ExtensionDeclaration] = Field(default_factory=list)


def load_declaration_file(path: Path) -> DeclarationFile:
    """Read and validate a declaration file. Raises on invalid YAML or validation error."""
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return DeclarationFile()
    if not isinstance(data, dict):
        raise ValueError(f"Declaration file must be a YAML object: {path}")
    return DeclarationFile.model_validate(data)
