"""Tests for the descriptor table and the declaration surface."""

from pathlib import Path
from typing import Generic, TypeVar

import pytest

from extpoints.contract import ExtensionScope
from extpoints.errors import DeclarationError
from extpoints.manifest import type_id
from extpoints.registry import (
    DescriptorTable,
    descriptors,
    extension,
    extension_point,
    load_declarations,
    register_extension,
    register_extension_point,
)

T = TypeVar("T")


@extension_point(version="1.2")
class Formatter:
    def format(self, value: str) -> str:
        raise NotImplementedError


@extension_point()
class Parser(Generic[T]):
    pass


@extension(provider="acme", name="upper", version="1.0.0")
class UpperFormatter(Formatter):
    def format(self, value: str) -> str:
        return value.upper()


@extension(provider="acme", name="int", version="1.0.0", scope="LOCAL", priority=1)
class IntParser(Parser[int]):
    pass


class Plain:
    pass


class TwoPoints(Formatter, Parser):
    pass


class Undeclared:
    pass


class TestDecorators:
    """@extension_point and @extension fill the process-wide table."""

    def test_extension_point_descriptor(self) -> None:
        d = descriptors.point_descriptor(Formatter)
        assert d is not None
        assert d.type_id == type_id(Formatter)
        assert d.version == "1.2"

    def test_extension_point_inferred(self) -> None:
        d = descriptors.extension_descriptor(UpperFormatter)
        assert d is not None
        assert d.extension_point == type_id(Formatter)
        assert d.type_id == type_id(UpperFormatter)

    def test_generic_parameters_stripped(self) -> None:
        d = descriptors.extension_descriptor(IntParser)
        assert d is not None
        assert d.extension_point == type_id(Parser)
        assert d.scope is ExtensionScope.LOCAL
        assert d.priority == 1

    def test_decorator_returns_class(self) -> None:
        assert UpperFormatter().format("a") == "A"

    def test_malformed_point_version(self) -> None:
        with pytest.raises(DeclarationError, match="Invalid extension point"):
            extension_point(version="x")(Plain)


class TestRegisterExtension:
    """register_extension validation and inference, on a private table."""

    def test_no_extension_point_to_infer(self) -> None:
        table = DescriptorTable()
        with pytest.raises(DeclarationError, match="Cannot infer the extension point"):
            register_extension(Plain, provider="p", name="n", version="1.0", table=table)

    def test_ambiguous_extension_point(self) -> None:
        with pytest.raises(DeclarationError, match="2 candidates"):
            register_extension(
                TwoPoints, provider="p", name="n", version="1.0", table=DescriptorTable()
            )

    def test_explicit_extension_point_name(self) -> None:
        table = DescriptorTable()
        d = register_extension(
            Plain,
            provider="p",
            name="n",
            version="1.0",
            extension_point="some.module:Point[str]",
            overrides=UpperFormatter,
            table=table,
        )
        assert d.extension_point == "some.module.Point"
        assert d.overrides == type_id(UpperFormatter)
        assert table.extension_descriptor(Plain) is d
        assert descriptors.extension_descriptor(Plain) is None

    def test_malformed_version(self) -> None:
        with pytest.raises(DeclarationError):
            register_extension(
                Plain,
                provider="p",
                name="n",
                version="1",
                extension_point=Formatter,
                table=DescriptorTable(),
            )

    def test_require_point_missing(self) -> None:
        with pytest.raises(DeclarationError, match="must be declared as an extension point"):
            descriptors.require_point(Undeclared)

    def test_require_point_not_a_type(self) -> None:
        with pytest.raises(DeclarationError):
            descriptors.require_point("Formatter")  # type: ignore[arg-type]

    def test_discard(self) -> None:
        table = DescriptorTable()
        register_extension_point(Plain, "1.0", table=table)
        table.discard(Plain)
        assert table.point_descriptor(Plain) is None


def _name(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


class TestLoadDeclarations:
    """load_declarations registers YAML-declared descriptors."""

    def test_registers_points_then_extensions(self, tmp_path: Path) -> None:
        path = tmp_path / "declarations.yaml"
        path.write_text(
            "extension_points:\n"
            f"  - type: {_name(Plain)}\n"
            "    version: '3.0'\n"
            "extensions:\n"
            f"  - type: {_name(Undeclared)}\n"
            "    provider: acme\n"
            "    name: undeclared\n"
            "    version: 1.0.0\n"
            f"    extension_point: {_name(Plain)}\n"
            "    extension_point_version: '3.0'\n"
            "    externally_managed: true\n",
            encoding="utf-8",
        )
        table = DescriptorTable()
        assert load_declarations(path, table=table) == 2
        assert table.point_descriptor(Plain).version == "3.0"
        ext = table.extension_descriptor(Undeclared)
        assert ext.extension_point == type_id(Plain)
        assert ext.externally_managed is True

    def test_unresolvable_type(self, tmp_path: Path) -> None:
        path = tmp_path / "declarations.yaml"
        path.write_text("extension_points:\n  - type: no_such_module_xyz:Thing\n")
        with pytest.raises(DeclarationError):
            load_declarations(path, table=DescriptorTable())

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "declarations.yaml"
        path.write_text("extension_points: [unclosed\n")
        with pytest.raises(DeclarationError, match="Invalid declaration file"):
            load_declarations(path, table=DescriptorTable())

    def test_bad_version_in_file(self, tmp_path: Path) -> None:
        path = tmp_path / "declarations.yaml"
        path.write_text(f"extension_points:\n  - type: {_name(Plain)}\n    version: 'x'\n")
        with pytest.raises(DeclarationError):
            load_declarations(path, table=DescriptorTable())
