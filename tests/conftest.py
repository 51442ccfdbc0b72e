"""Shared test fixtures."""

from __future__ import annotations

import json
import logging
import stat
from pathlib import Path
from typing import Any

import pytest

from schemagen.core.config import GeneratorConfig
from schemagen.core.types import TypeNode, convert_reflector_output
from schemagen.logging_config import ROOT_LOGGER_NAME


def class_entry(
    path: str,
    name: str | None = None,
    kind: str = "class",
    data: list[Any] | None = None,
    owner_only: list[Any] | None = None,
    handover: list[Any] | None = None,
    subobjects: list[dict[str, Any]] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a reflector class entry.

    Fields may be given as plain names (typed ``uint32``) or full dicts.
    """

    def _fields(items: list[Any] | None) -> list[dict[str, Any]]:
        return [
            item if isinstance(item, dict) else {"name": item, "type": "uint32"}
            for item in items or []
        ]

    entry: dict[str, Any] = {
        "path": path,
        "name": name if name is not None else path.rsplit(".", 1)[-1],
        "kind": kind,
        "groups": {
            "data": _fields(data),
            "owner_only": _fields(owner_only),
            "handover": _fields(handover),
        },
        "subobjects": subobjects or [],
    }
    entry.update(extra)
    return entry


def make_node(path: str, **kwargs: Any) -> TypeNode:
    """Build a converted TypeNode (see :func:`class_entry`)."""
    return convert_reflector_output(class_entry(path, **kwargs))


class StaticReflector:
    """In-memory reflector over a fixed set of nodes."""

    def __init__(
        self,
        nodes: list[TypeNode],
        levels: list[str] | None = None,
        discoverable: list[TypeNode] | None = None,
    ) -> None:
        self.nodes = list(nodes)
        self.levels = list(levels or [])
        self.discoverable = {node.path: node for node in discoverable or []}

    def classes(self) -> list[TypeNode]:
        return list(self.nodes)

    def resolve(self, path: str) -> TypeNode | None:
        return self.discoverable.get(path)

    def level_paths(self) -> list[str]:
        return list(self.levels)


_FAKE_COMPILER = """#!/bin/sh
out=""
for arg in "$@"; do
  case "$arg" in
    --descriptor_set_out=*) out="${arg#--descriptor_set_out=}" ;;
  esac
done
printf 'compiled descriptor' > "$out"
echo "compiled"
exit 0
"""

_FAILING_COMPILER = """#!/bin/sh
echo "error: unknown type in schema" >&2
exit 2
"""


def _write_script(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_compiler(tmp_path: Path) -> Path:
    """Executable that writes a fixed descriptor and exits 0."""
    return _write_script(tmp_path / "fake_schema_compiler", _FAKE_COMPILER)


@pytest.fixture
def failing_compiler(tmp_path: Path) -> Path:
    """Executable that prints to stderr and exits 2."""
    return _write_script(tmp_path / "failing_schema_compiler", _FAILING_COMPILER)


@pytest.fixture
def make_config(tmp_path: Path, fake_compiler: Path):
    """Factory for configs rooted in a temporary directory.

    Usage:
        config = make_config(batch_size=1)
        config = make_config(root=tmp_path / "other", skip_compile=True)
    """

    def _make(root: Path | None = None, **overrides: Any) -> GeneratorConfig:
        root = root or tmp_path / "project"
        settings: dict[str, Any] = {
            "schema_output_dir": str(root / "schema" / "generated"),
            "database_path": str(root / "schema" / "SchemaDatabase.json"),
            "compiler_executable": str(fake_compiler),
            "compiler_schema_paths": [str(root / "schema")],
            "compiled_schema_dir": str(root / "build" / "schema"),
        }
        settings.update(overrides)
        return GeneratorConfig(**settings)

    return _make


@pytest.fixture
def config(make_config) -> GeneratorConfig:
    return make_config()


@pytest.fixture
def hero_node() -> TypeNode:
    """A hierarchy root with every category and one attached subobject."""
    return make_node(
        "/Game/Characters/Hero.Hero_C",
        name="Hero_C",
        data=["Health", {"name": "Position", "type": "Vector", "fields": []}],
        owner_only=["Ammo"],
        handover=["Stamina"],
        subobjects=[
            class_entry(
                "/Game/Characters/Hero.Hero_C:Mesh",
                name="Mesh",
                kind="subobject",
                data=["Scale"],
                class_path="/Script/Engine.StaticMeshComponent",
            )
        ],
        net_cull_distance=22500.0,
    )


@pytest.fixture
def write_type_graph(tmp_path: Path):
    """Write a reflector JSON document and return its path."""

    def _write(classes: list[dict[str, Any]], levels: list[str] | None = None) -> Path:
        path = tmp_path / "typegraph.json"
        path.write_text(json.dumps({"classes": classes, "levels": levels or []}), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def build_entry():
    """Reflector class entry factory (see :func:`class_entry`)."""
    return class_entry


@pytest.fixture
def build_node():
    """TypeNode factory (see :func:`make_node`)."""
    return make_node


@pytest.fixture
def reflector_factory():
    """Factory for in-memory reflectors."""
    return StaticReflector


@pytest.fixture(autouse=True)
def reset_schemagen_logging():
    """Undo handlers installed by CLI runs so caplog sees every record."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
