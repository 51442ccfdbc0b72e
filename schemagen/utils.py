"""Utility functions for loading reflected type graphs.

This module provides a JSON-file backed reflector, used when the host
application exports its type graph ahead of a generation pass.
"""

import json
from pathlib import Path
from typing import Any

from .core.types import TypeNode, convert_reflector_output
from .logging_config import get_logger

logger = get_logger(__name__)


class TypeGraphLoaderError(Exception):
    """Custom exception for type graph loading errors."""

    pass


def load_json_from_file(file_path: str | Path) -> Any:
    """Load JSON data from a local file.

    Args:
        file_path: Path to the JSON file.

    Returns:
        Parsed JSON data.

    Raises:
        FileNotFoundError: If file doesn't exist.
        TypeGraphLoaderError: If file cannot be read or JSON is invalid.
    """
    file_path = Path(file_path)
    logger.debug(f"Attempting to load JSON from file: {file_path}")

    if not file_path.exists():
        logger.error(f"File not found: {file_path}")
        raise FileNotFoundError(f"File not found: {file_path}")

    if file_path.suffix.lower() != ".json":
        logger.warning(f"File does not have .json extension: {file_path}")

    try:
        with file_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        logger.info(f"Successfully loaded JSON from {file_path}")
        return data
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in file {file_path}: {e}")
        raise TypeGraphLoaderError(f"Invalid JSON in file {file_path}: {e}") from e
    except OSError as e:
        logger.error(f"Error reading file {file_path}: {e}")
        raise TypeGraphLoaderError(f"Error reading file {file_path}: {e}") from e


class JsonTypeGraphReflector:
    """Type reflector backed by an exported JSON document.

    Expected shape::

        {"classes": [<class entry>, ...], "levels": ["/Game/Maps/Arena", ...]}

    See :func:`schemagen.core.types.convert_reflector_output` for the class
    entry format.
    """

    def __init__(self, data: dict[str, Any]):
        if not isinstance(data, dict):
            raise TypeGraphLoaderError("Type graph document must be a JSON object")

        self._classes: dict[str, TypeNode] = {}
        for entry in data.get("classes", []):
            try:
                node = convert_reflector_output(entry)
            except (KeyError, TypeError, ValueError) as e:
                raise TypeGraphLoaderError(f"Malformed class entry {entry!r}: {e}") from e
            self._classes[node.path] = node

        self._levels = [str(level) for level in data.get("levels", [])]

    @classmethod
    def from_file(cls, file_path: str | Path) -> "JsonTypeGraphReflector":
        """Build a reflector from a JSON file."""
        return cls(load_json_from_file(file_path))

    def classes(self) -> list[TypeNode]:
        return list(self._classes.values())

    def resolve(self, path: str) -> TypeNode | None:
        return self._classes.get(path)

    def level_paths(self) -> list[str]:
        return list(self._levels)
