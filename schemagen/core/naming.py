"""
Naming utilities for schema generation.

Handles sanitization of reflected identifiers into the schema identifier
alphabet, validity checks, and cross-class schema name collisions.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..logging_config import get_logger
from .types import asset_name_from_path

logger = get_logger(__name__)

_INVALID_CHARS = re.compile(r"[^A-Za-z0-9]")


class NameSanitizer:
    """Turns raw reflected names into safe schema identifiers.

    Stateless: the same input always produces the same output, which is what
    keeps persisted schema names stable between runs.
    """

    def sanitize(self, raw_name: str, is_top_level_type: bool = False) -> str:
        """
        Strip every character outside the schema identifier alphabet.

        Invalid characters are removed first; a leading digit is left in
        place for :meth:`check_validity` to report.

        Args:
            raw_name: Name as reported by the reflector
            is_top_level_type: Log a warning when a class name gets renamed

        Returns:
            Candidate schema name (possibly empty)
        """
        sanitized = _INVALID_CHARS.sub("", raw_name)
        if is_top_level_type and sanitized != raw_name:
            logger.warning(
                "Class name '%s' contains characters not allowed in schema, "
                "using '%s' instead",
                raw_name,
                sanitized,
            )
        return sanitized

    def component_name(self, raw_name: str) -> str:
        """Sanitized name with an upper-case first letter."""
        sanitized = self.sanitize(raw_name)
        return sanitized[:1].upper() + sanitized[1:]

    def field_name(self, chain: Iterable[str]) -> str:
        """Flattened schema field name for a chain of nested property names."""
        return "_".join(self.sanitize(part).lower() for part in chain)

    def check_validity(self, name: str, identifier: str, category: str) -> Optional[str]:
        """
        Check a sanitized name. Reports, never fixes.

        Args:
            name: Sanitized name
            identifier: Path of the thing being named, for the message
            category: Human readable kind ("Class", "Subobject", ...)

        Returns:
            Error message, or None if the name is usable
        """
        if not name:
            return (
                f"{category} {identifier} is empty after removing non-alphanumeric "
                f"characters, schema not generated."
            )
        if name[0].isdigit():
            return (
                f"{category} names should not start with digits. {category} {name} "
                f"({identifier}) has leading digits (potentially after removing "
                f"non-alphanumeric characters), schema not generated."
            )
        return None


@dataclass
class CollisionReport:
    """Cross-class name collisions found while resolving schema names."""

    groups: Dict[str, List[Tuple[str, str]]] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.groups)

    def messages(self) -> List[str]:
        """One human readable line per collision group."""
        lines = []
        for desired in sorted(self.groups):
            entries = ", ".join(f"{path}({final})" for path, final in self.groups[desired])
            lines.append(
                f"Class name collision after removing non-alphanumeric characters. "
                f"Name '{desired}' collides for classes [{entries}]"
            )
        return lines


class CollisionRegistry:
    """Assigns unique schema names to class paths for one generation pass."""

    def __init__(self, sanitizer: Optional[NameSanitizer] = None):
        """
        Initialize an empty registry.

        Args:
            sanitizer: Sanitizer used for desired and suffixed names
        """
        self.sanitizer = sanitizer or NameSanitizer()
        self._path_to_name: Dict[str, str] = {}
        self._name_to_path: Dict[str, str] = {}
        self._potential: Dict[str, List[Tuple[str, str]]] = {}

    def seed(self, identities: Dict[str, str]):
        """
        Record names already persisted in the schema database.

        Args:
            identities: Mapping of class path to schema name
        """
        for class_path in sorted(identities):
            schema_name = identities[class_path]
            if not schema_name:
                continue
            self._path_to_name[class_path] = schema_name
            self._name_to_path[schema_name] = class_path
            desired = self.sanitizer.sanitize(asset_name_from_path(class_path))
            self._record(desired, class_path, schema_name)

    def resolve(self, class_path: str, raw_name: str) -> str:
        """
        Return the schema name for a class, reserving a new one if needed.

        Callers must present classes in lexicographic path order for the
        outcome to be independent of discovery order.

        Args:
            class_path: Canonical class path
            raw_name: Unsanitized class name

        Returns:
            Unique schema name
        """
        existing = self._path_to_name.get(class_path)
        if existing is not None:
            return existing

        desired = self.sanitizer.sanitize(raw_name, is_top_level_type=True)
        schema_name = desired
        suffix = 0
        while schema_name in self._name_to_path:
            suffix += 1
            schema_name = self.sanitizer.sanitize(f"{raw_name}{suffix}")

        self._path_to_name[class_path] = schema_name
        self._name_to_path[schema_name] = class_path
        self._record(desired, class_path, schema_name)
        logger.debug("Resolved %s -> %s", class_path, schema_name)
        return schema_name

    def _record(self, desired: str, class_path: str, schema_name: str):
        if desired != schema_name:
            self._potential.setdefault(desired, []).append((class_path, schema_name))
        self._potential.setdefault(schema_name, []).append((class_path, schema_name))

    def is_used(self, schema_name: str) -> bool:
        """Check whether a schema name is already taken."""
        return schema_name in self._name_to_path

    def schema_name_for(self, class_path: str) -> Optional[str]:
        """Look up the resolved name of a class path."""
        return self._path_to_name.get(class_path)

    def collisions(self) -> CollisionReport:
        """Groups of class paths that wanted the same schema name."""
        return CollisionReport(
            {name: list(entries) for name, entries in self._potential.items() if len(entries) > 1}
        )

    def report(self) -> CollisionReport:
        """Log collision groups as warnings and return them."""
        collisions = self.collisions()
        for message in collisions.messages():
            logger.warning(message)
        return collisions
