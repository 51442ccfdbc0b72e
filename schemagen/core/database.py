"""
Schema database: the persisted record of every schema name and component ID
ever handed out.

The database is the single source of truth for ID stability. It is loaded at
the start of a pass, mutated on a working copy, and written back atomically
only when the whole pass has succeeded.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..logging_config import get_logger
from .errors import DatabaseVersionMismatch, SchemaIOError
from .ids import INVALID_COMPONENT_ID, STARTING_GENERATED_COMPONENT_ID
from .types import ALL_CATEGORIES, ComponentCategory

logger = get_logger(__name__)

DATABASE_FORMAT_VERSION = 1

CategoryIds = dict[ComponentCategory, int]


@dataclass(frozen=True)
class SchemaIdentity:
    """Bidirectional class path <-> schema name entry."""

    class_path: str
    schema_name: str


@dataclass(frozen=True)
class ComponentAssignment:
    """A component ID bound to a (path, category) pair."""

    path: str
    category: ComponentCategory
    component_id: int


@dataclass
class SubobjectInstanceSchema:
    """A subobject statically attached to a hierarchy root."""

    name: str
    components: CategoryIds = field(default_factory=dict)
    class_path: str | None = None


@dataclass
class RootClassSchema:
    """Persisted schema data of a hierarchy root class."""

    schema_name: str
    components: CategoryIds = field(default_factory=dict)
    subobjects: dict[str, SubobjectInstanceSchema] = field(default_factory=dict)


@dataclass
class SubobjectClassSchema:
    """Persisted schema data of a subobject class and its dynamic slots."""

    schema_name: str
    dynamic_slots: list[CategoryIds] = field(default_factory=list)


def dynamic_slot_path(class_path: str, index: int) -> str:
    """Assignment path of the ``index``-th (1-based) dynamic slot of a class."""
    return f"{class_path}:Dynamic{index}"


@dataclass
class SchemaDatabase:
    """Aggregate root of everything that must survive between passes."""

    root_classes: dict[str, RootClassSchema] = field(default_factory=dict)
    subobject_classes: dict[str, SubobjectClassSchema] = field(default_factory=dict)
    level_path_to_component_id: dict[str, int] = field(default_factory=dict)
    net_cull_distance_to_component_id: dict[float, int] = field(default_factory=dict)
    component_ids_by_category: dict[ComponentCategory, set[int]] = field(
        default_factory=lambda: {category: set() for category in ALL_CATEGORIES}
    )
    next_available_component_id: int = STARTING_GENERATED_COMPONENT_ID
    schema_descriptor_hash: str | None = None

    @classmethod
    def empty(cls) -> SchemaDatabase:
        """A fresh database with the allocator at its baseline."""
        return cls()

    def copy(self) -> SchemaDatabase:
        """Deep copy used as the working copy of a generation pass."""
        return copy.deepcopy(self)

    @property
    def has_class_mappings(self) -> bool:
        return bool(self.root_classes or self.subobject_classes)

    def is_stale(self) -> bool:
        """True for databases written before IDs were allocated non-destructively.

        Such a database has class mappings but a watermark still at the
        baseline, so it cannot guarantee IDs are never reused.
        """
        return (
            self.has_class_mappings
            and self.next_available_component_id == STARTING_GENERATED_COMPONENT_ID
        )

    # Mutation helpers used by the emitter

    def record_category_id(self, category: ComponentCategory, component_id: int) -> None:
        if component_id != INVALID_COMPONENT_ID:
            self.component_ids_by_category[category].add(component_id)

    # Queries

    def identities(self) -> list[SchemaIdentity]:
        """Every class path to schema name mapping, sorted by path."""
        names: dict[str, str] = {}
        for path, data in self.subobject_classes.items():
            names[path] = data.schema_name
        for path, data in self.root_classes.items():
            names[path] = data.schema_name
        return [SchemaIdentity(path, names[path]) for path in sorted(names)]

    def identity_map(self) -> dict[str, str]:
        return {identity.class_path: identity.schema_name for identity in self.identities()}

    def schema_name_for(self, class_path: str) -> str | None:
        if class_path in self.root_classes:
            return self.root_classes[class_path].schema_name
        if class_path in self.subobject_classes:
            return self.subobject_classes[class_path].schema_name
        return None

    def assignments(self) -> list[ComponentAssignment]:
        """Every class and subobject component assignment, sorted by ID."""
        result: list[ComponentAssignment] = []
        for class_path, root in self.root_classes.items():
            result.extend(_assignments(class_path, root.components))
            for sub_path, sub in root.subobjects.items():
                result.extend(_assignments(sub_path, sub.components))
        for class_path, sub_class in self.subobject_classes.items():
            for index, slot in enumerate(sub_class.dynamic_slots, start=1):
                result.extend(_assignments(dynamic_slot_path(class_path, index), slot))
        return sorted(result, key=lambda a: a.component_id)

    def component_id_to_class_path(self) -> dict[int, str]:
        """Reverse lookup from component ID to the class that owns it.

        Subobject instance components resolve to the class of the attached
        subobject; dynamic slots resolve to their subobject class.
        """
        mapping: dict[int, str] = {}
        for class_path, root in self.root_classes.items():
            for component_id in root.components.values():
                mapping[component_id] = class_path
            for sub_path, sub in root.subobjects.items():
                for component_id in sub.components.values():
                    mapping[component_id] = sub.class_path or sub_path
        for class_path, sub_class in self.subobject_classes.items():
            for slot in sub_class.dynamic_slots:
                for component_id in slot.values():
                    mapping[component_id] = class_path
        mapping.pop(INVALID_COMPONENT_ID, None)
        return dict(sorted(mapping.items()))

    def category_of(self, component_id: int) -> ComponentCategory | None:
        for category, ids in self.component_ids_by_category.items():
            if component_id in ids:
                return category
        return None

    def all_component_ids(self) -> list[int]:
        """Every ID handed out, including auxiliary namespaces (may repeat if corrupted)."""
        ids = [a.component_id for a in self.assignments()]
        ids.extend(self.level_path_to_component_id.values())
        ids.extend(self.net_cull_distance_to_component_id.values())
        return [i for i in ids if i != INVALID_COMPONENT_ID]

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary with sorted keys."""
        return {
            "version": DATABASE_FORMAT_VERSION,
            "next_available_component_id": self.next_available_component_id,
            "schema_descriptor_hash": self.schema_descriptor_hash,
            "root_classes": {
                path: {
                    "schema_name": root.schema_name,
                    "components": _ids_to_dict(root.components),
                    "subobjects": {
                        sub_path: {
                            "name": sub.name,
                            "class_path": sub.class_path or sub_path,
                            "components": _ids_to_dict(sub.components),
                        }
                        for sub_path, sub in sorted(root.subobjects.items())
                    },
                }
                for path, root in sorted(self.root_classes.items())
            },
            "subobject_classes": {
                path: {
                    "schema_name": sub_class.schema_name,
                    "dynamic_slots": [_ids_to_dict(slot) for slot in sub_class.dynamic_slots],
                }
                for path, sub_class in sorted(self.subobject_classes.items())
            },
            "level_path_to_component_id": dict(sorted(self.level_path_to_component_id.items())),
            "net_cull_distances": [
                [distance, component_id]
                for distance, component_id in sorted(self.net_cull_distance_to_component_id.items())
            ],
            "component_ids": {
                category.value: sorted(self.component_ids_by_category[category])
                for category in ALL_CATEGORIES
            },
            # Derived lookups for runtime consumers; ignored on load.
            "component_id_to_class_path": {
                str(component_id): path
                for component_id, path in self.component_id_to_class_path().items()
            },
            "level_component_ids": sorted(self.level_path_to_component_id.values()),
            "net_cull_distance_component_ids": sorted(
                self.net_cull_distance_to_component_id.values()
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaDatabase:
        """
        Build a database from its serialized form.

        Unknown keys are ignored and every map is optional, so databases
        written by older or newer tool versions still load.

        Raises:
            ValueError: If a present value has the wrong shape.
        """
        if not isinstance(data, dict):
            raise ValueError("Schema database must be a JSON object")

        database = cls()
        database.next_available_component_id = int(
            data.get("next_available_component_id", STARTING_GENERATED_COMPONENT_ID)
        )
        if database.next_available_component_id < STARTING_GENERATED_COMPONENT_ID:
            raise ValueError(
                f"next_available_component_id {database.next_available_component_id} "
                f"is below {STARTING_GENERATED_COMPONENT_ID}"
            )
        database.schema_descriptor_hash = data.get("schema_descriptor_hash")

        for path, entry in data.get("root_classes", {}).items():
            database.root_classes[path] = RootClassSchema(
                schema_name=entry["schema_name"],
                components=_ids_from_dict(entry.get("components", {})),
                subobjects={
                    sub_path: SubobjectInstanceSchema(
                        name=sub["name"],
                        components=_ids_from_dict(sub.get("components", {})),
                        class_path=sub.get("class_path", sub_path),
                    )
                    for sub_path, sub in entry.get("subobjects", {}).items()
                },
            )

        for path, entry in data.get("subobject_classes", {}).items():
            database.subobject_classes[path] = SubobjectClassSchema(
                schema_name=entry["schema_name"],
                dynamic_slots=[_ids_from_dict(slot) for slot in entry.get("dynamic_slots", [])],
            )

        database.level_path_to_component_id = {
            path: int(component_id)
            for path, component_id in data.get("level_path_to_component_id", {}).items()
        }
        database.net_cull_distance_to_component_id = {
            float(distance): int(component_id)
            for distance, component_id in data.get("net_cull_distances", [])
        }

        component_ids = data.get("component_ids", {})
        for category in ALL_CATEGORIES:
            database.component_ids_by_category[category] = {
                int(i) for i in component_ids.get(category.value, [])
            }

        return database


def _assignments(path: str, components: CategoryIds) -> list[ComponentAssignment]:
    return [
        ComponentAssignment(path, category, components[category])
        for category in ALL_CATEGORIES
        if components.get(category, INVALID_COMPONENT_ID) != INVALID_COMPONENT_ID
    ]


def _ids_to_dict(components: CategoryIds) -> dict[str, int]:
    return {
        category.value: components[category]
        for category in ALL_CATEGORIES
        if category in components
    }


def _ids_from_dict(data: dict[str, Any]) -> CategoryIds:
    return {ComponentCategory(key): int(value) for key, value in data.items()}


class SchemaDatabaseStore:
    """Loads and atomically saves a :class:`SchemaDatabase` JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def is_read_only(self) -> bool:
        """True if the database file exists but cannot be written."""
        return self.exists() and not os.access(self.path, os.W_OK)

    def load(self) -> SchemaDatabase:
        """Read the database from disk.

        Returns:
            The persisted database.

        Raises:
            FileNotFoundError: If no database has been written yet.
            SchemaIOError: If the file cannot be read or parsed.
            DatabaseVersionMismatch: If the database is a pre-stability artifact.
        """
        if not self.exists():
            raise FileNotFoundError(f"Schema database not found: {self.path}")

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            database = SchemaDatabase.from_dict(data)
        except json.JSONDecodeError as e:
            raise SchemaIOError(f"Invalid JSON in schema database {self.path}: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise SchemaIOError(f"Malformed schema database {self.path}: {e}") from e
        except OSError as e:
            raise SchemaIOError(f"Error reading schema database {self.path}: {e}") from e

        if database.is_stale():
            raise DatabaseVersionMismatch(
                f"Schema database {self.path} has class mappings but its component ID "
                f"watermark is still {STARTING_GENERATED_COMPONENT_ID}"
            )

        logger.debug(
            "Loaded schema database %s (%d root classes, %d subobject classes, next id %d)",
            self.path,
            len(database.root_classes),
            len(database.subobject_classes),
            database.next_available_component_id,
        )
        return database

    def save(self, database: SchemaDatabase) -> None:
        """Write the database atomically.

        The new content goes to a temporary file in the same directory which
        then replaces the old file, so readers never see a partial write and
        a failure leaves the previous database untouched.

        Raises:
            SchemaIOError: If the database cannot be written.
        """
        if self.is_read_only():
            raise SchemaIOError(
                f"Schema database at {self.path} is read only. Make it writable "
                f"before generating schema"
            )

        payload = json.dumps(database.to_dict(), indent=2, sort_keys=True) + "\n"
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise SchemaIOError(
                f"Unable to save schema database to '{self.path}'! "
                f"The file may be locked by another process: {e}"
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.info("Saved schema database to %s", self.path)

    def delete(self) -> None:
        """Remove the database file, if present.

        Raises:
            SchemaIOError: If the file is read only or cannot be removed.
        """
        if not self.exists():
            return
        if self.is_read_only():
            raise SchemaIOError(
                f"Unable to delete schema database at {self.path} because it is read-only."
            )
        try:
            self.path.unlink()
        except OSError as e:
            raise SchemaIOError(f"Unable to delete schema database at {self.path}: {e}") from e
        logger.info("Deleted schema database %s", self.path)
