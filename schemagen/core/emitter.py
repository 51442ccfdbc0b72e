"""
Schema text emission.

Turns validated type graph nodes into schema text, assigning component IDs
from the shared allocator and recording them in the schema database.
Previously assigned IDs are always reused for the same (path, category).
"""

import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..logging_config import get_logger
from .config import GeneratorConfig
from .database import (
    CategoryIds,
    RootClassSchema,
    SchemaDatabase,
    SubobjectClassSchema,
    SubobjectInstanceSchema,
    dynamic_slot_path,
)
from .errors import SchemaIOError
from .ids import ComponentIdAllocator, INVALID_COMPONENT_ID
from .naming import NameSanitizer
from .templates import TemplateEngine, format_schema, get_default_template_engine
from .types import ComponentCategory, NodeKind, TypeNode, asset_name_from_path

logger = get_logger(__name__)

SUBOBJECTS_DIR = "Subobjects"
SUBLEVELS_FILE = "Sublevels/sublevels.schema"
NET_CULL_DISTANCE_FILE = "NetCullDistance/ncdcomponents.schema"


class SchemaEmitter:
    """Renders schema units for classes and the auxiliary namespaces."""

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        sanitizer: Optional[NameSanitizer] = None,
        template_engine: Optional[TemplateEngine] = None,
    ):
        """
        Initialize emitter.

        Args:
            config: Generator configuration (package prefix, dynamic slot count)
            sanitizer: Name sanitizer shared with the validator
            template_engine: Template engine, defaults to the packaged templates
        """
        self.config = config or GeneratorConfig()
        self.sanitizer = sanitizer or NameSanitizer()
        self.template_engine = template_engine or get_default_template_engine()

    # Class hierarchy

    def emit_class(
        self,
        node: TypeNode,
        schema_name: str,
        database: SchemaDatabase,
        allocator: ComponentIdAllocator,
    ) -> Dict[str, str]:
        """
        Emit schema for one top-level class.

        Args:
            node: Top-level CLASS or SUBOBJECT node
            schema_name: Resolved, unique schema name of the class
            database: Working copy of the schema database (updated in place)
            allocator: Shared component ID allocator

        Returns:
            Mapping of schema-root-relative file path to schema text
        """
        if node.kind == NodeKind.CLASS:
            return self._emit_root_class(node, schema_name, database, allocator)
        if node.kind == NodeKind.SUBOBJECT:
            return self._emit_subobject_class(node, schema_name, database, allocator)
        raise ValueError(f"Cannot emit schema for {node.kind.value} node {node.path}")

    def _emit_root_class(
        self,
        node: TypeNode,
        schema_name: str,
        database: SchemaDatabase,
        allocator: ComponentIdAllocator,
    ) -> Dict[str, str]:
        record = database.root_classes.get(node.path)
        if record is None:
            record = RootClassSchema(schema_name=schema_name)
            database.root_classes[node.path] = record
        record.schema_name = schema_name

        components = []
        fields = node.fields_by_category()
        for category in node.categories_with_fields():
            component_id = self._assign(record.components, category, database, allocator)
            components.append(
                self._component(
                    name=schema_name + category.suffix,
                    component_id=component_id,
                    path=node.path,
                    fields=fields[category],
                )
            )

        for subobject, component_name in self._walk_subobjects(node, schema_name):
            sub_record = record.subobjects.get(subobject.path)
            if sub_record is None:
                sub_record = SubobjectInstanceSchema(name=component_name)
                record.subobjects[subobject.path] = sub_record
            sub_record.class_path = subobject.class_path
            sub_fields = subobject.fields_by_category()
            for category in subobject.categories_with_fields():
                component_id = self._assign(sub_record.components, category, database, allocator)
                components.append(
                    self._component(
                        name=component_name + category.suffix,
                        component_id=component_id,
                        path=subobject.path,
                        fields=sub_fields[category],
                    )
                )

        logger.debug("Generated schema for class %s (%d components)", node.path, len(components))
        text = self._render(
            "class.schema.j2",
            package=f"{self.config.package_prefix}.generated.{schema_name.lower()}",
            types=[],
            components=components,
        )
        return {f"{schema_name}.schema": text}

    def _walk_subobjects(self, node: TypeNode, prefix: str):
        """Depth-first (subobject, component name) pairs below a node."""
        for subobject in node.subobjects():
            component_name = prefix + self.sanitizer.component_name(subobject.name)
            yield subobject, component_name
            yield from self._walk_subobjects(subobject, component_name)

    def _emit_subobject_class(
        self,
        node: TypeNode,
        schema_name: str,
        database: SchemaDatabase,
        allocator: ComponentIdAllocator,
    ) -> Dict[str, str]:
        record = database.subobject_classes.get(node.path)
        if record is None:
            record = SubobjectClassSchema(schema_name=schema_name)
            database.subobject_classes[node.path] = record
        record.schema_name = schema_name

        fields = node.fields_by_category()
        categories = node.categories_with_fields()
        types = [
            {"name": schema_name + category.suffix, "fields": self._fields(fields[category])}
            for category in categories
        ]

        components = []
        slot_count = self.config.dynamic_subobject_slots
        while len(record.dynamic_slots) < slot_count:
            record.dynamic_slots.append({})

        for index in range(1, slot_count + 1):
            slot = record.dynamic_slots[index - 1]
            for category in categories:
                component_id = self._assign(slot, category, database, allocator)
                components.append(
                    {
                        "name": f"{schema_name}Dynamic{index}{category.suffix}",
                        "id": component_id,
                        "path": dynamic_slot_path(node.path, index),
                        "data_type": schema_name + category.suffix,
                        "fields": [],
                    }
                )

        logger.debug(
            "Generated schema for subobject class %s (%d dynamic components)",
            node.path,
            len(components),
        )
        text = self._render(
            "class.schema.j2",
            package=f"{self.config.package_prefix}.generated",
            types=types,
            components=components,
        )
        return {f"{SUBOBJECTS_DIR}/{schema_name}.schema": text}

    # Auxiliary namespaces

    def emit_levels(
        self,
        level_paths: Iterable[str],
        database: SchemaDatabase,
        allocator: ComponentIdAllocator,
        warnings: Optional[List[str]] = None,
    ) -> Dict[str, str]:
        """
        Emit one component per streaming level asset path.

        Levels sharing a display name are numbered by their position in the
        sorted list of their paths, so discovery order never matters.
        Names the schema compiler would reject, or that clash after
        sanitizing, are still emitted but reported in ``warnings``.
        """
        by_name: Dict[str, List[str]] = {}
        for path in sorted(set(level_paths)):
            by_name.setdefault(asset_name_from_path(path), []).append(path)

        seen: Dict[str, str] = {}
        components = []
        for level_name in sorted(by_name):
            paths = by_name[level_name]
            for index, path in enumerate(paths):
                display_name = f"{level_name}Ind{index}" if len(paths) > 1 else level_name
                component_id = database.level_path_to_component_id.get(path, INVALID_COMPONENT_ID)
                if component_id == INVALID_COMPONENT_ID:
                    component_id = allocator.next()
                    database.level_path_to_component_id[path] = component_id
                name = self.sanitizer.component_name(display_name)
                self._check_level_name(name, path, seen, warnings)
                components.append(
                    {
                        "name": name,
                        "id": component_id,
                        "path": path,
                        "data_type": None,
                        "fields": [],
                    }
                )

        text = self._render(
            "flat.schema.j2",
            package=f"{self.config.package_prefix}.sublevels",
            components=components,
        )
        return {SUBLEVELS_FILE: text}

    def _check_level_name(
        self, name: str, path: str, seen: Dict[str, str], warnings: Optional[List[str]]
    ):
        message = None
        if self.sanitizer.check_validity(name, path, "Level"):
            message = (
                f"Level {path} has component name '{name}' "
                f"that is not a valid schema identifier"
            )
        elif name in seen:
            message = f"Level component name '{name}' collides for '{seen[name]}' and '{path}'"
        else:
            seen[name] = path
        if message:
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)

    def emit_distance_buckets(
        self,
        distances: Iterable[float],
        database: SchemaDatabase,
        allocator: ComponentIdAllocator,
    ) -> Dict[str, str]:
        """
        Emit one component per distinct net cull distance.

        Buckets recorded by earlier passes are kept and emitted again.
        Distances are bucketed by their integer part.
        """
        for distance in distances:
            database.net_cull_distance_to_component_id.setdefault(
                distance_bucket(distance), INVALID_COMPONENT_ID
            )

        components = []
        for bucket in sorted(database.net_cull_distance_to_component_id):
            component_id = database.net_cull_distance_to_component_id[bucket]
            if component_id == INVALID_COMPONENT_ID:
                component_id = allocator.next()
                database.net_cull_distance_to_component_id[bucket] = component_id
            components.append(
                {
                    "name": self.sanitizer.component_name(f"NetCullDistanceSquared{int(bucket)}"),
                    "id": component_id,
                    "path": f"distance {int(bucket)}",
                    "data_type": None,
                    "fields": [],
                }
            )

        text = self._render(
            "flat.schema.j2",
            package=f"{self.config.package_prefix}.ncdcomponents",
            components=components,
        )
        return {NET_CULL_DISTANCE_FILE: text}

    # Helpers

    @staticmethod
    def _assign(
        components: CategoryIds,
        category: ComponentCategory,
        database: SchemaDatabase,
        allocator: ComponentIdAllocator,
    ) -> int:
        component_id = components.get(category, INVALID_COMPONENT_ID)
        if component_id == INVALID_COMPONENT_ID:
            component_id = allocator.next()
            components[category] = component_id
        database.record_category_id(category, component_id)
        return component_id

    def _component(self, name: str, component_id: int, path: str, fields) -> Dict[str, Any]:
        return {
            "name": name,
            "id": component_id,
            "path": path,
            "data_type": None,
            "fields": self._fields(fields),
        }

    def _fields(self, flat_fields) -> List[Dict[str, Any]]:
        return [
            {
                "name": self.sanitizer.field_name(flat.chain),
                "type": flat.field_type,
                "number": number,
            }
            for number, flat in enumerate(flat_fields, start=1)
        ]

    def _render(self, template_name: str, **context) -> str:
        return format_schema(self.template_engine.render_template(template_name, context))


def distance_bucket(distance: float) -> float:
    """Bucket key of a net cull distance."""
    return float(int(distance))


def refresh_schema_dir(schema_dir: Path):
    """
    Delete and recreate the generated schema directory.

    Raises:
        SchemaIOError: If the directory cannot be cleaned or created
    """
    schema_dir = Path(schema_dir)
    if schema_dir.exists():
        try:
            shutil.rmtree(schema_dir)
        except OSError as e:
            raise SchemaIOError(
                f"Could not clean the schema directory '{schema_dir}'! Please make sure "
                f"the directory and the files inside are writeable: {e}"
            ) from e
    try:
        schema_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SchemaIOError(
            f"Could not create schema directory '{schema_dir}'! Please make sure the "
            f"parent directory is writeable: {e}"
        ) from e


def write_schema_files(outputs: Dict[str, str], schema_dir: Path) -> List[Path]:
    """
    Write emitted schema units below the schema directory.

    Args:
        outputs: Mapping of relative path to schema text
        schema_dir: Schema root directory

    Returns:
        Paths written, in sorted order

    Raises:
        SchemaIOError: If a file cannot be written
    """
    written = []
    for relative in sorted(outputs):
        target = Path(schema_dir) / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(outputs[relative], encoding="utf-8")
        except OSError as e:
            raise SchemaIOError(f"Failed to write schema file {target}: {e}") from e
        written.append(target)
    return written

