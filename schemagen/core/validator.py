"""
Type graph validation.

Checks every name the emitter will produce before any ID is allocated.
Validation never touches the schema database and always runs to completion
so that every problem is reported in one go.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..logging_config import get_logger
from .naming import NameSanitizer
from .types import NodeKind, TypeNode

logger = get_logger(__name__)


@dataclass
class ValidationResult:
    """Outcome of validating a type graph."""

    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def __iter__(self):
        # Allows ``ok, errors = validator.validate(graph)``
        return iter((self.ok, self.errors))


class TypeGraphValidator:
    """Validates class, field and subobject names of a type graph."""

    def __init__(self, sanitizer: Optional[NameSanitizer] = None):
        self.sanitizer = sanitizer or NameSanitizer()

    def validate(self, type_graph: List[TypeNode]) -> ValidationResult:
        """
        Validate every top-level class of a type graph.

        Args:
            type_graph: Top-level CLASS / SUBOBJECT nodes

        Returns:
            ValidationResult listing every error found
        """
        result = ValidationResult()

        for node in type_graph:
            self._check_top_level(node, result.errors)

        for node in type_graph:
            self._check_identifiers(node, result.errors)

        for error in result.errors:
            logger.error(error)
        return result

    def _check_top_level(self, node: TypeNode, errors: List[str]):
        if node.kind not in (NodeKind.CLASS, NodeKind.SUBOBJECT):
            errors.append(
                f"{node.path} is a {node.kind.value} node and cannot be a top-level type"
            )
            return
        name = self.sanitizer.sanitize(node.name)
        self._add(errors, self.sanitizer.check_validity(name, node.path, "Class"))

    def _check_identifiers(self, node: TypeNode, errors: List[str]):
        """Check every independently disambiguated sibling group of a node."""
        for child in node.children:
            if child.kind == NodeKind.FIELD_GROUP:
                if child.category is None:
                    errors.append(f"Field group {child.path} has no component category")
            elif child.kind == NodeKind.FIELD:
                errors.append(f"Field {child.path} must be declared inside a field group")

        for category, fields in node.fields_by_category().items():
            label = _GROUP_LABELS.get(category.value, "Property")
            seen: Dict[str, str] = {}
            for flat in fields:
                valid = True
                for part in flat.chain:
                    error = self.sanitizer.check_validity(
                        self.sanitizer.sanitize(part), flat.path, label
                    )
                    if error:
                        errors.append(error)
                        valid = False
                if not valid:
                    continue

                schema_name = self.sanitizer.field_name(flat.chain)
                existing = seen.get(schema_name)
                if existing is not None:
                    errors.append(
                        f"{label} name collision after removing non-alphanumeric "
                        f"characters, schema not generated. Name '{schema_name}' "
                        f"collides for '{existing}' and '{flat.path}'"
                    )
                else:
                    seen[schema_name] = flat.path

        seen_subobjects: Dict[str, str] = {}
        for subobject in node.subobjects():
            name = self.sanitizer.component_name(subobject.name)
            error = self.sanitizer.check_validity(name, subobject.path, "Subobject")
            if error:
                errors.append(error)
            elif name in seen_subobjects:
                errors.append(
                    f"Subobject name collision after removing non-alphanumeric "
                    f"characters, schema not generated. Name '{name}' collides for "
                    f"'{seen_subobjects[name]}' and '{subobject.path}'"
                )
            else:
                seen_subobjects[name] = subobject.path
            self._check_identifiers(subobject, errors)

    @staticmethod
    def _add(errors: List[str], error: Optional[str]):
        if error:
            errors.append(error)


_GROUP_LABELS = {
    "data": "Replicated property",
    "owner_only": "Owner only property",
    "handover": "Handover property",
}
