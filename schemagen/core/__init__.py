"""
Core schema generation components.

Provides the type graph model, naming, ID allocation, emission, the schema
database and the pass orchestrator.
"""

from .types import (
    ALL_CATEGORIES,
    ComponentCategory,
    NodeKind,
    TypeNode,
    convert_reflector_output,
)
from .naming import CollisionRegistry, CollisionReport, NameSanitizer
from .ids import INVALID_COMPONENT_ID, STARTING_GENERATED_COMPONENT_ID, ComponentIdAllocator
from .validator import TypeGraphValidator, ValidationResult
from .database import (
    ComponentAssignment,
    SchemaDatabase,
    SchemaDatabaseStore,
    SchemaIdentity,
)
from .emitter import SchemaEmitter
from .compiler import SchemaCompiler, hash_descriptor
from .discovery import ClassFilter, DiscoveryListener, TypeReflector
from .orchestrator import GenerationOrchestrator, PassResult, PassState
from .errors import (
    CompilerFailure,
    DatabaseVersionMismatch,
    NameValidationError,
    SchemaGenError,
    SchemaIOError,
)
from .config import GeneratorConfig, ConfigManager, ConfigError, load_config
from .templates import TemplateEngine, TemplateError

__all__ = [
    # Type graph model
    "ALL_CATEGORIES",
    "ComponentCategory",
    "NodeKind",
    "TypeNode",
    "convert_reflector_output",
    # Naming
    "CollisionRegistry",
    "CollisionReport",
    "NameSanitizer",
    # Component IDs
    "INVALID_COMPONENT_ID",
    "STARTING_GENERATED_COMPONENT_ID",
    "ComponentIdAllocator",
    # Validation and emission
    "TypeGraphValidator",
    "ValidationResult",
    "SchemaEmitter",
    # Schema database
    "ComponentAssignment",
    "SchemaDatabase",
    "SchemaDatabaseStore",
    "SchemaIdentity",
    # Pass orchestration
    "SchemaCompiler",
    "hash_descriptor",
    "ClassFilter",
    "DiscoveryListener",
    "TypeReflector",
    "GenerationOrchestrator",
    "PassResult",
    "PassState",
    # Errors
    "CompilerFailure",
    "DatabaseVersionMismatch",
    "NameValidationError",
    "SchemaGenError",
    "SchemaIOError",
    # Configuration
    "GeneratorConfig",
    "ConfigManager",
    "ConfigError",
    "load_config",
    # Templates
    "TemplateEngine",
    "TemplateError",
]
