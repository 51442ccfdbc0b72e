"""
schemagen

Generates wire-format schema with stable component IDs from a reflected
type graph.
"""

from .core import (
    ComponentCategory,
    GenerationOrchestrator,
    GeneratorConfig,
    PassResult,
    PassState,
    SchemaDatabase,
    SchemaDatabaseStore,
    load_config,
)

# Version info
__version__ = "0.1.0"

__all__ = [
    "ComponentCategory",
    "GenerationOrchestrator",
    "GeneratorConfig",
    "PassResult",
    "PassState",
    "SchemaDatabase",
    "SchemaDatabaseStore",
    "load_config",
    "__version__",
]
