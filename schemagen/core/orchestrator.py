"""
Generation pass orchestration.

Drives one schema generation pass through its states, owning the working
copy of the schema database. The persisted database only changes when
every stage has succeeded.
"""

import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..logging_config import get_logger
from .compiler import SchemaCompiler, hash_descriptor
from .config import GeneratorConfig
from .database import SchemaDatabase, SchemaDatabaseStore
from .discovery import ClassFilter, DiscoveryListener, TypeReflector
from .emitter import SchemaEmitter, refresh_schema_dir, write_schema_files
from .errors import (
    DatabaseVersionMismatch,
    NameValidationError,
    SchemaGenError,
    SchemaIOError,
)
from .ids import ComponentIdAllocator
from .naming import CollisionRegistry, NameSanitizer
from .templates import TemplateError
from .types import TypeNode
from .validator import TypeGraphValidator

logger = get_logger(__name__)


class PassState(Enum):
    """States of a generation pass."""

    IDLE = "idle"
    LOADING = "loading"
    DISCOVERING = "discovering"
    VALIDATING = "validating"
    EMITTING = "emitting"
    COMPILING = "compiling"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class PassResult:
    """Container for the outcome of a generation pass."""

    def __init__(
        self,
        state: PassState,
        warnings: List[str] = None,
        errors: List[str] = None,
        metadata: Dict[str, Any] = None,
    ):
        """
        Initialize pass result.

        Args:
            state: Final state of the pass (DONE or FAILED)
            warnings: Non-fatal diagnostics such as name collisions
            errors: Fatal errors, empty on success
            metadata: Counters and paths describing the pass
        """
        self.state = state
        self.warnings = warnings or []
        self.errors = errors or []
        self.metadata = metadata or {}
        self.exception: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.state == PassState.DONE

    @classmethod
    def failure(
        cls,
        failed_in: PassState,
        errors: List[str],
        warnings: List[str] = None,
        metadata: Dict[str, Any] = None,
        exception: Exception = None,
    ) -> "PassResult":
        """Create a failed pass result."""
        result = cls(PassState.FAILED, warnings=warnings, errors=errors, metadata=metadata)
        result.metadata["failed_state"] = failed_in.value
        result.exception = exception
        return result


StateCallback = Callable[[PassState], None]


class GenerationOrchestrator:
    """Runs generation passes over a reflected type graph."""

    def __init__(
        self,
        config: GeneratorConfig,
        reflector: TypeReflector,
        store: Optional[SchemaDatabaseStore] = None,
        listener: Optional[DiscoveryListener] = None,
        sanitizer: Optional[NameSanitizer] = None,
        emitter: Optional[SchemaEmitter] = None,
        compiler: Optional[SchemaCompiler] = None,
        on_state_change: Optional[StateCallback] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Generator configuration
            reflector: Source of the type graph and level paths
            store: Database store, defaults to ``config.database_path``
            listener: Discovery listener drained during discovery
            sanitizer: Name sanitizer shared by validator, registry and emitter
            emitter: Schema emitter, built from ``config`` if omitted
            compiler: Schema compiler runner, built from ``config`` if omitted
            on_state_change: Called with every state entered
        """
        self.config = config
        self.reflector = reflector
        self.store = store or SchemaDatabaseStore(config.database_path)
        self.listener = listener or DiscoveryListener()
        self.sanitizer = sanitizer or NameSanitizer()
        self.validator = TypeGraphValidator(self.sanitizer)
        self.emitter = emitter or SchemaEmitter(config, self.sanitizer)
        self.compiler = compiler or SchemaCompiler(
            executable=config.compiler_executable,
            schema_paths=config.compiler_schema_paths,
            output_dir=config.compiled_schema_dir,
            additional_args=config.additional_compiler_args,
        )
        self.class_filter = ClassFilter(config.directories_to_never_cook)
        self.on_state_change = on_state_change
        self.state = PassState.IDLE

    def run(self, reset: bool = False) -> PassResult:
        """
        Execute one generation pass.

        Args:
            reset: Delete the persisted database and start from scratch

        Returns:
            PassResult; fatal errors are reported through it, never raised
        """
        started = time.perf_counter()
        warnings: List[str] = []
        metadata: Dict[str, Any] = {
            "schema_dir": str(self.config.schema_output_dir),
            "database_path": str(self.store.path),
        }

        try:
            self._enter(PassState.LOADING)
            database = self._load(reset, warnings)
            working = database.copy()

            self._enter(PassState.DISCOVERING)
            candidates = self._discover(warnings)
            level_paths = sorted(set(self.reflector.level_paths()))
            metadata["class_count"] = len(candidates)
            metadata["level_count"] = len(level_paths)

            self._enter(PassState.VALIDATING)
            ok, errors = self.validator.validate(candidates)
            if not ok:
                raise NameValidationError(errors)

            self._enter(PassState.EMITTING)
            written = self._emit(candidates, level_paths, working, warnings)
            metadata["files_written"] = len(written)
            metadata["next_available_component_id"] = working.next_available_component_id

            self._enter(PassState.COMPILING)
            descriptor_path = self._compile()

            self._enter(PassState.PERSISTING)
            if descriptor_path is not None:
                working.schema_descriptor_hash = hash_descriptor(descriptor_path)
            self.store.save(working)
            metadata["schema_descriptor_hash"] = working.schema_descriptor_hash

        except NameValidationError as e:
            return self._fail(e.errors, warnings, metadata, e, started)
        except (SchemaGenError, TemplateError) as e:
            logger.error("Schema generation failed while %s: %s", self.state.value, e)
            return self._fail([str(e)], warnings, metadata, e, started)

        self._enter(PassState.DONE)
        metadata["duration_seconds"] = round(time.perf_counter() - started, 3)
        logger.info(
            "Schema generation finished in %.2fs (%d classes, %d files)",
            metadata["duration_seconds"],
            metadata["class_count"],
            metadata["files_written"],
        )
        return PassResult(PassState.DONE, warnings=warnings, metadata=metadata)

    def _enter(self, state: PassState):
        self.state = state
        logger.info("Schema generation: %s", state.value)
        if self.on_state_change is not None:
            self.on_state_change(state)

    def _fail(
        self,
        errors: List[str],
        warnings: List[str],
        metadata: Dict[str, Any],
        exception: Exception,
        started: float,
    ) -> PassResult:
        failed_in = self.state
        self._enter(PassState.FAILED)
        metadata["duration_seconds"] = round(time.perf_counter() - started, 3)
        return PassResult.failure(failed_in, errors, warnings, metadata, exception)

    # Stages

    def _load(self, reset: bool, warnings: List[str]) -> SchemaDatabase:
        """Load the persisted database, falling back to a fresh one."""
        if self.store.is_read_only():
            raise SchemaIOError(
                f"Schema database at {self.store.path} is read only. "
                f"Make it writable before generating schema"
            )

        if reset:
            # The old file is only replaced when the pass persists
            logger.info("Resetting schema database %s", self.store.path)
            return SchemaDatabase.empty()

        try:
            return self.store.load()
        except FileNotFoundError:
            logger.info("No schema database found at %s, starting fresh", self.store.path)
        except DatabaseVersionMismatch as e:
            message = f"Outdated schema database, regenerating all IDs: {e}"
            logger.warning(message)
            warnings.append(message)
        except SchemaIOError as e:
            message = f"Unusable schema database, regenerating all IDs: {e}"
            logger.warning(message)
            warnings.append(message)
        return SchemaDatabase.empty()

    def _discover(self, warnings: List[str]) -> List[TypeNode]:
        """Collect supported classes, sorted by path."""
        nodes = list(self.reflector.classes())

        self.listener.stop()
        for path in self.listener.drain():
            node = self.reflector.resolve(path)
            if node is None:
                message = f"Discovered class {path} could not be resolved, skipping"
                logger.warning(message)
                warnings.append(message)
                continue
            nodes.append(node)

        candidates = self.class_filter.filter(nodes)
        logger.info("%d supported classes out of %d candidates", len(candidates), len(nodes))
        return candidates

    def _emit(
        self,
        candidates: List[TypeNode],
        level_paths: List[str],
        working: SchemaDatabase,
        warnings: List[str],
    ) -> List[Path]:
        """Resolve names and write schema for every class, level and distance bucket."""
        schema_dir = Path(self.config.schema_output_dir)
        refresh_schema_dir(schema_dir)

        registry = CollisionRegistry(self.sanitizer)
        registry.seed(working.identity_map())
        allocator = ComponentIdAllocator(working.next_available_component_id)

        written: List[Path] = []
        batch_size = max(1, self.config.batch_size)
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start:start + batch_size]
            for node in batch:
                schema_name = registry.resolve(node.path, node.name)
                outputs = self.emitter.emit_class(node, schema_name, working, allocator)
                written.extend(write_schema_files(outputs, schema_dir))
            logger.info(
                "Generated schema for classes %d-%d of %d",
                start + 1,
                start + len(batch),
                len(candidates),
            )

        distances = [
            node.net_cull_distance
            for node in candidates
            if node.is_root and node.net_cull_distance is not None
        ]
        written.extend(
            write_schema_files(
                self.emitter.emit_levels(level_paths, working, allocator, warnings), schema_dir
            )
        )
        written.extend(
            write_schema_files(
                self.emitter.emit_distance_buckets(distances, working, allocator), schema_dir
            )
        )

        working.next_available_component_id = allocator.peek()
        warnings.extend(registry.report().messages())
        return written

    def _compile(self) -> Optional[Path]:
        """Run the schema compiler; returns the descriptor path, or None when skipped."""
        if self.config.skip_compile:
            logger.info("Skipping schema compilation")
            return None
        return self.compiler.run().descriptor_path
