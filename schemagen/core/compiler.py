"""
External schema compiler invocation.

Builds the compiler command line, prepares the output directories the
compiler cannot create itself, and runs it as a blocking subprocess.
"""

import hashlib
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..logging_config import get_logger
from .errors import CompilerFailure, SchemaIOError

logger = get_logger(__name__)

DESCRIPTOR_FILE = "schema.descriptor"
BUNDLE_FILE = "schema.sb"
BUNDLE_JSON_FILE = "schema.json"
AST_DIR = "ast"

_AST_OPTIONS = ("ast_proto_out", "ast_json_out")


@dataclass
class CompileResult:
    """Output of a successful compiler run."""

    args: List[str]
    stdout: str
    stderr: str
    descriptor_path: Path


class SchemaCompiler:
    """Runs the external schema compiler over a set of schema paths."""

    def __init__(
        self,
        executable: str,
        schema_paths: Sequence[str],
        output_dir: str,
        additional_args: str = "",
    ):
        """
        Initialize compiler runner.

        Args:
            executable: Compiler binary (path or name on PATH)
            schema_paths: Directories searched for schema files
            output_dir: Directory receiving descriptor and bundles
            additional_args: Extra arguments passed through verbatim
        """
        self.executable = executable
        self.schema_paths = [str(p) for p in schema_paths]
        self.output_dir = Path(output_dir)
        self.additional_args = additional_args.strip().strip('"')

    @property
    def descriptor_path(self) -> Path:
        return self.output_dir / DESCRIPTOR_FILE

    def build_args(self) -> List[str]:
        """Full argument list, executable first."""
        args = [self.executable]
        args.extend(f"--schema_path={path}" for path in self.schema_paths)
        args.extend(
            [
                f"--descriptor_set_out={self.output_dir / DESCRIPTOR_FILE}",
                f"--bundle_out={self.output_dir / BUNDLE_FILE}",
                f"--bundle_json_out={self.output_dir / BUNDLE_JSON_FILE}",
                "--load_all_schema_on_schema_path",
            ]
        )
        if self.additional_args:
            args.extend(shlex.split(self.additional_args))
        return args

    def prepare_output_dir(self):
        """Remove artifacts of previous runs and recreate output folders.

        Raises:
            SchemaIOError: If a directory cannot be deleted or created
        """
        if self.output_dir.exists():
            try:
                shutil.rmtree(self.output_dir)
            except OSError as e:
                raise SchemaIOError(
                    f"Could not delete pre-existing compiled schema directory "
                    f"'{self.output_dir}'! Please make sure the directory is writeable: {e}"
                ) from e

        directories = [self.output_dir]
        if any(option in self.additional_args for option in _AST_OPTIONS):
            directories.append(self.output_dir / AST_DIR)

        for directory in directories:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise SchemaIOError(
                    f"Could not create compiled schema directory '{directory}'! "
                    f"Please make sure the parent directory is writeable: {e}"
                ) from e

    def run(self) -> CompileResult:
        """
        Compile the schema.

        Returns:
            CompileResult with captured output

        Raises:
            SchemaIOError: If the output directory cannot be prepared
            CompilerFailure: If the compiler cannot be started or exits nonzero
        """
        self.prepare_output_dir()
        args = self.build_args()
        logger.info("Starting '%s' with `%s` arguments.", self.executable, shlex.join(args[1:]))

        try:
            completed = subprocess.run(args, capture_output=True, text=True, check=False)
        except OSError as e:
            raise CompilerFailure(f"Failed to start schema compiler '{self.executable}': {e}") from e

        if completed.returncode != 0:
            logger.error(
                "schema_compiler failed to generate compiled schema for arguments `%s`: %s",
                shlex.join(args[1:]),
                completed.stderr.strip(),
            )
            raise CompilerFailure(
                f"Schema compiler exited with code {completed.returncode}",
                exit_code=completed.returncode,
                stdout=completed.stdout,
                stderr=completed.stderr,
            )

        logger.info("schema_compiler successfully generated compiled schema")
        if completed.stdout.strip():
            logger.debug("schema_compiler output: %s", completed.stdout.strip())
        return CompileResult(
            args=args,
            stdout=completed.stdout,
            stderr=completed.stderr,
            descriptor_path=self.descriptor_path,
        )


def hash_descriptor(descriptor_path: Path) -> Optional[str]:
    """
    Content hash of the compiled schema descriptor.

    Returns:
        Hex SHA-256 digest, or None if the descriptor cannot be read
    """
    try:
        data = Path(descriptor_path).read_bytes()
    except OSError as e:
        logger.warning(
            "Failed to read %s generated by the schema compiler! Location: %s (%s)",
            DESCRIPTOR_FILE,
            descriptor_path,
            e,
        )
        return None
    digest = hashlib.sha256(data).hexdigest()
    logger.info("Generated schema hash for database %s", digest)
    return digest
