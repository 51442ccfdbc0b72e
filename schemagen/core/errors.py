"""Exception hierarchy for schema generation passes."""

from __future__ import annotations


class SchemaGenError(Exception):
    """Base exception for schema generation errors."""


class NameValidationError(SchemaGenError):
    """One or more names in the type graph cannot be used in schema.

    Carries every problem found so the caller can report them together.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(
            f"{len(self.errors)} name validation error(s); schema not generated"
        )


class SchemaIOError(SchemaGenError):
    """A schema directory or the schema database could not be read or written."""


class CompilerFailure(SchemaGenError):
    """The external schema compiler exited with a nonzero code."""

    def __init__(
        self, message: str, exit_code: int | None = None, stdout: str = "", stderr: str = ""
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class DatabaseVersionMismatch(SchemaGenError):
    """A persisted database predates non-destructive ID allocation.

    Never surfaced to users: the orchestrator recovers by resetting.
    """
