"""Component ID allocation."""

# First ID handed out for generated components in a fresh database. IDs
# below this are reserved for hand-written schema.
STARTING_GENERATED_COMPONENT_ID = 10000

# Marks "no component for this category".
INVALID_COMPONENT_ID = 0


class ComponentIdAllocator:
    """Monotonic component ID counter.

    Starts at the persisted watermark and only ever moves up; IDs of deleted
    classes are never handed out again.
    """

    def __init__(self, next_id: int = STARTING_GENERATED_COMPONENT_ID):
        if next_id < STARTING_GENERATED_COMPONENT_ID:
            raise ValueError(
                f"Component ID watermark {next_id} is below the generated range "
                f"({STARTING_GENERATED_COMPONENT_ID})"
            )
        self._next_id = next_id

    def next(self) -> int:
        """Return the current ID and advance."""
        component_id = self._next_id
        self._next_id += 1
        return component_id

    def peek(self) -> int:
        """Return the ID the next call to :meth:`next` will hand out."""
        return self._next_id

    def __repr__(self) -> str:
        return f"ComponentIdAllocator(next_id={self._next_id})"
