"""Repository façade over the document store client."""

MAX_PAGE_SIZE = 10_000
MIN_PAGE_SIZE = 1


def _validate_size(size: int) -> int:
    """Validate and clamp a page/batch *size* argument.

    Raises ``ValueError`` for non-positive values. Values exceeding
    ``MAX_PAGE_SIZE`` (the engine's default result window) are silently capped.
    """
    if size < MIN_PAGE_SIZE:
        raise ValueError(f"size must be >= {MIN_PAGE_SIZE}, got {size}")
    return min(size, MAX_PAGE_SIZE)


def _validate_offset(offset: int) -> int:
    """Validate the *offset* (``from``) argument. Raises ``ValueError`` when negative."""
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")
    return offset
