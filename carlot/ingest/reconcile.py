from __future__ import annotations

from typing import Iterable, Optional, Sequence

__all__ = ["reconcile_images", "drop_references"]


def reconcile_images(
    current: Sequence[str],
    requested_order: Optional[Sequence[str]],
    appended: Sequence[str] = (),
) -> list[str]:
    """Compute a car's new image list from its current list, a client ordering and new uploads.

    Entries of ``requested_order`` that are not in ``current`` are ignored (stale), repeats
    collapse to their first position, and current references the client omitted keep their
    relative order after the requested ones. ``appended`` is added at the end verbatim.

    Args:
        current: The car's persisted image references.
        requested_order: Desired ordering of existing references; empty or ``None`` keeps ``current``.
        appended: References produced by the batch ingestor for this request.

    Returns:
        A permutation of ``current`` followed by ``appended``.
    """
    if requested_order:
        present = set(current)
        cleaned: list[str] = []
        seen: set[str] = set()
        for reference in requested_order:
            if reference in present and reference not in seen:
                cleaned.append(reference)
                seen.add(reference)
        # Each requested reference takes the place of exactly one current occurrence.
        consumed: set[str] = set()
        rest: list[str] = []
        for reference in current:
            if reference in seen and reference not in consumed:
                consumed.add(reference)
                continue
            rest.append(reference)
        base = cleaned + rest
    else:
        base = list(current)
    return base + list(appended)


def drop_references(current: Sequence[str], removed: Iterable[str]) -> list[str]:
    """Return ``current`` without the references in ``removed``, order preserved."""
    unwanted = set(removed)
    return [reference for reference in current if reference not in unwanted]
