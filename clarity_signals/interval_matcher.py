"""Deterministic overlap resolution for scored text spans."""

from __future__ import annotations

from typing import Callable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")

Span = Tuple[int, int]


def spans_overlap(a: Span, b: Span) -> bool:
    """Half-open spans overlap when their intersection is non-empty."""
    return a[0] < b[1] and b[0] < a[1]


def choose_non_overlapping(
    candidates: Sequence[T],
    *,
    span_of: Callable[[T], Span],
    priority_of: Callable[[T], int],
) -> List[T]:
    """Greedy priority-first selection of mutually non-overlapping candidates.

    Candidates are ranked by (priority desc, length desc, start asc) and accepted
    when they intersect nothing already accepted. The accepted set is returned in
    start order. Precedence wins over total covered length.
    """
    if not candidates:
        return []

    def _rank(c: T) -> Tuple[int, int, int]:
        start, end = span_of(c)
        return (-priority_of(c), -(end - start), start)

    chosen: List[T] = []
    chosen_spans: List[Span] = []
    for c in sorted(candidates, key=_rank):
        span = span_of(c)
        if any(spans_overlap(span, s) for s in chosen_spans):
            continue
        chosen.append(c)
        chosen_spans.append(span)

    chosen.sort(key=lambda c: span_of(c)[0])
    return chosen
