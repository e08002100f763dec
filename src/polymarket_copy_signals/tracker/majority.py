"""Strict-plurality vote resolution.

Every majority decision in the tracker goes through this module: the
per-market pick in the metrics evaluator, the per-wallet per-event pick in
the live-picks builder and the across-wallet pick in the publisher. When
two choices share the top count there is no winner.
"""

from collections import Counter
from collections.abc import Hashable, Iterable, Mapping
from typing import TypeVar

K = TypeVar("K", bound=Hashable)


def top_choice(counts: Mapping[K, int]) -> K | None:
    """Return the key with the strictly highest count.

    Returns ``None`` when ``counts`` is empty or the top count is shared.
    """
    if not counts:
        return None
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        return None
    return ranked[0][0]


def strict_plurality(values: Iterable[K | None]) -> K | None:
    """Count ``values`` (ignoring ``None``) and return the strict winner."""
    return top_choice(Counter(v for v in values if v is not None))
