"""Candidate (node ID) pool resolution and ordering."""

from __future__ import annotations

import random
from typing import Iterator, Optional, Sequence

from smoke_runner.core.exceptions import NoCandidatesConfiguredError


def resolve_pool(
    environment_pool: Sequence[str] = (),
    single_candidate: Optional[str] = None,
    fallback_pool: Sequence[str] = (),
) -> list[str]:
    """
    Pick the pool to test against.

    Precedence: environment list > single explicit candidate > fallback list.
    Duplicates are collapsed, first occurrence wins.
    """
    if any(c.strip() for c in environment_pool):
        chosen: Sequence[str] = environment_pool
    elif single_candidate and single_candidate.strip():
        chosen = [single_candidate]
    else:
        chosen = fallback_pool

    pool: list[str] = []
    for candidate in chosen:
        candidate = candidate.strip()
        if candidate and candidate not in pool:
            pool.append(candidate)

    if not pool:
        raise NoCandidatesConfiguredError()
    return pool


class CandidateSelector:
    """Yields every candidate exactly once, in an order fixed at construction."""

    def __init__(
        self,
        pool: Sequence[str],
        shuffle: bool = True,
        rng: Optional[random.Random] = None,
    ):
        if not pool:
            raise NoCandidatesConfiguredError()
        order = list(pool)
        if shuffle:
            # Spreads load across nodes; correctness does not depend on it
            (rng or random.Random()).shuffle(order)
        self._order = tuple(order)

    @property
    def order(self) -> tuple[str, ...]:
        return self._order

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)
