from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

UNLIMITED = -1


def effective_capacity(capacities: Iterable[int]) -> int:
    """Sum of slot capacities, or UNLIMITED when any slot is unlimited.

    Any negative stored value counts as unlimited.
    """
    total = 0
    for capacity in capacities:
        if capacity < 0:
            return UNLIMITED
        total += capacity
    return total


def is_full(filled: int, capacity: int) -> bool:
    # Equality on purpose: UNLIMITED never equals a count.
    return filled == capacity


@dataclass(frozen=True)
class Occupancy:
    filled: int
    capacity: int

    @property
    def is_full(self) -> bool:
        return is_full(self.filled, self.capacity)

    @property
    def is_unlimited(self) -> bool:
        return self.capacity < 0

    @classmethod
    def for_event(cls, filled: int, capacities: Iterable[int]) -> "Occupancy":
        return cls(filled=filled, capacity=effective_capacity(capacities))
