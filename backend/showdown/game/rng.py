"""Seeded randomness shared by every replica of a room."""

from __future__ import annotations

import random
import uuid
from typing import Sequence, TypeVar


T = TypeVar("T")


class SharedRandom:
    """Deterministic shuffle / uuid source.

    Replicas built with the same seed and fed the same moves draw the same
    values in the same order. There is no fallback to an unseeded generator.
    """

    def __init__(self, seed: str | int):
        self.seed = seed
        self._rng = random.Random(seed)

    def shuffle(self, items: Sequence[T]) -> list[T]:
        out = list(items)
        self._rng.shuffle(out)
        return out

    def uuid(self) -> str:
        return str(uuid.UUID(int=self._rng.getrandbits(128), version=4))

    def getstate(self) -> tuple:
        return self._rng.getstate()

    def setstate(self, state: tuple) -> None:
        self._rng.setstate(state)
