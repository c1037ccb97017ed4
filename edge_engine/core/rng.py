"""Seedable xorshift32 generator for reproducible simulation.

The simulator must produce byte-identical output for the same fixture on
every run, process and platform, so it cannot lean on :mod:`random` or
``numpy.random`` (whose streams differ across versions and are shared
global state).  :class:`XorShift32` is a fixed 32-bit transition function
with no hidden state beyond its own integer.
"""

from __future__ import annotations

import math
from typing import Final

_MASK32: Final[int] = 0xFFFFFFFF
_TWO_POW_32: Final[float] = 4294967296.0

#: Replacement seed when the derived seed is 0 (xorshift maps 0 → 0 forever).
_ZERO_SEED_REPLACEMENT: Final[int] = 0x9E3779B9


class XorShift32:
    """Marsaglia xorshift32 (shifts 13, 17, 5) over an unsigned 32-bit state.

    The right shift is logical.  Ports that keep the state as a signed
    int32 and shift arithmetically (JavaScript's ``>>``) diverge from this
    stream as soon as the high bit is set, so seeds are not portable between
    the two.
    """

    __slots__ = ("_state",)

    def __init__(self, seed: int) -> None:
        state = seed & _MASK32
        self._state = state if state != 0 else _ZERO_SEED_REPLACEMENT

    @property
    def state(self) -> int:
        return self._state

    def next_uint32(self) -> int:
        x = self._state
        x ^= (x << 13) & _MASK32
        x ^= x >> 17
        x ^= (x << 5) & _MASK32
        self._state = x
        return x

    def random(self) -> float:
        """Uniform float in ``[0, 1)``."""
        return self.next_uint32() / _TWO_POW_32

    def poisson(self, lam: float) -> int:
        """Draw a Poisson(``lam``) count by multiplying uniforms.

        Knuth's method: count how many uniforms it takes for the running
        product to fall to ``exp(-lam)`` or below.  Returns 0 for
        ``lam <= 0``.
        """
        if lam <= 0:
            return 0
        limit = math.exp(-lam)
        k = 0
        p = 1.0
        while True:
            k += 1
            p *= self.random()
            if p <= limit:
                return k - 1


def fixture_seed(fixture_id: int, seed_base: int) -> int:
    """Seed for one fixture: its id XOR a fixed base, as unsigned 32-bit."""
    return (fixture_id ^ seed_base) & _MASK32
