"""Perception score for a simulator state.

A shifted Schwefel surface over the four actions. The score is about 0 where
every shifted action equals 420.9687, i.e. near `accion = (1041, 101, -299, 1241)`,
and is exactly `4 * SCHWEFEL_CONSTANT` when every shifted action is 0.
"""

from __future__ import annotations

import math

SCHWEFEL_CONSTANT = 418.9829
ACTION_OFFSETS: tuple[float, float, float, float] = (-620.0, 320.0, 720.0, -820.0)


def compute_perception(accion1: float, accion2: float, accion3: float, accion4: float) -> float:
    total = 0.0
    for value, offset in zip((accion1, accion2, accion3, accion4), ACTION_OFFSETS):
        shifted = value + offset
        total += shifted * math.sin(math.sqrt(abs(shifted)))
    return len(ACTION_OFFSETS) * SCHWEFEL_CONSTANT - total


__all__ = ["ACTION_OFFSETS", "SCHWEFEL_CONSTANT", "compute_perception"]
