"""Pseudo-random engines seeded from the operating system's entropy."""

from __future__ import annotations

import os
import random

_SEED_WORDS = 1024


def get_random_engine() -> random.Random:
    """A fast pseudo-random generator seeded with 1024 random 32-bit words."""
    return random.Random(os.urandom(4 * _SEED_WORDS))