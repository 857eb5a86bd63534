"""Helpers for generating and normalizing replay seeds for random draws."""

from __future__ import annotations

import random
import secrets
import string

SEED_BYTES = 16


def generate_seed() -> str:
    """Return a fresh hex seed drawn from the operating system's CSPRNG."""

    return secrets.token_hex(SEED_BYTES)


def normalize_seed(seed: str) -> str:
    """Trim and lower-case ``seed`` and check that it is hexadecimal.

    Parameters
    ----------
    seed : str
        Seed recorded with an earlier run or supplied for a replay.
    """

    if seed is None:
        raise ValueError("seed must not be None")
    if not isinstance(seed, str):
        raise TypeError("seed must be a string")
    normalized = seed.strip().lower()
    if not normalized:
        raise ValueError("seed must not be empty")
    if len(normalized) > 64:
        raise ValueError("seed must be at most 64 hex characters")
    if not all(c in string.hexdigits for c in normalized):
        raise ValueError("seed must be a hexadecimal string")
    return normalized


def rng_from_seed(seed: str) -> random.Random:
    """Build a private :class:`random.Random` for one run.

    Each run gets its own generator so concurrent draws never share state.
    """

    return random.Random(int(normalize_seed(seed), 16))


__all__ = ["SEED_BYTES", "generate_seed", "normalize_seed", "rng_from_seed"]
