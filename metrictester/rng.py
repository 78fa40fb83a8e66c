from __future__ import annotations

import hashlib
from typing import Union

import numpy as np


SeedPart = Union[int, str]
RandomState = Union[None, int, np.random.Generator]


def derive_seed(base_seed: int, *parts: SeedPart, modulo: int = 2**32 - 1) -> int:
    """Hash a base seed and labels (null name, iteration, ...) into a stable 32-bit seed.

    The result depends only on the inputs, never on call order, so replicates can be
    computed in any order or on any worker and still draw the same numbers.
    """
    h = hashlib.blake2b(digest_size=8)
    for part in (int(base_seed), *parts):
        h.update(str(part).encode("utf-8"))
        h.update(b"|")
    return int(int.from_bytes(h.digest(), "big", signed=False) % modulo)


def make_rng(random_state: RandomState = None) -> np.random.Generator:
    """Return `random_state` if it already is a Generator, else seed a fresh one."""
    if isinstance(random_state, np.random.Generator):
        return random_state
    return np.random.default_rng(None if random_state is None else int(random_state))


def replicate_rng(base_seed: int, null_name: str, iteration: int) -> np.random.Generator:
    return np.random.default_rng(derive_seed(base_seed, "null", null_name, int(iteration)))
