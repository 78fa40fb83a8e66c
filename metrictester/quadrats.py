from __future__ import annotations

"""Quadrat placement and quadrat-contents CDMs.

Quadrats are axis-aligned squares with integer origins placed by rejection
sampling inside a square arena. Bounds are closed intervals, so two quadrats
that share an edge or a corner count as overlapping.

Bounds layout (one row per quadrat, row i = quadrat i+1):
  column 0: x_min, column 1: x_max, column 2: y_min, column 3: y_max
"""

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .cdm import CommunityDataMatrix, abundance_vector, coerce_regional, quadrat_ids
from .errors import InfeasibleParameters, InvalidInputType, PlacementRetriesExhausted
from .rng import RandomState, make_rng


MAX_COVERED_FRACTION = 0.4
BOUNDS_COLUMNS = ("x_min", "x_max", "y_min", "y_max")


def covered_fraction(count: int, arena_length: float, quadrat_length: float) -> float:
    return float(count) * (float(quadrat_length) ** 2) / (float(arena_length) ** 2)


def boxes_overlap(a: Sequence[float], b: Sequence[float]) -> bool:
    """True iff the closed X-intervals intersect and the closed Y-intervals intersect."""
    return bool(a[0] <= b[1] and b[0] <= a[1] and a[2] <= b[3] and b[2] <= a[3])


def whole_number(value: float, name: str) -> int:
    """Return `value` as an int, refusing fractional or non-finite input."""
    try:
        as_float = float(value)
    except (TypeError, ValueError) as exc:
        raise InfeasibleParameters(f"{name} must be a whole number, got {value!r}") from exc
    if not np.isfinite(as_float) or as_float != int(as_float):
        raise InfeasibleParameters(f"{name} must be a whole number, got {value!r}")
    return int(as_float)


def _check_placement(count: int, arena_length: int, quadrat_length: int) -> None:
    if count < 1:
        raise InfeasibleParameters(f"count must be >= 1, got {count}")
    if quadrat_length <= 0:
        raise InfeasibleParameters(f"quadrat_length must be > 0, got {quadrat_length}")
    if quadrat_length > arena_length:
        raise InfeasibleParameters(
            f"quadrat_length={quadrat_length} does not fit inside arena_length={arena_length}"
        )
    frac = covered_fraction(count, arena_length, quadrat_length)
    if frac > MAX_COVERED_FRACTION:
        raise InfeasibleParameters(
            f"Quadrats would cover {frac:.3f} of the arena (> {MAX_COVERED_FRACTION}); sample less of the arena"
        )


def place_quadrats(
    count: int,
    arena_length: int,
    quadrat_length: int,
    *,
    rng: RandomState = None,
    max_attempts: int = 10_000,
) -> np.ndarray:
    """Place `count` non-overlapping square quadrats inside a square arena.

    Returns an int array of shape (count, 4) laid out as BOUNDS_COLUMNS.
    Raises InfeasibleParameters before any draw when the quadrats would cover
    more than 40% of the arena, and PlacementRetriesExhausted when one quadrat
    cannot be placed within `max_attempts` draws.
    """
    count = whole_number(count, "count")
    arena_length = whole_number(arena_length, "arena_length")
    quadrat_length = whole_number(quadrat_length, "quadrat_length")
    _check_placement(count, arena_length, quadrat_length)
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    gen = make_rng(rng)
    hi = arena_length - quadrat_length
    bounds = np.zeros((count, 4), dtype=np.int64)
    for i in range(count):
        for _ in range(int(max_attempts)):
            x, y = (int(v) for v in gen.integers(0, hi + 1, size=2))
            cand = (x, x + quadrat_length, y, y + quadrat_length)
            if not any(boxes_overlap(cand, bounds[j]) for j in range(i)):
                bounds[i] = cand
                break
        else:
            raise PlacementRetriesExhausted(quadrat=i + 1, attempts=int(max_attempts))
    return bounds


def bounds_frame(bounds: np.ndarray) -> pd.DataFrame:
    df = pd.DataFrame(np.asarray(bounds), columns=list(BOUNDS_COLUMNS))
    df.index = quadrat_ids(len(df))
    df.index.name = "quadrat"
    return df


def quadrat_contents(arena: pd.DataFrame, bounds: np.ndarray) -> CommunityDataMatrix:
    """Count the individuals of each species inside each quadrat (edges inclusive).

    `arena` holds one row per individual with columns species, X and Y. Every
    species of the arena gets a column, even if no quadrat caught it.
    """
    missing = [c for c in ("species", "X", "Y") if c not in arena.columns]
    if missing:
        raise InvalidInputType(f"arena is missing columns: {missing}")
    bounds = np.asarray(bounds)
    species = sorted(str(s) for s in pd.unique(arena["species"]))
    labels = arena["species"].astype(str).to_numpy()
    x = arena["X"].to_numpy(dtype=float)
    y = arena["Y"].to_numpy(dtype=float)
    col = {s: j for j, s in enumerate(species)}

    counts = np.zeros((bounds.shape[0], len(species)), dtype=np.int64)
    for i, (x0, x1, y0, y1) in enumerate(bounds):
        inside = (x >= x0) & (x <= x1) & (y >= y0) & (y <= y1)
        for s, n in zip(*np.unique(labels[inside], return_counts=True)):
            counts[i, col[str(s)]] = int(n)
    return CommunityDataMatrix.from_array(counts, species)


def arena_extent(arena: pd.DataFrame) -> int:
    return int(np.ceil(max(float(arena["X"].max()), float(arena["Y"].max()))))


def make_cdm(
    arena: pd.DataFrame,
    count: int,
    quadrat_length: int,
    *,
    arena_length: Optional[int] = None,
    rng: RandomState = None,
    regional_abundance: Optional[object] = None,
    max_attempts: int = 10_000,
) -> Tuple[CommunityDataMatrix, pd.Series, np.ndarray]:
    """Sample an arena with randomly placed quadrats.

    Returns (cdm, regional_abundance, bounds). When the simulation did not
    provide a regional abundance it is derived from the sampled CDM.
    """
    if arena_length is None:
        arena_length = arena_extent(arena)
    bounds = place_quadrats(count, arena_length, quadrat_length, rng=rng, max_attempts=max_attempts)
    cdm = quadrat_contents(arena, bounds)
    if regional_abundance is None:
        regional = abundance_vector(cdm)
    else:
        regional = coerce_regional(regional_abundance)
    return cdm, regional, bounds
