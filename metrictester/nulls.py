from __future__ import annotations

"""Null-model randomizations of a community data matrix.

Every null is a callable `fn(nulls_input, rng) -> CDM | sequence of CDMs`.
All randomness comes from the provided NumPy Generator; the prepared context is
never modified.

Default catalogue:

  richness          shuffle abundances across species within each site
                    (preserves site richness and site totals)
  frequency         shuffle each species' abundances across sites
                    (preserves species occurrence frequency and totals)
  taxa_labels       permute species labels
                    (preserves the whole matrix structure, breaks the tip mapping)
  independent_swap  checkerboard swaps on occupied cells, abundances travel with occupancy
                    (preserves site richness, species frequency and site totals)
  regional          each site keeps its richness and abundance values; species are drawn
                    without replacement with probability proportional to regional abundance
"""

import warnings
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .cdm import CommunityDataMatrix, abundance_vector, coerce_regional
from .errors import InvalidNullName, InvalidNullsInput
from .phylo import PhyloTree
from .registry import Registry, Requested, build_registry
from .rng import replicate_rng


@dataclass(frozen=True)
class NullsInput:
    """Prepared context for null randomizations; build it with `prep_nulls`.

    `resampling` is the species x site transpose of the CDM, the layout the
    species-wise nulls shuffle on.
    """

    tree: PhyloTree
    cdm: CommunityDataMatrix
    resampling: pd.DataFrame
    regional_abundance: pd.Series


def prep_nulls(
    tree: PhyloTree,
    cdm: CommunityDataMatrix,
    regional_abundance: Optional[object] = None,
) -> NullsInput:
    if not isinstance(cdm, CommunityDataMatrix):
        raise InvalidNullsInput(f"cdm must be a CommunityDataMatrix, got {type(cdm).__name__}")
    if not isinstance(tree, PhyloTree):
        raise InvalidNullsInput(f"tree must be a PhyloTree, got {type(tree).__name__}")
    if regional_abundance is None:
        warnings.warn("Regional abundance not provided. Assumed to be equivalent to CDM", UserWarning, stacklevel=2)
        regional = abundance_vector(cdm)
    else:
        regional = coerce_regional(regional_abundance)
    resampling = cdm.abundance.T.copy()
    resampling.index.name = "species"
    return NullsInput(tree=tree, cdm=cdm, resampling=resampling, regional_abundance=regional)


# --------------------------------------------------------------------------------------
# Null models
# --------------------------------------------------------------------------------------


def richness_null(ctx: NullsInput, rng: np.random.Generator) -> CommunityDataMatrix:
    A = ctx.cdm.values()
    out = np.array([rng.permutation(row) for row in A]).reshape(A.shape)
    return ctx.cdm.with_abundance(out)


def frequency_null(ctx: NullsInput, rng: np.random.Generator) -> CommunityDataMatrix:
    R = ctx.resampling.to_numpy(dtype=float)
    shuffled = np.array([rng.permutation(row) for row in R]).reshape(R.shape)
    return ctx.cdm.with_abundance(shuffled.T)


def taxa_labels_null(ctx: NullsInput, rng: np.random.Generator) -> CommunityDataMatrix:
    A = ctx.cdm.values()
    perm = rng.permutation(A.shape[1])
    return ctx.cdm.with_abundance(A[:, perm])


def independent_swap(
    A: np.ndarray,
    *,
    rng: np.random.Generator,
    nswap: int,
    max_tries: int,
) -> Tuple[np.ndarray, int]:
    """Checkerboard swaps on the occupancy pattern of an abundance matrix.

    A 2x2 submatrix on rows (r1, r2) and columns (c1, c2) is swappable when its
    occupancy is a checkerboard; the swap moves each row's abundance to the
    other column, so row occupancy, column occupancy and row totals are kept.
    Returns (swapped copy, swaps done).
    """
    A = np.array(A, dtype=float, copy=True)
    n_rows, n_cols = A.shape
    if n_rows < 2 or n_cols < 2:
        return A, 0

    swaps = 0
    tries = 0
    while swaps < nswap and tries < max_tries:
        tries += 1
        r1, r2 = (int(v) for v in rng.choice(n_rows, size=2, replace=False))
        c1, c2 = (int(v) for v in rng.choice(n_cols, size=2, replace=False))
        a, b = A[r1, c1] > 0, A[r1, c2] > 0
        c, d = A[r2, c1] > 0, A[r2, c2] > 0
        if a and d and not b and not c:
            A[r1, c2], A[r1, c1] = A[r1, c1], 0.0
            A[r2, c1], A[r2, c2] = A[r2, c2], 0.0
        elif b and c and not a and not d:
            A[r1, c1], A[r1, c2] = A[r1, c2], 0.0
            A[r2, c2], A[r2, c1] = A[r2, c1], 0.0
        else:
            continue
        swaps += 1
    return A, swaps


def independent_swap_null(ctx: NullsInput, rng: np.random.Generator) -> CommunityDataMatrix:
    A = ctx.cdm.values()
    occupied = int((A > 0).sum())
    nswap = max(100, 2 * occupied)
    out, _ = independent_swap(A, rng=rng, nswap=nswap, max_tries=10 * nswap)
    return ctx.cdm.with_abundance(out)


def regional_null(ctx: NullsInput, rng: np.random.Generator) -> CommunityDataMatrix:
    pool = ctx.regional_abundance[ctx.regional_abundance > 0]
    species = list(ctx.cdm.species) + sorted(s for s in pool.index if s not in set(ctx.cdm.species))
    col = {s: j for j, s in enumerate(species)}
    pool_species = list(pool.index)
    p = pool.to_numpy(dtype=float) / float(pool.sum()) if len(pool) else np.zeros(0)

    A = ctx.cdm.values()
    out = np.zeros((A.shape[0], len(species)), dtype=float)
    for i, row in enumerate(A):
        values = row[row > 0]
        k = values.size
        if k == 0:
            continue
        if k > len(pool_species):
            raise ValueError(
                f"Regional pool has {len(pool_species)} species, fewer than the {k} present in {ctx.cdm.quadrats[i]}"
            )
        chosen = rng.choice(len(pool_species), size=k, replace=False, p=p)
        for j, v in zip(chosen, rng.permutation(values)):
            out[i, col[pool_species[int(j)]]] = v
    return ctx.cdm.with_abundance(out, species=species)


NullFn = Callable[[NullsInput, np.random.Generator], Union[CommunityDataMatrix, Sequence[CommunityDataMatrix]]]

NULLS: Dict[str, NullFn] = {
    "richness": richness_null,
    "frequency": frequency_null,
    "taxa_labels": taxa_labels_null,
    "independent_swap": independent_swap_null,
    "regional": regional_null,
}


def check_nulls(requested: Requested = None, catalogue: Optional[Dict[str, NullFn]] = None) -> Registry:
    return build_registry(NULLS if catalogue is None else catalogue, requested, kind="null", error=InvalidNullName)


def as_cdm_list(result: object, name: str) -> List[CommunityDataMatrix]:
    """Normalise a null's return value to a list of CDMs."""
    if isinstance(result, CommunityDataMatrix):
        return [result]
    if result is None:
        return []
    out = list(result)  # type: ignore[call-overload]
    for x in out:
        if not isinstance(x, CommunityDataMatrix):
            raise TypeError(f"null {name!r} returned {type(x).__name__}, expected CommunityDataMatrix")
    return out


def run_nulls(
    nulls_input: NullsInput,
    nulls: Requested = None,
    *,
    seed: int = 0,
    catalogue: Optional[Dict[str, NullFn]] = None,
) -> Dict[str, List[CommunityDataMatrix]]:
    """Apply every requested null once; returns {null name: randomized CDMs}."""
    if not isinstance(nulls_input, NullsInput):
        raise InvalidNullsInput(
            f"Input needs to be a NullsInput (see prep_nulls), got {type(nulls_input).__name__}"
        )
    registry = nulls if isinstance(nulls, Registry) else check_nulls(nulls, catalogue)
    return {
        name: as_cdm_list(fn(nulls_input, replicate_rng(seed, name, 0)), name)
        for name, fn in registry.items()
    }
