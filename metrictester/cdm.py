from __future__ import annotations

"""Community data matrices (sites x species abundance tables).

A CDM is a thin frozen wrapper around a pandas DataFrame whose index holds the
quadrat ids and whose columns hold unique species labels. Richness is computed
once at construction and carried with the matrix; randomized matrices are new
CDM objects built with `with_abundance`, never in-place edits.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import InvalidInputType


def quadrat_ids(n: int) -> List[str]:
    return [f"quadrat{i}" for i in range(1, int(n) + 1)]


@dataclass(frozen=True)
class CommunityDataMatrix:
    abundance: pd.DataFrame
    richness: pd.Series = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        df = self.abundance
        if not isinstance(df, pd.DataFrame):
            raise InvalidInputType(f"CDM must wrap a pandas DataFrame, got {type(df).__name__}")
        if df.columns.has_duplicates:
            dup = sorted(set(df.columns[df.columns.duplicated()].astype(str)))
            raise InvalidInputType(f"CDM species labels must be unique; duplicated: {dup}")
        if df.index.has_duplicates:
            raise InvalidInputType("CDM quadrat ids must be unique")
        if not all(pd.api.types.is_numeric_dtype(t) for t in df.dtypes):
            raise InvalidInputType("CDM values must be numeric")
        values = df.to_numpy(dtype=float)
        if np.isnan(values).any():
            raise InvalidInputType("CDM values must not be missing")
        if (values < 0).any():
            raise InvalidInputType("CDM abundances must be non-negative")

        df = df.copy()
        df.index = df.index.astype(str)
        df.columns = df.columns.astype(str)
        df.index.name = "quadrat"
        object.__setattr__(self, "abundance", df)
        rich = (df > 0).sum(axis=1).astype(int)
        rich.name = "richness"
        object.__setattr__(self, "richness", rich)

    @classmethod
    def from_array(
        cls,
        values: np.ndarray,
        species: Sequence[str],
        quadrats: Optional[Sequence[str]] = None,
    ) -> "CommunityDataMatrix":
        values = np.asarray(values)
        if values.ndim != 2:
            raise InvalidInputType(f"CDM values must be 2-D, got shape {values.shape!r}")
        if quadrats is None:
            quadrats = quadrat_ids(values.shape[0])
        return cls(pd.DataFrame(values, index=list(quadrats), columns=list(species)))

    @property
    def quadrats(self) -> List[str]:
        return list(self.abundance.index)

    @property
    def species(self) -> List[str]:
        return list(self.abundance.columns)

    @property
    def shape(self) -> tuple:
        return self.abundance.shape

    @property
    def n_units(self) -> int:
        return int(self.abundance.shape[0])

    def values(self) -> np.ndarray:
        return self.abundance.to_numpy(dtype=float)

    def species_present(self) -> List[str]:
        """Species with non-zero abundance in at least one quadrat, in column order."""
        occupied = (self.abundance > 0).any(axis=0)
        return [str(s) for s in self.abundance.columns[occupied.to_numpy()]]

    def subset_species(self, species: Iterable[str]) -> "CommunityDataMatrix":
        return CommunityDataMatrix(self.abundance.loc[:, list(species)])

    def with_abundance(self, values: np.ndarray, species: Optional[Sequence[str]] = None) -> "CommunityDataMatrix":
        """New CDM with the same quadrats (and species unless given) but new values."""
        cols = self.species if species is None else list(species)
        frame = pd.DataFrame(np.asarray(values), index=self.abundance.index, columns=cols)
        return CommunityDataMatrix(frame)


def abundance_vector(cdm: CommunityDataMatrix) -> pd.Series:
    """Regional abundance pool implied by a CDM: total abundance of each species.

    Species that never occur are dropped, so the result is the multiset of the
    observed individuals expressed as counts.
    """
    totals = cdm.abundance.sum(axis=0)
    totals = totals[totals > 0]
    totals.name = "abundance"
    totals.index.name = "species"
    return totals


def regional_from_labels(labels: Iterable[str]) -> pd.Series:
    """Convert the multiset form ("s1, s1, s2, ...") into per-species counts."""
    counts = pd.Series(list(labels), dtype=str).value_counts(sort=False)
    counts.index = counts.index.astype(str)
    counts.name = "abundance"
    counts.index.name = "species"
    return counts.astype(int)


def coerce_regional(regional: object) -> pd.Series:
    """Accept a per-species count Series/mapping or a flat iterable of species labels."""
    if isinstance(regional, pd.Series):
        if pd.api.types.is_numeric_dtype(regional.dtype):
            out = regional.astype(float)
            out.index = out.index.astype(str)
        else:
            out = regional_from_labels(regional.astype(str))
    elif isinstance(regional, dict):
        out = pd.Series({str(k): float(v) for k, v in regional.items()})
    elif isinstance(regional, str):
        raise InvalidInputType("regional abundance must be a collection, not a single string")
    else:
        out = regional_from_labels(regional)  # type: ignore[arg-type]
    if (out < 0).any():
        raise InvalidInputType("regional abundance counts must be non-negative")
    out.name = "abundance"
    out.index.name = "species"
    return out
