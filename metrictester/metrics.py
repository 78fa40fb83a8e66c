from __future__ import annotations

"""Metric catalogue and the metric runner.

Every metric is a callable `fn(metrics_input) -> array of length n_units`.
A unit that cannot support a metric (e.g. fewer than two species present)
gets NaN in that cell; this never fails the whole run.

Default catalogue (order = output column order):

  richness   number of species with non-zero abundance
  psv        phylogenetic species variability (Helmus et al.) on the correlation VCV
  psc        phylogenetic species clustering, 1 - sum_i max_{j!=i} C_ij / n
  mpd        mean pairwise phylogenetic distance among present species
  mntd       mean nearest-taxon distance among present species
  inter_mpd  abundance-weighted mean pairwise distance between individuals of different species
  faith_pd   Faith's phylogenetic diversity (branch length to the root)
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from .cdm import CommunityDataMatrix, coerce_regional
from .errors import InvalidMetricName, InvalidMetricsInput
from .phylo import PhyloTree
from .registry import Registry, Requested, build_registry


@dataclass(frozen=True)
class MetricsInput:
    """Prepared context for metric evaluation; build it with `prep_metrics`.

    `cdm` keeps only the species present somewhere in the matrix, `tree` is
    pruned to exactly those species, and `corr` / `dist` are aligned with
    `cdm.species`.
    """

    cdm: CommunityDataMatrix
    tree: Optional[PhyloTree]
    corr: pd.DataFrame
    dist: pd.DataFrame
    regional_abundance: Optional[pd.Series] = None

    @property
    def n_units(self) -> int:
        return self.cdm.n_units

    def present_indices(self) -> List[np.ndarray]:
        P = self.cdm.values() > 0
        return [np.flatnonzero(row) for row in P]


def prep_metrics(
    tree: PhyloTree,
    cdm: CommunityDataMatrix,
    regional_abundance: Optional[object] = None,
) -> MetricsInput:
    if not isinstance(cdm, CommunityDataMatrix):
        raise InvalidMetricsInput(f"cdm must be a CommunityDataMatrix, got {type(cdm).__name__}")
    if not isinstance(tree, PhyloTree):
        raise InvalidMetricsInput(f"tree must be a PhyloTree, got {type(tree).__name__}")

    present = cdm.species_present()
    regional = None if regional_abundance is None else coerce_regional(regional_abundance)
    if not present:
        empty = pd.DataFrame(np.zeros((0, 0)))
        return MetricsInput(cdm=cdm.subset_species([]), tree=None, corr=empty, dist=empty,
                            regional_abundance=regional)

    pruned = tree.prune(present)
    sub = cdm.subset_species(present)
    corr = pruned.vcv(present, cor=True)
    dist = pruned.cophenetic(present)
    return MetricsInput(cdm=sub, tree=pruned, corr=corr, dist=dist, regional_abundance=regional)


# --------------------------------------------------------------------------------------
# Metrics
# --------------------------------------------------------------------------------------


def richness(mi: MetricsInput) -> np.ndarray:
    return mi.cdm.richness.to_numpy(dtype=float)


def psv(mi: MetricsInput) -> np.ndarray:
    C = mi.corr.to_numpy()
    out = np.full(mi.n_units, np.nan)
    for i, idx in enumerate(mi.present_indices()):
        n = idx.size
        if n < 2:
            continue
        sub = C[np.ix_(idx, idx)]
        out[i] = (n * np.trace(sub) - sub.sum()) / (n * (n - 1))
    return out


def psc(mi: MetricsInput) -> np.ndarray:
    C = mi.corr.to_numpy()
    out = np.full(mi.n_units, np.nan)
    for i, idx in enumerate(mi.present_indices()):
        n = idx.size
        if n < 2:
            continue
        sub = C[np.ix_(idx, idx)].copy()
        np.fill_diagonal(sub, -1.0)
        out[i] = 1.0 - sub.max(axis=1).sum() / n
    return out


def mpd(mi: MetricsInput) -> np.ndarray:
    D = mi.dist.to_numpy()
    out = np.full(mi.n_units, np.nan)
    for i, idx in enumerate(mi.present_indices()):
        if idx.size < 2:
            continue
        sub = D[np.ix_(idx, idx)]
        out[i] = float(sub[np.triu_indices(idx.size, k=1)].mean())
    return out


def mntd(mi: MetricsInput) -> np.ndarray:
    D = mi.dist.to_numpy()
    out = np.full(mi.n_units, np.nan)
    for i, idx in enumerate(mi.present_indices()):
        if idx.size < 2:
            continue
        sub = D[np.ix_(idx, idx)].copy()
        np.fill_diagonal(sub, np.inf)
        out[i] = float(sub.min(axis=1).mean())
    return out


def inter_mpd(mi: MetricsInput) -> np.ndarray:
    D = mi.dist.to_numpy()
    A = mi.cdm.values()
    out = np.full(mi.n_units, np.nan)
    for i, idx in enumerate(mi.present_indices()):
        if idx.size < 2:
            continue
        a = A[i, idx]
        W = np.outer(a, a)
        np.fill_diagonal(W, 0.0)
        out[i] = float((W * D[np.ix_(idx, idx)]).sum() / W.sum())
    return out


def faith_pd(mi: MetricsInput) -> np.ndarray:
    out = np.full(mi.n_units, np.nan)
    if mi.tree is None:
        return out
    species = np.asarray(mi.cdm.species, dtype=object)
    for i, idx in enumerate(mi.present_indices()):
        if idx.size == 0:
            continue
        out[i] = mi.tree.faith_pd(species[idx].tolist())
    return out


METRICS: Dict[str, Callable[[MetricsInput], np.ndarray]] = {
    "richness": richness,
    "psv": psv,
    "psc": psc,
    "mpd": mpd,
    "mntd": mntd,
    "inter_mpd": inter_mpd,
    "faith_pd": faith_pd,
}


def check_metrics(requested: Requested = None, catalogue: Optional[Dict[str, Callable]] = None) -> Registry:
    """Resolve requested metrics; "richness" is always present and always first."""
    return build_registry(
        METRICS if catalogue is None else catalogue,
        requested,
        kind="metric",
        error=InvalidMetricName,
        baseline="richness",
    )


def run_metrics(
    metrics_input: MetricsInput,
    metrics: Requested = None,
    *,
    catalogue: Optional[Dict[str, Callable]] = None,
) -> pd.DataFrame:
    """Evaluate every requested metric on every unit.

    Returns one row per quadrat (CDM row order): quadrat, richness, <metrics...>.
    """
    if not isinstance(metrics_input, MetricsInput):
        raise InvalidMetricsInput(
            f"Input needs to be a MetricsInput (see prep_metrics), got {type(metrics_input).__name__}"
        )
    registry = metrics if isinstance(metrics, Registry) else check_metrics(metrics, catalogue)

    n = metrics_input.n_units
    columns: Dict[str, np.ndarray] = {}
    for name, fn in registry.items():
        values = np.asarray(fn(metrics_input), dtype=float).reshape(-1)
        if values.size != n:
            raise ValueError(f"metric {name!r} returned {values.size} values for {n} units")
        columns[name] = values

    out = pd.DataFrame(columns)
    out.insert(0, "quadrat", metrics_input.cdm.quadrats)
    out["richness"] = out["richness"].astype(int)
    return out
