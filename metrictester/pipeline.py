from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .cdm import CommunityDataMatrix
from .config import AnalysisConfig
from .metrics import prep_metrics, run_metrics
from .nulls import prep_nulls
from .phylo import PhyloTree
from .quadrats import make_cdm
from .randomization import randomize
from .rng import make_rng
from .registry import Requested
from .summaries import SummaryTable, summarize
from .testing import classify, merge_observed, robust_test, standardize


@dataclass(frozen=True)
class NullTestResult:
    null: str
    summary: SummaryTable
    ses: pd.DataFrame
    significance: pd.DataFrame
    wilcoxon: pd.DataFrame


@dataclass(frozen=True)
class AnalysisResult:
    cdm: CommunityDataMatrix
    regional_abundance: pd.Series
    observed: pd.DataFrame
    replicates: Dict[str, pd.DataFrame]
    tests: Dict[str, NullTestResult]
    bounds: Optional[np.ndarray] = None


def observed_metrics(
    tree: PhyloTree,
    cdm: CommunityDataMatrix,
    regional_abundance: Optional[object] = None,
    metrics: Requested = None,
) -> pd.DataFrame:
    return run_metrics(prep_metrics(tree, cdm, regional_abundance), metrics)


def evaluate_null(
    observed: pd.DataFrame,
    replicates: pd.DataFrame,
    *,
    null: str,
    group_by: str = "quadrat",
    level: float = 0.95,
    interval: str = "distribution",
    alternative: str = "two-sided",
    mu: float = 0.0,
) -> NullTestResult:
    summary = summarize(replicates, group_by, level=level, interval=interval)
    merged = merge_observed(observed, summary)
    ses = standardize(merged)
    return NullTestResult(
        null=null,
        summary=summary,
        ses=ses,
        significance=classify(merged),
        wilcoxon=robust_test(ses, alternative, mu=mu),
    )


def evaluate_nulls(
    observed: pd.DataFrame,
    replicates: Dict[str, pd.DataFrame],
    **kwargs: object,
) -> Dict[str, NullTestResult]:
    return {name: evaluate_null(observed, table, null=name, **kwargs) for name, table in replicates.items()}  # type: ignore[arg-type]


def analyze(
    tree: PhyloTree,
    cdm: CommunityDataMatrix,
    config: Optional[AnalysisConfig] = None,
    regional_abundance: Optional[object] = None,
) -> AnalysisResult:
    """Observed metrics, randomizations and per-null tests for one CDM."""
    cfg = AnalysisConfig() if config is None else config
    r, s, t = cfg.randomization, cfg.summary, cfg.testing

    nulls_input = prep_nulls(tree, cdm, regional_abundance)
    observed = observed_metrics(tree, cdm, nulls_input.regional_abundance, r.metrics)
    replicates = randomize(
        nulls_input,
        nulls=r.nulls,
        metrics=r.metrics,
        iterations=r.iterations,
        seed=r.seed,
        workers=r.workers,
    )
    tests = evaluate_nulls(
        observed,
        replicates,
        group_by=s.group_by,
        level=s.level,
        interval=s.interval,
        alternative=t.alternative,
        mu=t.mu,
    )
    return AnalysisResult(
        cdm=cdm,
        regional_abundance=nulls_input.regional_abundance,
        observed=observed,
        replicates=replicates,
        tests=tests,
    )


def analyze_arena(
    arena: pd.DataFrame,
    tree: PhyloTree,
    config: AnalysisConfig,
    regional_abundance: Optional[object] = None,
) -> AnalysisResult:
    """Sample an arena with quadrats, then run `analyze` on the resulting CDM."""
    q = config.quadrats
    if q is None:
        raise ValueError("config has no quadrats section; cannot sample an arena")
    cdm, regional, bounds = make_cdm(
        arena,
        q.count,
        q.quadrat_length,
        arena_length=q.arena_length,
        rng=make_rng(config.randomization.seed),
        regional_abundance=regional_abundance,
        max_attempts=q.max_attempts,
    )
    return replace(analyze(tree, cdm, config, regional), bounds=bounds)
