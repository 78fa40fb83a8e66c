from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats


GROUP_KEYS = ("richness", "quadrat")
BOOKKEEPING = ("null", "iteration", "replicate", "quadrat")


@dataclass(frozen=True)
class SummaryTable:
    """Per-group null distribution summaries of one replicate table.

    `frame` has one row per grouping key and, for every metric m, the columns
    m_mean, m_sd, m_lower, m_upper and m_n (number of non-missing replicate values).
    """

    group_by: str
    metrics: Tuple[str, ...]
    frame: pd.DataFrame
    level: float
    interval: str

    @property
    def keys(self) -> List[object]:
        return self.frame[self.group_by].tolist()


def summary_metrics(replicates: pd.DataFrame, group_by: str) -> List[str]:
    """Metric columns of a replicate table, minus bookkeeping columns and the grouping key."""
    skip = set(BOOKKEEPING) | {group_by}
    return [c for c in replicates.columns if c not in skip]


def _bounds(mean: np.ndarray, sd: np.ndarray, n: np.ndarray, level: float, interval: str) -> Tuple[np.ndarray, np.ndarray]:
    q = (1.0 + float(level)) / 2.0
    if interval == "distribution":
        half = stats.norm.ppf(q) * sd
    else:
        with np.errstate(invalid="ignore", divide="ignore"):
            dof = np.where(n >= 2, n - 1, np.nan)
            half = stats.t.ppf(q, dof) * sd / np.sqrt(n)
    return mean - half, mean + half


def summarize(
    replicates: pd.DataFrame,
    group_by: str = "richness",
    *,
    level: float = 0.95,
    interval: str = "distribution",
    metrics: Optional[Sequence[str]] = None,
) -> SummaryTable:
    """Reduce a replicate table to mean, sd and two-sided bounds per group and metric.

    interval="distribution": mean +/- z * sd, the central `level` region of a
    normal null distribution (what observed values are compared against).
    interval="mean": mean +/- t * sd / sqrt(n), a confidence interval for the
    null mean.

    A group with fewer than two non-missing values gets sd = NaN (and NaN
    bounds); that is expected for rare richness levels and is left for the
    SES step to deal with.
    """
    if group_by not in GROUP_KEYS:
        raise ValueError(f"group_by must be one of {GROUP_KEYS}, got {group_by!r}")
    if interval not in ("distribution", "mean"):
        raise ValueError(f"interval must be 'distribution' or 'mean', got {interval!r}")
    if not (0.0 < float(level) < 1.0):
        raise ValueError("level must be in (0, 1)")
    if group_by not in replicates.columns:
        raise KeyError(f"replicate table has no {group_by!r} column")

    names = summary_metrics(replicates, group_by) if metrics is None else [m for m in metrics if m != group_by]
    grouped = replicates.groupby(group_by, sort=(group_by == "richness"))[names]
    mean = grouped.mean()
    sd = grouped.std(ddof=1)
    count = grouped.count()

    frame = pd.DataFrame({group_by: mean.index.to_numpy()})
    for m in names:
        mu = mean[m].to_numpy(dtype=float)
        s = sd[m].to_numpy(dtype=float)
        n = count[m].to_numpy(dtype=float)
        lo, hi = _bounds(mu, s, n, float(level), interval)
        frame[f"{m}_mean"] = mu
        frame[f"{m}_sd"] = s
        frame[f"{m}_lower"] = lo
        frame[f"{m}_upper"] = hi
        frame[f"{m}_n"] = n.astype(int)
    if group_by == "richness":
        frame["richness"] = frame["richness"].astype(int)
    return SummaryTable(group_by=group_by, metrics=tuple(names), frame=frame, level=float(level), interval=interval)
