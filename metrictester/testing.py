from __future__ import annotations

"""Observed-vs-null comparisons: merge, SES, significance codes, Wilcoxon battery.

Significance codes:
  0  not significant   (lower <= observed <= upper, or a bound is missing)
  1  clustered         (observed < lower)
  2  overdispersed     (observed > upper)

When the bounds are inverted (lower > upper) an observed value can satisfy both
conditions; overdispersed is reported in that case.
"""

from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from .errors import UnmatchedGroupingKey
from .summaries import SummaryTable


NOT_SIGNIFICANT = 0
CLUSTERED = 1
OVERDISPERSED = 2

KEY_COLUMNS = ("richness", "quadrat")
ALTERNATIVES = ("two-sided", "greater", "less")
EXACT_MAX_N = 50


# --------------------------------------------------------------------------------------
# Merge
# --------------------------------------------------------------------------------------


def merge_observed(observed: pd.DataFrame, summary: SummaryTable) -> pd.DataFrame:
    """Attach the summary row of each observed unit's group.

    Every observed key must match exactly one summary row; otherwise
    UnmatchedGroupingKey is raised instead of leaving NaN rows behind.
    """
    key = summary.group_by
    if key not in observed.columns:
        raise KeyError(f"observed table has no {key!r} column")

    sframe = summary.frame
    dup = sframe[key][sframe[key].duplicated()].tolist()
    if dup:
        raise UnmatchedGroupingKey(key, dup, reason="duplicate summary rows")

    known = set(sframe[key].tolist())
    missing = [k for k in pd.unique(observed[key]) if k not in known]
    if missing:
        raise UnmatchedGroupingKey(key, missing)

    merged = observed.merge(sframe, on=key, how="left", validate="many_to_one", sort=False)
    merged.attrs["group_by"] = key
    merged.attrs["metrics"] = [m for m in summary.metrics if m in observed.columns]
    return merged


def _key_of(merged: pd.DataFrame) -> str:
    key = merged.attrs.get("group_by")
    if key is None:
        key = "quadrat" if "quadrat" in merged.columns else "richness"
    return str(key)


def _metrics_of(merged: pd.DataFrame, key: str, metrics: Optional[Sequence[str]], needed: Iterable[str]) -> List[str]:
    if metrics is None:
        metrics = merged.attrs.get("metrics")
    if metrics is None:
        metrics = [c for c in merged.columns if f"{c}_mean" in merged.columns]
    names = [m for m in metrics if m not in KEY_COLUMNS and m != key]
    for m in names:
        for suffix in needed:
            col = f"{m}_{suffix}"
            if col not in merged.columns:
                raise KeyError(f"merged table has no {col!r} column")
    return names


# --------------------------------------------------------------------------------------
# SES
# --------------------------------------------------------------------------------------


def effective_sd(sd: np.ndarray) -> np.ndarray:
    """Replace zero sds by the mean of the finite non-zero sds; NaN if there are none."""
    sd = np.asarray(sd, dtype=float)
    usable = np.isfinite(sd) & (sd != 0)
    fill = float(sd[usable].mean()) if usable.any() else np.nan
    return np.where(sd == 0, fill, sd)


def standardize(merged: pd.DataFrame, metrics: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Standardized effect sizes (observed - null mean) / null sd, one column per metric.

    Zero sds (rarely sampled groups, few randomizations) are replaced by the
    mean non-zero sd of that metric, so the SES of such a group is an
    approximation. The grouping key and richness are never standardized.
    """
    key = _key_of(merged)
    names = _metrics_of(merged, key, metrics, ("mean", "sd"))
    out = pd.DataFrame({key: merged[key].to_numpy()})
    for m in names:
        observed = merged[m].to_numpy(dtype=float)
        mean = merged[f"{m}_mean"].to_numpy(dtype=float)
        sd = effective_sd(merged[f"{m}_sd"].to_numpy(dtype=float))
        out[m] = (observed - mean) / sd
    return out


# --------------------------------------------------------------------------------------
# Significance
# --------------------------------------------------------------------------------------


def significance_codes(observed: np.ndarray, lower: np.ndarray, upper: np.ndarray) -> np.ndarray:
    observed = np.asarray(observed, dtype=float)
    with np.errstate(invalid="ignore"):
        over = observed > np.asarray(upper, dtype=float)
        clustered = (observed < np.asarray(lower, dtype=float)) & ~over
    return np.where(over, OVERDISPERSED, np.where(clustered, CLUSTERED, NOT_SIGNIFICANT)).astype(int)


def classify(merged: pd.DataFrame, metrics: Optional[Sequence[str]] = None) -> pd.DataFrame:
    key = _key_of(merged)
    names = _metrics_of(merged, key, metrics, ("lower", "upper"))
    out = pd.DataFrame({key: merged[key].to_numpy()})
    for m in names:
        out[m] = significance_codes(merged[m], merged[f"{m}_lower"], merged[f"{m}_upper"])
    return out


# --------------------------------------------------------------------------------------
# Wilcoxon signed-rank battery
# --------------------------------------------------------------------------------------


def wilcoxon_one_sample(values: np.ndarray, *, mu: float = 0.0, alternative: str = "two-sided") -> tuple:
    """Signed-rank test of location `mu`; returns (estimate, p_value, method).

    The exact null distribution is used for small samples without zeros or ties;
    otherwise the normal approximation. A sample with no non-zero differences
    yields p_value = NaN.
    """
    x = np.asarray(values, dtype=float)
    x = x[np.isfinite(x)]
    estimate = float(x.mean()) if x.size else float("nan")
    d = x - float(mu)
    d = d[d != 0]
    if d.size == 0:
        return estimate, float("nan"), "none"

    has_ties = np.unique(np.abs(d)).size < d.size
    method = "exact" if (not has_ties and d.size <= EXACT_MAX_N) else "asymptotic"
    res = stats.wilcoxon(d, alternative=alternative, method=method)
    return estimate, float(res.pvalue), ("exact" if method == "exact" else "approx")


def robust_test(
    table: pd.DataFrame,
    alternative: str = "two-sided",
    *,
    mu: float = 0.0,
    exclude: Sequence[str] = KEY_COLUMNS,
) -> pd.DataFrame:
    """Wilcoxon signed-rank test of every response column against `mu`.

    alternative="greater" looks for overdispersion (e.g. competition),
    "less" for clustering (e.g. habitat filtering). Grouping columns
    (richness, quadrat) are never tested.
    """
    if alternative not in ALTERNATIVES:
        raise ValueError(f"alternative must be one of {ALTERNATIVES}, got {alternative!r}")
    rows = []
    for col in table.columns:
        if col in exclude:
            continue
        estimate, p, method = wilcoxon_one_sample(
            pd.to_numeric(table[col], errors="coerce").to_numpy(dtype=float), mu=mu, alternative=alternative
        )
        rows.append({"metric": str(col), "estimate": estimate, "p_value": p, "method": method})
    return pd.DataFrame(rows, columns=["metric", "estimate", "p_value", "method"])
