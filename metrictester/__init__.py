"""metrictester: null-model hypothesis tests for community phylogenetic structure.

Pipeline pieces:

- **Quadrats**: non-overlapping quadrat placement in a square arena and quadrat-contents CDMs.
- **Metrics**: registry of per-quadrat metrics (richness always first) and the metric runner.
- **Nulls**: registry of CDM randomizations and the randomization engine producing replicate tables.
- **Summaries**: per-richness or per-quadrat null mean / sd / bounds.
- **Testing**: standardized effect sizes, significance codes and the Wilcoxon battery.

See `metrictester.pipeline.analyze` for the whole chain and `python -m metrictester`
for the command-line driver.
"""

from .cdm import CommunityDataMatrix, abundance_vector
from .errors import (
    InfeasibleParameters,
    InvalidInputType,
    InvalidMetricName,
    InvalidMetricsInput,
    InvalidNullName,
    InvalidNullsInput,
    MetricTesterError,
    PlacementRetriesExhausted,
    UnknownRegistryName,
    UnmatchedGroupingKey,
)
from .metrics import METRICS, check_metrics, prep_metrics, run_metrics
from .nulls import NULLS, check_nulls, prep_nulls, run_nulls
from .phylo import PhyloTree
from .pipeline import analyze, analyze_arena
from .quadrats import make_cdm, place_quadrats, quadrat_contents
from .randomization import randomize
from .summaries import SummaryTable, summarize
from .testing import classify, merge_observed, robust_test, standardize

__all__ = [
    "CommunityDataMatrix",
    "abundance_vector",
    "PhyloTree",
    "METRICS",
    "NULLS",
    "check_metrics",
    "check_nulls",
    "prep_metrics",
    "prep_nulls",
    "run_metrics",
    "run_nulls",
    "randomize",
    "place_quadrats",
    "quadrat_contents",
    "make_cdm",
    "summarize",
    "SummaryTable",
    "merge_observed",
    "standardize",
    "classify",
    "robust_test",
    "analyze",
    "analyze_arena",
    "MetricTesterError",
    "InvalidInputType",
    "InvalidMetricsInput",
    "InvalidNullsInput",
    "InfeasibleParameters",
    "PlacementRetriesExhausted",
    "UnknownRegistryName",
    "InvalidMetricName",
    "InvalidNullName",
    "UnmatchedGroupingKey",
]
