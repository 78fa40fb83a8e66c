from __future__ import annotations

"""Randomization engine: null CDMs -> metric replicate tables.

Each (null, iteration) task draws from its own generator seeded by
derive_seed(seed, "null", name, iteration), so the collected tables are the
same whether tasks run serially or on a thread pool. Tables are assembled only
after every task has finished.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

from .errors import InvalidNullsInput
from .metrics import check_metrics, prep_metrics, run_metrics
from .nulls import NullFn, NullsInput, as_cdm_list, check_nulls
from .registry import Registry, Requested
from .rng import replicate_rng


def _one_replicate(
    ctx: NullsInput,
    name: str,
    fn: NullFn,
    iteration: int,
    metrics: Registry,
    seed: int,
) -> List[pd.DataFrame]:
    rng = replicate_rng(seed, name, iteration)
    frames: List[pd.DataFrame] = []
    for k, cdm in enumerate(as_cdm_list(fn(ctx, rng), name)):
        mi = prep_metrics(ctx.tree, cdm, ctx.regional_abundance)
        df = run_metrics(mi, metrics)
        df.insert(0, "iteration", iteration)
        df.insert(1, "replicate", k)
        frames.append(df)
    return frames


def randomize(
    nulls_input: NullsInput,
    *,
    nulls: Requested = None,
    metrics: Requested = None,
    iterations: int = 1,
    seed: int = 0,
    workers: int = 1,
    null_catalogue: Optional[Dict[str, NullFn]] = None,
    metric_catalogue: Optional[Dict[str, Callable]] = None,
) -> Dict[str, pd.DataFrame]:
    """Run every requested null `iterations` times and compute metrics on each result.

    Returns {null name: replicate table}. A replicate table has one row per
    (iteration, replicate, quadrat) with columns
    null, iteration, replicate, quadrat, richness, <metrics...>;
    `replicate` numbers the CDMs one null invocation returned (usually just 0).
    """
    if not isinstance(nulls_input, NullsInput):
        raise InvalidNullsInput(
            f"Input needs to be a NullsInput (see prep_nulls), got {type(nulls_input).__name__}"
        )
    if int(iterations) < 1:
        raise ValueError("iterations must be >= 1")
    if int(workers) < 1:
        raise ValueError("workers must be >= 1")

    null_reg = nulls if isinstance(nulls, Registry) else check_nulls(nulls, null_catalogue)
    metric_reg = metrics if isinstance(metrics, Registry) else check_metrics(metrics, metric_catalogue)
    tasks: List[Tuple[str, int]] = [(name, it) for name in null_reg for it in range(int(iterations))]

    def work(task: Tuple[str, int]) -> List[pd.DataFrame]:
        name, it = task
        return _one_replicate(nulls_input, name, null_reg[name], it, metric_reg, int(seed))

    if int(workers) == 1:
        results = [work(t) for t in tasks]
    else:
        with ThreadPoolExecutor(max_workers=int(workers)) as pool:
            results = list(pool.map(work, tasks))

    collected: Dict[str, List[pd.DataFrame]] = {name: [] for name in null_reg}
    for (name, _), frames in zip(tasks, results):
        collected[name].extend(frames)

    columns = ["null", "iteration", "replicate", "quadrat", *metric_reg.names]
    out: Dict[str, pd.DataFrame] = {}
    for name, frames in collected.items():
        if frames:
            table = pd.concat(frames, ignore_index=True)
        else:
            table = pd.DataFrame(columns=[c for c in columns if c != "null"])
        table.insert(0, "null", name)
        table = table.sort_values(["iteration", "replicate"], kind="stable").reset_index(drop=True)
        out[name] = table[columns]
    return out
