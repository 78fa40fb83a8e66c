from __future__ import annotations

import argparse
import json
import warnings
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from .cdm import CommunityDataMatrix
from .config import AnalysisConfig, load_analysis_config
from .phylo import PhyloTree
from .pipeline import AnalysisResult, analyze, analyze_arena
from .quadrats import bounds_frame


def _read_cdm(path: Path) -> CommunityDataMatrix:
    df = pd.read_csv(path, index_col=0)
    return CommunityDataMatrix(df)


def _read_regional(path: Path) -> pd.Series:
    df = pd.read_csv(path)
    if "species" not in df.columns:
        raise ValueError(f"{path} must have a 'species' column")
    if "abundance" in df.columns:
        return pd.Series(df["abundance"].to_numpy(dtype=float), index=df["species"].astype(str))
    return df["species"].astype(str).value_counts(sort=False)


def write_results(result: AnalysisResult, out_dir: Path) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    result.cdm.abundance.to_csv(out_dir / "cdm.csv")
    result.observed.to_csv(out_dir / "observed.csv", index=False)
    if result.bounds is not None:
        bounds_frame(result.bounds).to_csv(out_dir / "quadrat_bounds.csv")
    for name, table in result.replicates.items():
        table.to_csv(out_dir / f"{name}_replicates.csv", index=False)
    for name, test in result.tests.items():
        test.summary.frame.to_csv(out_dir / f"{name}_summary.csv", index=False)
        test.ses.to_csv(out_dir / f"{name}_ses.csv", index=False)
        test.significance.to_csv(out_dir / f"{name}_significance.csv", index=False)
        test.wilcoxon.to_csv(out_dir / f"{name}_wilcoxon.csv", index=False)


def run(
    *,
    config_path: Optional[Path],
    tree_path: Path,
    out_dir: Path,
    cdm_path: Optional[Path] = None,
    arena_path: Optional[Path] = None,
    regional_path: Optional[Path] = None,
) -> AnalysisResult:
    cfg = AnalysisConfig() if config_path is None else load_analysis_config(config_path)
    tree = PhyloTree.from_newick(tree_path.read_text(encoding="utf-8"))
    regional = None if regional_path is None else _read_regional(regional_path)

    if (cdm_path is None) == (arena_path is None):
        raise ValueError("exactly one of cdm_path / arena_path is required")
    if arena_path is not None:
        result = analyze_arena(pd.read_csv(arena_path), tree, cfg, regional)
    else:
        result = analyze(tree, _read_cdm(cdm_path), cfg, regional)  # type: ignore[arg-type]

    write_results(result, out_dir)
    (out_dir / "config.resolved.json").write_text(json.dumps(cfg.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
    return result


def main(argv: Optional[Sequence[str]] = None) -> None:
    # Empty groups and all-NaN metric columns are expected; the tables record them as NaN.
    warnings.filterwarnings("ignore", category=RuntimeWarning)

    ap = argparse.ArgumentParser(description="Test community phylogenetic structure against null models.")
    ap.add_argument("--config", type=str, default=None, help="YAML analysis config")
    ap.add_argument("--tree", type=str, required=True, help="Newick tree file")
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--cdm", type=str, help="CSV community data matrix (quadrats x species, first column = quadrat id)")
    src.add_argument("--arena", type=str, help="CSV of individuals with species, X, Y columns")
    ap.add_argument("--regional", type=str, default=None, help="CSV with species[,abundance] columns")
    ap.add_argument("--out_dir", type=str, required=True)
    args = ap.parse_args(argv)

    out_dir = Path(args.out_dir)
    result = run(
        config_path=None if args.config is None else Path(args.config),
        tree_path=Path(args.tree),
        out_dir=out_dir,
        cdm_path=None if args.cdm is None else Path(args.cdm),
        arena_path=None if args.arena is None else Path(args.arena),
        regional_path=None if args.regional is None else Path(args.regional),
    )
    for name, test in result.tests.items():
        sig = test.significance.drop(columns=[test.summary.group_by])
        print(f"[metrictester] {name}: {int((sig == 1).to_numpy().sum())} clustered, "
              f"{int((sig == 2).to_numpy().sum())} overdispersed cells")
    print(f"[metrictester] wrote outputs to: {out_dir}")


if __name__ == "__main__":
    main()
