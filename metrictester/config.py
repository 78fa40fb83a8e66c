from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .quadrats import whole_number


GROUP_BY_CHOICES = ("richness", "quadrat")
INTERVAL_CHOICES = ("distribution", "mean")
ALTERNATIVE_CHOICES = ("two-sided", "greater", "less")


@dataclass(frozen=True)
class QuadratConfig:
    count: int
    quadrat_length: int
    arena_length: Optional[int] = None  # None: taken from the arena extent
    max_attempts: int = 10_000


@dataclass(frozen=True)
class RandomizationConfig:
    iterations: int = 30
    seed: int = 0
    workers: int = 1
    nulls: Optional[List[str]] = None    # None: full catalogue
    metrics: Optional[List[str]] = None  # None: full catalogue


@dataclass(frozen=True)
class SummaryConfig:
    group_by: str = "quadrat"
    level: float = 0.95
    interval: str = "distribution"


@dataclass(frozen=True)
class TestingConfig:
    alternative: str = "two-sided"
    mu: float = 0.0


@dataclass(frozen=True)
class AnalysisConfig:
    randomization: RandomizationConfig = field(default_factory=RandomizationConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)
    testing: TestingConfig = field(default_factory=TestingConfig)
    quadrats: Optional[QuadratConfig] = None  # only needed when starting from an arena

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _require(d: Mapping[str, Any], key: str) -> Any:
    if key not in d:
        raise KeyError(f"Missing required config key: {key}")
    return d[key]


def _get(d: Mapping[str, Any], key: str, default: Any) -> Any:
    return d[key] if key in d else default


def _section(data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    sec = _get(data, key, None)
    if sec is None:
        return {}
    if not isinstance(sec, dict):
        raise ValueError(f"config section {key!r} must be a mapping")
    return dict(sec)


def _choice(value: Any, choices: tuple, key: str) -> str:
    value = str(value)
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _names(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def parse_analysis_config(data: Mapping[str, Any]) -> AnalysisConfig:
    if not isinstance(data, Mapping):
        raise ValueError("analysis config must contain a mapping at the top level")

    r = _section(data, "randomization")
    randomization = RandomizationConfig(
        iterations=int(_get(r, "iterations", 30)),
        seed=int(_get(r, "seed", 0)),
        workers=int(_get(r, "workers", 1)),
        nulls=_names(_get(r, "nulls", None)),
        metrics=_names(_get(r, "metrics", None)),
    )
    if randomization.iterations < 1:
        raise ValueError("randomization.iterations must be >= 1")
    if randomization.workers < 1:
        raise ValueError("randomization.workers must be >= 1")

    s = _section(data, "summary")
    summary = SummaryConfig(
        group_by=_choice(_get(s, "group_by", "quadrat"), GROUP_BY_CHOICES, "summary.group_by"),
        level=float(_get(s, "level", 0.95)),
        interval=_choice(_get(s, "interval", "distribution"), INTERVAL_CHOICES, "summary.interval"),
    )
    if not (0.0 < summary.level < 1.0):
        raise ValueError("summary.level must be in (0, 1)")

    t = _section(data, "testing")
    testing = TestingConfig(
        alternative=_choice(_get(t, "alternative", "two-sided"), ALTERNATIVE_CHOICES, "testing.alternative"),
        mu=float(_get(t, "mu", 0.0)),
    )

    quadrats = None
    if "quadrats" in data:
        q = _section(data, "quadrats")
        arena_length = _get(q, "arena_length", None)
        quadrats = QuadratConfig(
            count=whole_number(_require(q, "count"), "quadrats.count"),
            quadrat_length=whole_number(_require(q, "quadrat_length"), "quadrats.quadrat_length"),
            arena_length=None if arena_length is None else whole_number(arena_length, "quadrats.arena_length"),
            max_attempts=int(_get(q, "max_attempts", 10_000)),
        )

    return AnalysisConfig(randomization=randomization, summary=summary, testing=testing, quadrats=quadrats)


def load_analysis_config(path: str | Path) -> AnalysisConfig:
    path = Path(path)
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML file {path} must contain a mapping at the top level")
    return parse_analysis_config(data)
