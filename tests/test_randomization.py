import pandas as pd
import pytest

from metrictester.cdm import abundance_vector
from metrictester.errors import InvalidNullsInput
from metrictester.nulls import prep_nulls, richness_null
from metrictester.randomization import randomize


@pytest.fixture
def ctx(eight_tip_tree, random_cdm):
    return prep_nulls(eight_tip_tree, random_cdm, abundance_vector(random_cdm))


def test_replicate_table_layout(ctx):
    out = randomize(ctx, nulls=["richness", "frequency"], metrics=["mpd"], iterations=3, seed=1)
    assert list(out) == ["richness", "frequency"]
    for name, table in out.items():
        assert list(table.columns) == ["null", "iteration", "replicate", "quadrat", "richness", "mpd"]
        assert len(table) == 3 * ctx.cdm.n_units
        assert set(table["null"]) == {name}
        assert table["iteration"].tolist() == sorted(table["iteration"].tolist())
        assert table["quadrat"].tolist()[: ctx.cdm.n_units] == ctx.cdm.quadrats


def test_richness_null_keeps_observed_richness(ctx):
    table = randomize(ctx, nulls=["richness"], metrics=[], iterations=4, seed=2)["richness"]
    observed = ctx.cdm.richness.to_dict()
    assert all(observed[q] == r for q, r in zip(table["quadrat"], table["richness"]))


def test_worker_count_does_not_change_results(ctx):
    kwargs = dict(nulls=["richness", "independent_swap"], metrics=["mpd", "psv"], iterations=6, seed=9)
    serial = randomize(ctx, workers=1, **kwargs)
    threaded = randomize(ctx, workers=4, **kwargs)
    for name in serial:
        pd.testing.assert_frame_equal(serial[name], threaded[name])


def test_seed_controls_draws(ctx):
    a = randomize(ctx, nulls=["frequency"], metrics=["mpd"], iterations=5, seed=1)["frequency"]
    b = randomize(ctx, nulls=["frequency"], metrics=["mpd"], iterations=5, seed=1)["frequency"]
    c = randomize(ctx, nulls=["frequency"], metrics=["mpd"], iterations=5, seed=2)["frequency"]
    pd.testing.assert_frame_equal(a, b)
    assert not a["mpd"].equals(c["mpd"])


def test_null_returning_several_cdms(ctx):
    catalogue = {"twice": lambda c, rng: [richness_null(c, rng), richness_null(c, rng)]}
    table = randomize(ctx, metrics=["mpd"], iterations=2, null_catalogue=catalogue)["twice"]
    n = ctx.cdm.n_units
    assert len(table) == 2 * 2 * n
    assert table["replicate"].tolist() == ([0] * n + [1] * n) * 2
    assert table["iteration"].tolist() == [0] * (2 * n) + [1] * (2 * n)


def test_null_returning_nothing_gives_empty_table(ctx):
    table = randomize(ctx, metrics=["mpd"], iterations=2, null_catalogue={"none": lambda c, rng: []})["none"]
    assert table.empty
    assert list(table.columns) == ["null", "iteration", "replicate", "quadrat", "richness", "mpd"]


def test_randomize_validates_arguments(ctx, random_cdm):
    with pytest.raises(InvalidNullsInput):
        randomize(random_cdm)
    with pytest.raises(ValueError):
        randomize(ctx, iterations=0)
    with pytest.raises(ValueError):
        randomize(ctx, workers=0)
