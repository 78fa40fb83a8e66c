import numpy as np
import pandas as pd
import pytest

import metrictester.quadrats as quadrats
from metrictester.cdm import abundance_vector
from metrictester.errors import InfeasibleParameters, InvalidInputType, PlacementRetriesExhausted
from metrictester.quadrats import boxes_overlap, bounds_frame, make_cdm, place_quadrats, quadrat_contents


@pytest.mark.parametrize(
    "count,arena_length,quadrat_length",
    [(5, 100, 10), (4, 50, 10), (10, 100, 10), (20, 200, 20)],
)
def test_placed_quadrats_fit_and_do_not_overlap(count, arena_length, quadrat_length):
    bounds = place_quadrats(count, arena_length, quadrat_length, rng=np.random.default_rng(1))
    assert bounds.shape == (count, 4)
    assert (bounds >= 0).all() and (bounds <= arena_length).all()
    assert (bounds[:, 1] - bounds[:, 0] == quadrat_length).all()
    assert (bounds[:, 3] - bounds[:, 2] == quadrat_length).all()
    for i in range(count):
        for j in range(i + 1, count):
            assert not boxes_overlap(bounds[i], bounds[j])


def test_placement_is_reproducible_from_seed():
    a = place_quadrats(6, 60, 10, rng=42)
    b = place_quadrats(6, 60, 10, rng=42)
    np.testing.assert_array_equal(a, b)


def test_covering_too_much_fails_before_drawing():
    gen = np.random.default_rng(0)
    state = gen.bit_generator.state
    with pytest.raises(InfeasibleParameters):
        place_quadrats(10, 10, 5, rng=gen)
    assert gen.bit_generator.state == state


@pytest.mark.parametrize("count,arena_length,quadrat_length", [(0, 100, 10), (1, 10, 0), (1, 10, 11)])
def test_degenerate_parameters_are_infeasible(count, arena_length, quadrat_length):
    with pytest.raises(InfeasibleParameters):
        place_quadrats(count, arena_length, quadrat_length, rng=0)


@pytest.mark.parametrize("count,arena_length,quadrat_length", [(4, 10, 2.5), (4, 10.5, 2), (2.5, 100, 10), (4, float("nan"), 2)])
def test_fractional_sizes_are_rejected(count, arena_length, quadrat_length):
    with pytest.raises(InfeasibleParameters, match="whole number"):
        place_quadrats(count, arena_length, quadrat_length, rng=0)


def test_whole_valued_floats_are_accepted():
    bounds = place_quadrats(4.0, 60.0, 10.0, rng=3)
    assert bounds.shape == (4, 4)
    assert (bounds[:, 1] - bounds[:, 0] == 10).all()
    assert (bounds[:, 3] - bounds[:, 2] == 10).all()


def test_retry_cap_raises(monkeypatch):
    monkeypatch.setattr(quadrats, "boxes_overlap", lambda a, b: True)
    with pytest.raises(PlacementRetriesExhausted) as exc:
        place_quadrats(2, 100, 10, rng=0, max_attempts=5)
    assert exc.value.quadrat == 2
    assert exc.value.attempts == 5
    assert isinstance(exc.value, InfeasibleParameters)


def test_touching_boxes_overlap():
    assert boxes_overlap((0, 10, 0, 10), (10, 20, 0, 10))
    assert boxes_overlap((0, 10, 0, 10), (10, 20, 10, 20))
    assert not boxes_overlap((0, 10, 0, 10), (11, 21, 0, 10))
    assert not boxes_overlap((0, 10, 0, 10), (0, 10, 11, 21))


def test_quadrat_contents_counts_inclusive_edges():
    arena = pd.DataFrame(
        {
            "species": ["s1", "s1", "s2", "s3", "s3"],
            "X": [0.0, 10.0, 10.5, 5.0, 25.0],
            "Y": [0.0, 10.0, 5.0, 5.0, 25.0],
        }
    )
    bounds = np.array([[0, 10, 0, 10], [20, 30, 20, 30], [40, 50, 40, 50]])
    cdm = quadrat_contents(arena, bounds)
    assert cdm.species == ["s1", "s2", "s3"]
    assert cdm.quadrats == ["quadrat1", "quadrat2", "quadrat3"]
    assert cdm.abundance.loc["quadrat1"].tolist() == [2, 0, 1]
    assert cdm.abundance.loc["quadrat2"].tolist() == [0, 0, 1]
    assert cdm.abundance.loc["quadrat3"].tolist() == [0, 0, 0]
    assert cdm.richness.tolist() == [2, 1, 0]


def test_quadrat_contents_requires_columns():
    with pytest.raises(InvalidInputType):
        quadrat_contents(pd.DataFrame({"species": ["a"], "X": [1.0]}), np.array([[0, 1, 0, 1]]))


def test_make_cdm_derives_regional_from_sample(arena):
    cdm, regional, bounds = make_cdm(arena, 6, 10, arena_length=60, rng=3)
    assert cdm.n_units == 6
    assert bounds.shape == (6, 4)
    pd.testing.assert_series_equal(regional, abundance_vector(cdm))
    assert int(cdm.abundance.to_numpy().sum()) > 0


def test_make_cdm_keeps_given_regional(arena):
    labels = arena["species"].tolist()
    _, regional, _ = make_cdm(arena, 4, 10, arena_length=60, rng=3, regional_abundance=labels)
    assert int(regional.sum()) == len(labels)
    assert regional["s1"] == (arena["species"] == "s1").sum()


def test_bounds_frame_labels_quadrats():
    df = bounds_frame(np.array([[0, 10, 0, 10], [20, 30, 20, 30]]))
    assert list(df.columns) == ["x_min", "x_max", "y_min", "y_max"]
    assert list(df.index) == ["quadrat1", "quadrat2"]
