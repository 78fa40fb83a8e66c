import numpy as np
import pandas as pd
import pytest

from metrictester.cdm import CommunityDataMatrix, abundance_vector
from metrictester.errors import InvalidNullsInput
from metrictester.nulls import (
    NULLS,
    as_cdm_list,
    frequency_null,
    independent_swap,
    independent_swap_null,
    prep_nulls,
    regional_null,
    richness_null,
    run_nulls,
    taxa_labels_null,
)


@pytest.fixture
def ctx(eight_tip_tree, random_cdm):
    return prep_nulls(eight_tip_tree, random_cdm, abundance_vector(random_cdm))


def _sorted_rows(A):
    return np.sort(A, axis=1)


def test_prep_nulls_warns_without_regional(eight_tip_tree, random_cdm):
    with pytest.warns(UserWarning, match="Regional abundance not provided"):
        ctx = prep_nulls(eight_tip_tree, random_cdm)
    pd.testing.assert_series_equal(ctx.regional_abundance, abundance_vector(random_cdm))
    assert ctx.resampling.shape == (8, 6)


def test_prep_nulls_rejects_wrong_types(eight_tip_tree, random_cdm):
    with pytest.raises(InvalidNullsInput):
        prep_nulls(eight_tip_tree, random_cdm.abundance, {})
    with pytest.raises(InvalidNullsInput):
        prep_nulls(None, random_cdm, {})


def test_richness_null_keeps_each_site(ctx):
    out = richness_null(ctx, np.random.default_rng(0))
    A = ctx.cdm.values()
    np.testing.assert_array_equal(_sorted_rows(out.values()), _sorted_rows(A))
    assert out.richness.tolist() == ctx.cdm.richness.tolist()
    assert out.quadrats == ctx.cdm.quadrats
    assert out.species == ctx.cdm.species


def test_frequency_null_keeps_each_species(ctx):
    out = frequency_null(ctx, np.random.default_rng(0))
    A = ctx.cdm.values()
    np.testing.assert_array_equal(np.sort(out.values(), axis=0), np.sort(A, axis=0))
    np.testing.assert_array_equal((out.values() > 0).sum(axis=0), (A > 0).sum(axis=0))


def test_taxa_labels_null_permutes_columns(ctx):
    out = taxa_labels_null(ctx, np.random.default_rng(0))
    A = ctx.cdm.values()
    assert out.species == ctx.cdm.species
    assert out.richness.tolist() == ctx.cdm.richness.tolist()
    got = sorted(map(tuple, out.values().T))
    assert got == sorted(map(tuple, A.T))


def test_independent_swap_on_checkerboard():
    A = np.array([[1.0, 0.0], [0.0, 2.0]])
    out, swaps = independent_swap(A, rng=np.random.default_rng(0), nswap=1, max_tries=100)
    assert swaps == 1
    np.testing.assert_array_equal(out, [[0.0, 1.0], [2.0, 0.0]])
    # input untouched
    assert A[0, 0] == 1.0


def test_independent_swap_null_keeps_margins(ctx):
    out = independent_swap_null(ctx, np.random.default_rng(5))
    A = ctx.cdm.values()
    B = out.values()
    np.testing.assert_array_equal((B > 0).sum(axis=1), (A > 0).sum(axis=1))
    np.testing.assert_array_equal((B > 0).sum(axis=0), (A > 0).sum(axis=0))
    np.testing.assert_allclose(B.sum(axis=1), A.sum(axis=1))


def test_regional_null_draws_from_pool(four_tip_tree, small_cdm):
    pool = pd.Series({"A": 1, "B": 1, "C": 1, "D": 1, "E": 50})
    ctx = prep_nulls(four_tip_tree, small_cdm, pool)
    out = regional_null(ctx, np.random.default_rng(0))
    assert out.species == ["A", "B", "C", "D", "E"]
    assert out.richness.tolist() == small_cdm.richness.tolist()
    np.testing.assert_array_equal(out.values().sum(axis=1), small_cdm.values().sum(axis=1))
    np.testing.assert_array_equal(_sorted_rows(out.values())[:, -2:], _sorted_rows(small_cdm.values())[:, -2:])


def test_regional_null_pool_too_small(four_tip_tree, small_cdm):
    ctx = prep_nulls(four_tip_tree, small_cdm, {"A": 3})
    with pytest.raises(ValueError):
        regional_null(ctx, np.random.default_rng(0))


def test_nulls_leave_context_untouched(ctx):
    before = ctx.cdm.abundance.copy()
    for fn in NULLS.values():
        fn(ctx, np.random.default_rng(1))
    pd.testing.assert_frame_equal(ctx.cdm.abundance, before)


def test_run_nulls_is_seeded(ctx):
    a = run_nulls(ctx, ["richness", "frequency"], seed=3)
    b = run_nulls(ctx, ["richness", "frequency"], seed=3)
    assert list(a) == ["richness", "frequency"]
    for name in a:
        assert len(a[name]) == 1
        pd.testing.assert_frame_equal(a[name][0].abundance, b[name][0].abundance)


def test_run_nulls_accepts_multi_cdm_nulls(ctx):
    catalogue = {"twice": lambda c, rng: [c.cdm, c.cdm]}
    out = run_nulls(ctx, catalogue=catalogue)
    assert len(out["twice"]) == 2


def test_run_nulls_rejects_wrong_input(random_cdm):
    with pytest.raises(InvalidNullsInput):
        run_nulls(random_cdm)


def test_as_cdm_list_checks_items(small_cdm):
    assert as_cdm_list(small_cdm, "x") == [small_cdm]
    assert as_cdm_list(None, "x") == []
    with pytest.raises(TypeError):
        as_cdm_list([small_cdm, "nope"], "x")
    assert isinstance(as_cdm_list((small_cdm,), "x")[0], CommunityDataMatrix)
