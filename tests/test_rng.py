import numpy as np

from metrictester.rng import derive_seed, make_rng, replicate_rng


def test_derive_seed_is_stable_and_label_sensitive():
    a = derive_seed(0, "null", "richness", 3)
    assert a == derive_seed(0, "null", "richness", 3)
    assert a != derive_seed(0, "null", "richness", 4)
    assert a != derive_seed(0, "null", "frequency", 3)
    assert a != derive_seed(1, "null", "richness", 3)
    assert 0 <= a < 2**32 - 1


def test_make_rng_passes_generators_through():
    gen = np.random.default_rng(5)
    assert make_rng(gen) is gen
    assert make_rng(5).integers(0, 1000) == np.random.default_rng(5).integers(0, 1000)


def test_replicate_rng_matches_derived_seed():
    x = replicate_rng(7, "taxa_labels", 2).random()
    y = np.random.default_rng(derive_seed(7, "null", "taxa_labels", 2)).random()
    assert x == y
