import numpy as np
import pandas as pd
import pytest

from metrictester.cdm import CommunityDataMatrix
from metrictester.phylo import PhyloTree


# Tips A, B, C, D all at depth 3.
#   shared(A,B) = 2, shared(C,D) = 1, shared(A|B, C|D) = 0
#   dist(A,B) = 2,   dist(C,D) = 4,   dist(A|B, C|D) = 6
FOUR_TIP_NEWICK = "((A:1,B:1):2,(C:2,D:2):1);"

EIGHT_TIP_NEWICK = "(((s1:1,s2:1):1,(s3:1,s4:1):1):2,((s5:2,s6:2):1,(s7:0.5,s8:0.5):2.5):1);"


@pytest.fixture
def four_tip_tree():
    return PhyloTree.from_newick(FOUR_TIP_NEWICK)


@pytest.fixture
def eight_tip_tree():
    return PhyloTree.from_newick(EIGHT_TIP_NEWICK)


@pytest.fixture
def small_cdm():
    df = pd.DataFrame(
        {
            "A": [1, 1, 0, 0],
            "B": [2, 0, 0, 0],
            "C": [0, 1, 0, 0],
            "D": [0, 0, 0, 3],
        },
        index=["q1", "q2", "q3", "q4"],
    )
    return CommunityDataMatrix(df)


@pytest.fixture
def random_cdm():
    rng = np.random.default_rng(7)
    species = [f"s{i}" for i in range(1, 9)]
    values = rng.poisson(1.5, size=(6, 8)) * (rng.random((6, 8)) < 0.6)
    values[:, 0] = np.maximum(values[:, 0], 1)  # every quadrat holds at least s1
    return CommunityDataMatrix.from_array(values, species)


@pytest.fixture
def arena():
    rng = np.random.default_rng(11)
    n = 600
    return pd.DataFrame(
        {
            "species": rng.choice([f"s{i}" for i in range(1, 9)], size=n),
            "X": rng.uniform(0, 60, size=n),
            "Y": rng.uniform(0, 60, size=n),
        }
    )
