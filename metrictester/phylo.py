from __future__ import annotations

"""Rooted phylogenetic trees on top of scikit-bio's TreeNode.

Tips carry the species name; every non-root node carries a branch ``length``.
The wrapped tree is treated as immutable: pruning returns a new tree built
from a copy.

Shared path lengths are recovered from tip depths and tip-to-tip distances:
  vcv(i, j) = (depth(i) + depth(j) - dist(i, j)) / 2
"""

import io
import threading
import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

import networkx as nx
import numpy as np
import pandas as pd
from skbio import TreeNode
from skbio.io import NewickFormatError

from .errors import InvalidInputType


DEFAULT_BRANCH_LENGTH = 1.0


def _tip_nodes(tree: TreeNode) -> List[TreeNode]:
    # a single-node tree is its own (only) tip
    return [tree] if tree.is_tip() else list(tree.tips())


@dataclass(frozen=True)
class PhyloTree:
    tree: TreeNode
    tip_nodes: Dict[str, TreeNode] = field(init=False, repr=False, compare=False)
    _lock: threading.Lock = field(init=False, repr=False, compare=False, default_factory=threading.Lock)

    def __post_init__(self) -> None:
        if not isinstance(self.tree, TreeNode):
            raise InvalidInputType(f"PhyloTree wraps a skbio TreeNode, got {type(self.tree).__name__}")
        tips = _tip_nodes(self.tree)
        if any(t.name is None for t in tips):
            raise InvalidInputType("Every tip must carry a species label")
        names = [str(t.name) for t in tips]
        if len(set(names)) != len(names):
            raise InvalidInputType("Tip labels must be unique")
        object.__setattr__(self, "tip_nodes", dict(zip(names, tips)))

    # -------------------------------- constructors --------------------------------

    @classmethod
    def from_newick(cls, text: str) -> "PhyloTree":
        try:
            tree = TreeNode.read(io.StringIO(text.strip()), format="newick", convert_underscores=False)
        except (NewickFormatError, ValueError) as exc:
            raise InvalidInputType(f"Could not parse Newick string: {exc}") from exc
        return cls._with_default_lengths(tree)

    @classmethod
    def from_edges(cls, edges: Iterable[Sequence[object]]) -> "PhyloTree":
        """Build from (parent, child) or (parent, child, length) tuples keyed by node labels.

        Leaves become tips labelled by their node name.
        """
        G = nx.DiGraph()
        for e in edges:
            length = None if len(e) < 3 or e[2] is None else float(e[2])  # type: ignore[arg-type]
            G.add_edge(str(e[0]), str(e[1]), length=length)
        if G.number_of_nodes() == 0 or not nx.is_arborescence(G):
            raise InvalidInputType("Edges must form a single rooted tree")
        root = next(v for v, d in G.in_degree() if d == 0)
        nodes = {v: TreeNode(name=v) for v in G.nodes()}
        for parent, child, data in G.edges(data=True):
            nodes[child].length = data["length"]
            nodes[parent].append(nodes[child])
        return cls._with_default_lengths(nodes[root])

    @classmethod
    def _with_default_lengths(cls, tree: TreeNode) -> "PhyloTree":
        branches = list(tree.traverse(include_self=False))
        missing = [n for n in branches if n.length is None]
        if missing and len(missing) == len(branches):
            warnings.warn("Tree has no branch lengths; assigning unit lengths", UserWarning, stacklevel=3)
        for n in missing:
            n.length = DEFAULT_BRANCH_LENGTH
        return cls(tree)

    # -------------------------------- accessors --------------------------------

    @property
    def tip_labels(self) -> List[str]:
        return list(self.tip_nodes)

    @property
    def n_nodes(self) -> int:
        return sum(1 for _ in self.tree.traverse(include_self=True))

    def tip_depths(self) -> pd.Series:
        """Root-to-tip path length of every tip; the root's own length is ignored."""
        depth: Dict[int, float] = {}
        for node in self.tree.preorder(include_self=True):
            depth[id(node)] = 0.0 if node is self.tree else depth[id(node.parent)] + float(node.length)
        return pd.Series({name: depth[id(t)] for name, t in self.tip_nodes.items()}, name="depth")

    def _require_species(self, species: Iterable[str]) -> List[str]:
        species = [str(s) for s in species]
        missing = [s for s in species if s not in self.tip_nodes]
        if missing:
            raise InvalidInputType(f"Species not found among tree tips: {missing}")
        return species

    # -------------------------------- pruning --------------------------------

    def prune(self, species: Iterable[str]) -> "PhyloTree":
        """Keep only the given tips; unary internal nodes are collapsed, lengths summed."""
        species = self._require_species(species)
        if not species:
            raise InvalidInputType("Cannot prune a tree to zero species")
        if len(set(species)) == 1:
            return PhyloTree(TreeNode(name=species[0]))
        # TreeNode caches name lookups on first use
        with self._lock:
            sheared = self.tree.shear(species)
        return PhyloTree(sheared)

    # -------------------------------- derived matrices --------------------------------

    def cophenetic(self, species: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Patristic (tip-to-tip path length) distance matrix."""
        labels = self.tip_labels if species is None else self._require_species(species)
        if len(labels) < 2:
            return pd.DataFrame(np.zeros((len(labels), len(labels))), index=labels, columns=labels)
        with self._lock:
            dm = self.tree.tip_tip_distances(endpoints=labels)
        D = pd.DataFrame(dm.data, index=list(dm.ids), columns=list(dm.ids))
        return D.loc[labels, labels]

    def vcv(self, species: Optional[Sequence[str]] = None, *, cor: bool = False) -> pd.DataFrame:
        """Phylogenetic variance-covariance matrix (shared root-to-MRCA path lengths).

        With cor=True the matrix is scaled to a correlation matrix.
        """
        labels = self.tip_labels if species is None else self._require_species(species)
        d = self.tip_depths().loc[labels].to_numpy(dtype=float)
        D = self.cophenetic(labels).to_numpy(dtype=float)
        C = (d[:, None] + d[None, :] - D) / 2.0
        np.fill_diagonal(C, d)
        if cor:
            s = np.sqrt(d)
            with np.errstate(invalid="ignore", divide="ignore"):
                C = C / np.outer(s, s)
        return pd.DataFrame(C, index=labels, columns=labels)

    def faith_pd(self, species: Iterable[str]) -> float:
        """Total branch length of the subtree joining the given tips and the root."""
        species = self._require_species(species)
        seen = set()
        total = 0.0
        for s in species:
            node = self.tip_nodes[s]
            while node.parent is not None and id(node) not in seen:
                seen.add(id(node))
                total += float(node.length)
                node = node.parent
        return float(total)
