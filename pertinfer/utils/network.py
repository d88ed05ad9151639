from __future__ import annotations

from typing import Iterable, Sequence, Tuple

import networkx as nx
import numpy as np

from .errors import CycleRejected


class NetworkModel:
    """Directed acyclic network over P-genes with value semantics.

    Edge moves never mutate the instance; they return a new model. The
    reflexive transitive closure is computed lazily and cached as a
    read-only array ordered like ``nodes``.

    Examples
    --------
    >>> net = NetworkModel.empty(['A', 'B'])
    >>> net.add_edge('A', 'B').closure().tolist()
    [[1.0, 1.0], [0.0, 1.0]]
    """

    def __init__(self, graph: nx.DiGraph, nodes: Sequence | None = None):
        nodes = list(graph.nodes()) if nodes is None else list(nodes)
        if set(nodes) != set(graph.nodes()):
            raise ValueError("nodes must list exactly the nodes of graph")
        if not nx.is_directed_acyclic_graph(graph):
            raise ValueError("NetworkModel requires an acyclic graph")
        self._graph = graph
        self._nodes: Tuple = tuple(nodes)
        self._index = {n: i for i, n in enumerate(self._nodes)}
        self._closure: np.ndarray | None = None

    @classmethod
    def empty(cls, nodes: Iterable) -> "NetworkModel":
        nodes = list(nodes)
        g = nx.DiGraph()
        g.add_nodes_from(nodes)
        return cls(g, nodes)

    @classmethod
    def from_edges(cls, nodes: Iterable, edges: Iterable[Tuple]) -> "NetworkModel":
        nodes = list(nodes)
        g = nx.DiGraph()
        g.add_nodes_from(nodes)
        g.add_edges_from(edges)
        return cls(g, nodes)

    @classmethod
    def from_adjacency(cls, adj: np.ndarray, nodes: Sequence) -> "NetworkModel":
        """Build a model from a square 0/1 (or weighted) adjacency matrix."""
        adj = np.asarray(adj)
        if adj.shape != (len(nodes), len(nodes)):
            raise ValueError("adjacency shape does not match number of nodes")
        g = nx.from_numpy_array((adj != 0).astype(int), create_using=nx.DiGraph)
        g.remove_edges_from(list(nx.selfloop_edges(g)))
        g = nx.relabel_nodes(g, {i: n for i, n in enumerate(nodes)})
        return cls(g, nodes)

    @classmethod
    def random(
        cls, nodes: Iterable, rng: np.random.Generator, edge_prob: float = 0.3
    ) -> "NetworkModel":
        """Random DAG: edges only go forward along a random node ordering."""
        nodes = list(nodes)
        order = rng.permutation(len(nodes))
        g = nx.DiGraph()
        g.add_nodes_from(nodes)
        for a in range(len(order)):
            for b in range(a + 1, len(order)):
                if rng.random() < edge_prob:
                    g.add_edge(nodes[order[a]], nodes[order[b]])
        return cls(g, nodes)

    @property
    def nodes(self) -> Tuple:
        return self._nodes

    @property
    def edges(self) -> list:
        return sorted(self._graph.edges(), key=lambda e: (self._index[e[0]], self._index[e[1]]))

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other) -> bool:
        if not isinstance(other, NetworkModel):
            return NotImplemented
        return self._nodes == other._nodes and set(self._graph.edges()) == set(other._graph.edges())

    def __hash__(self) -> int:
        return hash((self._nodes, frozenset(self._graph.edges())))

    def __repr__(self) -> str:
        return f"NetworkModel(nodes={list(self._nodes)}, edges={self.edges})"

    def index(self, node) -> int:
        return self._index[node]

    def has_edge(self, u, v) -> bool:
        return self._graph.has_edge(u, v)

    def number_of_edges(self) -> int:
        return self._graph.number_of_edges()

    def _check_nodes(self, u, v) -> None:
        if u not in self._index or v not in self._index:
            raise ValueError("Both u and v must be nodes of the network")
        if u == v:
            raise ValueError("Self loops are not allowed")

    def add_edge(self, u, v) -> "NetworkModel":
        self._check_nodes(u, v)
        if self._graph.has_edge(u, v):
            raise ValueError(f"Edge ({u}, {v}) already exists")
        if nx.has_path(self._graph, v, u):
            raise CycleRejected(u, v, "add")
        g = self._graph.copy()
        g.add_edge(u, v)
        return NetworkModel(g, self._nodes)

    def remove_edge(self, u, v) -> "NetworkModel":
        self._check_nodes(u, v)
        if not self._graph.has_edge(u, v):
            raise ValueError(f"Edge ({u}, {v}) does not exist")
        g = self._graph.copy()
        g.remove_edge(u, v)
        return NetworkModel(g, self._nodes)

    def reverse_edge(self, u, v) -> "NetworkModel":
        self._check_nodes(u, v)
        if not self._graph.has_edge(u, v):
            raise ValueError(f"Edge ({u}, {v}) does not exist")
        g = self._graph.copy()
        g.remove_edge(u, v)
        # any remaining u ~> v path closes a cycle once v -> u is added
        if nx.has_path(g, u, v):
            raise CycleRejected(u, v, "reverse")
        g.add_edge(v, u)
        return NetworkModel(g, self._nodes)

    def adjacency(self) -> np.ndarray:
        return nx.to_numpy_array(self._graph, nodelist=list(self._nodes), weight=None)

    def closure(self) -> np.ndarray:
        """Reflexive transitive closure; ``T[i, j] == 1`` iff i reaches j."""
        if self._closure is None:
            tc = nx.transitive_closure_dag(self._graph)
            T = nx.to_numpy_array(tc, nodelist=list(self._nodes), weight=None)
            np.fill_diagonal(T, 1.0)
            T.setflags(write=False)
            self._closure = T
        return self._closure

    def to_networkx(self) -> nx.DiGraph:
        return self._graph.copy()
