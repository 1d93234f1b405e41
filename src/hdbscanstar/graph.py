"""Undirected graph used to hold mutual reachability spanning trees."""

from __future__ import annotations

from typing import Iterator, NamedTuple, Sequence

import numpy as np


class Edge(NamedTuple):
    """A single weighted edge between two vertices."""

    vertex_a: int
    vertex_b: int
    weight: float


class UndirectedGraph:
    """Weighted undirected graph stored as parallel edge arrays.

    Edge ``i`` connects ``vertices_a[i]`` and ``vertices_b[i]`` with weight
    ``edge_weights[i]``.  Every vertex also keeps an adjacency list; a
    self-loop appears once in the list of its vertex.
    """

    __slots__ = ("_num_vertices", "_vertices_a", "_vertices_b", "_edge_weights", "_edges")

    def __init__(
        self,
        num_vertices: int,
        vertices_a: Sequence[int] | np.ndarray,
        vertices_b: Sequence[int] | np.ndarray,
        edge_weights: Sequence[float] | np.ndarray,
    ) -> None:
        vertices_a = np.asarray(vertices_a, dtype=np.int64)
        vertices_b = np.asarray(vertices_b, dtype=np.int64)
        edge_weights = np.asarray(edge_weights, dtype=float)

        if not (len(vertices_a) == len(vertices_b) == len(edge_weights)):
            raise ValueError(
                "Edge arrays must have equal lengths; received "
                f"{len(vertices_a)}, {len(vertices_b)} and {len(edge_weights)}"
            )
        if num_vertices < 0:
            raise ValueError("num_vertices cannot be negative")
        for name, vertices in (("vertices_a", vertices_a), ("vertices_b", vertices_b)):
            if len(vertices) and (vertices.min() < 0 or vertices.max() >= num_vertices):
                raise ValueError(f"{name} contains vertex ids outside [0, {num_vertices})")

        self._num_vertices = int(num_vertices)
        self._vertices_a = vertices_a
        self._vertices_b = vertices_b
        self._edge_weights = edge_weights

        self._edges: list[list[int]] = [[] for _ in range(self._num_vertices)]
        for vertex_a, vertex_b in zip(vertices_a.tolist(), vertices_b.tolist()):
            self._edges[vertex_a].append(vertex_b)
            if vertex_a != vertex_b:
                self._edges[vertex_b].append(vertex_a)

    @property
    def num_vertices(self) -> int:
        return self._num_vertices

    @property
    def num_edges(self) -> int:
        return len(self._edge_weights)

    @property
    def vertices_a(self) -> np.ndarray:
        return self._vertices_a.copy()

    @property
    def vertices_b(self) -> np.ndarray:
        return self._vertices_b.copy()

    @property
    def edge_weights(self) -> np.ndarray:
        return self._edge_weights.copy()

    def __len__(self) -> int:
        return self.num_edges

    def __iter__(self) -> Iterator[Edge]:
        for index in range(self.num_edges):
            yield self.edge_at(index)

    def edge_at(self, index: int) -> Edge:
        return Edge(
            int(self._vertices_a[index]),
            int(self._vertices_b[index]),
            float(self._edge_weights[index]),
        )

    def first_vertex_at(self, index: int) -> int:
        return int(self._vertices_a[index])

    def second_vertex_at(self, index: int) -> int:
        return int(self._vertices_b[index])

    def edge_weight_at(self, index: int) -> float:
        return float(self._edge_weights[index])

    def edge_list_for_vertex(self, vertex: int) -> tuple[int, ...]:
        """Return the neighbours of ``vertex`` (including itself for a self-loop)."""

        return tuple(self._edges[vertex])

    def sorted_by_edge_weight(self) -> "UndirectedGraph":
        """Return a copy whose edges are ordered by ascending weight."""

        order = np.argsort(self._edge_weights, kind="stable")
        return UndirectedGraph(
            self._num_vertices,
            self._vertices_a[order],
            self._vertices_b[order],
            self._edge_weights[order],
        )

    def total_weight(self, *, include_self_edges: bool = False) -> float:
        if include_self_edges:
            return float(self._edge_weights.sum())
        mask = self._vertices_a != self._vertices_b
        return float(self._edge_weights[mask].sum())

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"UndirectedGraph(num_vertices={self._num_vertices}, num_edges={self.num_edges})"


__all__ = ["Edge", "UndirectedGraph"]
