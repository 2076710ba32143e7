from __future__ import annotations

import threading
from collections import deque
from typing import Iterable


def _edge(u: int, v: int) -> tuple[int, int]:
    return (u, v) if u < v else (v, u)


def find_connected_components(num_nodes: int, edges: Iterable[tuple[int, int]]) -> list[list[int]]:
    """BFS over an adjacency list sized to `num_nodes`.

    Components are ordered by their smallest node and members are sorted, so
    the result depends only on the edge *set*, not on insertion order.
    """
    if num_nodes <= 0:
        return []
    adj: list[set[int]] = [set() for _ in range(num_nodes)]
    for u, v in edges:
        if u == v:
            continue
        adj[u].add(v)
        adj[v].add(u)

    visited = [False] * num_nodes
    components: list[list[int]] = []
    for start in range(num_nodes):
        if visited[start]:
            continue
        visited[start] = True
        queue = deque([start])
        members: list[int] = []
        while queue:
            u = queue.popleft()
            members.append(u)
            for v in sorted(adj[u]):
                if not visited[v]:
                    visited[v] = True
                    queue.append(v)
        components.append(sorted(members))
    return components


class RelationGraph:
    """Undirected "same event" relations between item positions.

    Edge insertion is idempotent. Forbidden pairs (members ejected from a
    cluster and the cluster they left) are silently refused.
    """

    def __init__(self, num_nodes: int) -> None:
        self._num_nodes = num_nodes
        self._edges: set[tuple[int, int]] = set()
        self._forbidden: set[tuple[int, int]] = set()
        self._lock = threading.Lock()

    @property
    def num_nodes(self) -> int:
        return self._num_nodes

    def __len__(self) -> int:
        return len(self._edges)

    def _check(self, node: int) -> None:
        if not 0 <= node < self._num_nodes:
            raise IndexError(f"node {node} out of range")

    def add_edge(self, u: int, v: int) -> bool:
        """Insert an edge; returns True only when the edge is new."""
        self._check(u)
        self._check(v)
        if u == v:
            return False
        edge = _edge(u, v)
        with self._lock:
            if edge in self._forbidden or edge in self._edges:
                return False
            self._edges.add(edge)
            return True

    def add_edges(self, edges: Iterable[tuple[int, int]]) -> int:
        return sum(1 for u, v in edges if self.add_edge(u, v))

    def forbid(self, u: int, v: int) -> None:
        if u == v:
            return
        edge = _edge(u, v)
        with self._lock:
            self._forbidden.add(edge)
            self._edges.discard(edge)

    def is_forbidden(self, u: int, v: int) -> bool:
        return _edge(u, v) in self._forbidden

    def isolate(self, node: int) -> None:
        self._check(node)
        with self._lock:
            self._edges = {e for e in self._edges if node not in e}

    def edges(self) -> set[tuple[int, int]]:
        with self._lock:
            return set(self._edges)

    def connected_components(self) -> list[list[int]]:
        return find_connected_components(self._num_nodes, self.edges())
