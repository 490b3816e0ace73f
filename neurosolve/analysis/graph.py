"""
Dependency graph of the expanded state variables.

Nodes are integer indices into the variable arena of an ExpandedSystem; an
edge ``a -> b`` means that the right-hand side of ``b`` references ``a``.
Adjacency is kept in both directions so components can be found without
back-references between variables.

Deterministic ordering throughout: components are sorted internally by
index and listed by their lowest index.
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from beartype import beartype

from neurosolve.analysis.shapes import ExpandedSystem


@dataclass
class DependencyGraph:
    """
    Directed graph over the variables of an expanded system.

    Attributes
    ----------
    names : list of str
        Variable names; the position is the node index.
    successors : list of set of int
        ``successors[a]`` are the nodes whose right-hand side references ``a``.
    predecessors : list of set of int
        ``predecessors[b]`` are the nodes referenced by ``b``'s right-hand side.
    """

    names: List[str]
    successors: List[set] = field(default_factory=list)
    predecessors: List[set] = field(default_factory=list)

    def __post_init__(self):
        if not self.successors:
            self.successors = [set() for _ in self.names]
        if not self.predecessors:
            self.predecessors = [set() for _ in self.names]

    def __len__(self) -> int:
        return len(self.names)

    def index(self, name: str) -> int:
        return self.names.index(name)

    def add_edge(self, a: int, b: int) -> None:
        """Record that ``b`` depends on ``a``. Self-dependencies are not edges."""
        if a != b:
            self.successors[a].add(b)
            self.predecessors[b].add(a)

    @property
    def edges(self) -> list[tuple[int, int]]:
        return sorted((a, b) for a in range(len(self)) for b in self.successors[a])

    def _nodes(self, nodes: Optional[Iterable[int]]) -> list[int]:
        return sorted(set(range(len(self)) if nodes is None else nodes))

    def weakly_connected_components(self, nodes: Optional[Iterable[int]] = None) -> list[list[int]]:
        """Components of the undirected graph induced by ``nodes`` (all by default)."""
        members = self._nodes(nodes)
        allowed = set(members)
        seen: set[int] = set()
        components = []
        for start in members:
            if start in seen:
                continue
            component = []
            stack = [start]
            seen.add(start)
            while stack:
                node = stack.pop()
                component.append(node)
                for other in self.successors[node] | self.predecessors[node]:
                    if other in allowed and other not in seen:
                        seen.add(other)
                        stack.append(other)
            components.append(sorted(component))
        return components

    def strongly_connected_components(self, nodes: Optional[Iterable[int]] = None) -> list[list[int]]:
        """
        Strongly connected components induced by ``nodes``, by lowest index.

        Tarjan's algorithm over the arena, with an explicit work stack so
        long dependency chains do not hit the recursion limit.
        """
        members = self._nodes(nodes)
        allowed = set(members)
        discovered: Dict[int, int] = {}
        lowlink: Dict[int, int] = {}
        stack: List[int] = []
        on_stack: set[int] = set()
        sccs: List[List[int]] = []

        def visit(node: int) -> Iterator[int]:
            discovered[node] = lowlink[node] = len(discovered)
            stack.append(node)
            on_stack.add(node)
            return iter(sorted(self.successors[node] & allowed))

        for root in members:
            if root in discovered:
                continue
            work = [(root, visit(root))]
            while work:
                node, pending = work[-1]
                for nxt in pending:
                    if nxt not in discovered:
                        work.append((nxt, visit(nxt)))
                        break
                    if nxt in on_stack:
                        lowlink[node] = min(lowlink[node], discovered[nxt])
                else:
                    # all successors done
                    work.pop()
                    if work:
                        parent = work[-1][0]
                        lowlink[parent] = min(lowlink[parent], lowlink[node])
                    if lowlink[node] == discovered[node]:
                        scc = []
                        while True:
                            member = stack.pop()
                            on_stack.discard(member)
                            scc.append(member)
                            if member == node:
                                break
                        sccs.append(sorted(scc))
        return sorted(sccs, key=lambda scc: scc[0])

    def depth_order(self, nodes: Iterable[int]) -> list[int]:
        """
        Order ``nodes`` by dependency depth, then by index.

        The depth of a node is the length of the longest dependency path
        reaching it from a node with no predecessors inside ``nodes``. Nodes
        of one strongly connected component share a depth.
        """
        members = self._nodes(nodes)
        sccs = self.strongly_connected_components(members)
        component_of = {n: c for c, scc in enumerate(sccs) for n in scc}
        edges = {
            (component_of[a], component_of[b])
            for a in members
            for b in self.successors[a]
            if b in component_of and component_of[a] != component_of[b]
        }
        depth = [0] * len(sccs)
        for c in topological_order(len(sccs), edges):
            for a, b in edges:
                if a == c:
                    depth[b] = max(depth[b], depth[c] + 1)
        return sorted(members, key=lambda n: (depth[component_of[n]], n))

    def is_lower_triangular(self, order: Sequence[int]) -> bool:
        """True if every dependency within ``order`` points forward."""
        position = {n: i for i, n in enumerate(order)}
        return all(
            position[a] < position[b]
            for a in order
            for b in self.successors[a]
            if b in position
        )


@beartype
def build_dependency_graph(system: ExpandedSystem) -> DependencyGraph:
    """Build the graph of ``system``: one node per variable, in arena order."""
    graph = DependencyGraph(list(system.names))
    index = {v.symbol: i for i, v in enumerate(system.variables)}
    for b, var in enumerate(system.variables):
        for sym in sorted(var.rhs.free_symbols, key=str):
            a = index.get(sym)
            if a is not None:
                graph.add_edge(a, b)
    return graph


def topological_order(n: int, edges: Iterable[tuple[int, int]]) -> list[int]:
    """
    Topological order of nodes ``0..n-1``, lowest index first among ready nodes.

    Raises
    ------
    ValueError
        If the edges contain a cycle.
    """
    succ: Dict[int, List[int]] = {i: [] for i in range(n)}
    indegree = [0] * n
    for a, b in set(edges):
        succ[a].append(b)
        indegree[b] += 1
    ready = [i for i in range(n) if indegree[i] == 0]
    heapq.heapify(ready)
    order = []
    while ready:
        node = heapq.heappop(ready)
        order.append(node)
        for nxt in succ[node]:
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                heapq.heappush(ready, nxt)
    if len(order) != n:
        raise ValueError("Graph contains a cycle")
    return order
