"""Dependency graph construction and load ordering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Hashable, Mapping, TypeVar

from modhost.kernel.logging import DiagnosticsSink

from .manifest import ORDER_LAST_ID, ModInfo
from .outcome import ErrorKind, LoadingProblems, Outcome
from .registry import LoadingEntry, ModRegistry
from .version import VersionRange

N = TypeVar("N", bound=Hashable)


class CycleDetected(Exception, Generic[N]):
    def __init__(self, node: N) -> None:
        super().__init__(f"cycle detected at node {node!r}")
        self.node = node


@dataclass
class DirectedGraph(Generic[N]):
    """Adjacency lists keyed by node; an edge A -> B means A loads after B."""

    edges: dict[N, list[N]] = field(default_factory=dict)

    def add_node(self, node: N) -> None:
        self.edges.setdefault(node, [])

    def add_edge(self, src: N, dst: N) -> None:
        self.add_node(src)
        self.add_node(dst)
        if dst not in self.edges[src]:
            self.edges[src].append(dst)

    def nodes(self) -> list[N]:
        return list(self.edges)


def topological_sort(graph: DirectedGraph[N]) -> list[N]:
    """Order nodes so every edge target precedes its source.

    Depth-first, visiting nodes and edges in insertion order. Raises
    CycleDetected naming a node on the first cycle found.
    """
    done: set[N] = set()
    active: set[N] = set()
    order: list[N] = []
    for root in graph.nodes():
        if root in done:
            continue
        active.add(root)
        stack = [(root, iter(graph.edges[root]))]
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                active.discard(node)
                done.add(node)
                order.append(node)
                continue
            if child in done:
                continue
            if child in active:
                raise CycleDetected(child)
            active.add(child)
            stack.append((child, iter(graph.edges[child])))
    return order


def pin_load_last(entries: list[LoadingEntry]) -> list[LoadingEntry]:
    """Move load-last entries to the tail, keeping relative order on both sides."""
    head = [entry for entry in entries if not entry.load_last]
    tail = [entry for entry in entries if entry.load_last]
    return head + tail


class DependencyResolver:
    def __init__(self, problems: LoadingProblems, logger: DiagnosticsSink) -> None:
        self._problems = problems
        self._logger = logger

    def resolve(self, registry: ModRegistry) -> Outcome[list[LoadingEntry]]:
        """One-shot resolution of every registered entry into a load order.

        On success the registry is cleared. Missing mandatory dependencies and
        cycles are recorded as stage problems and returned as a failure.
        """
        entries = registry.entries()
        index_of: dict[str, int] = {}
        by_index: dict[int, LoadingEntry] = {}
        graph: DirectedGraph[int] = DirectedGraph()
        for position, entry in enumerate(entries, start=1):
            index_of[entry.mod_id] = position
            by_index[position] = entry
            graph.add_node(position)

        missing: list[str] = []
        for entry in entries:
            entry.edges.clear()
            self._link(registry, index_of, graph, entry, entry.info.dependencies, missing, optional=False)
            self._link(registry, index_of, graph, entry, entry.info.optional_dependencies, missing, optional=True)

        if missing:
            self._logger.fatal("Found missing dependencies:")
            for line in missing:
                self._problems.report(ErrorKind.MISSING_DEPENDENCY, line)
                self._logger.event(event="missing_dependency", level="fatal", message=line)
            return Outcome.failure(ErrorKind.MISSING_DEPENDENCY, "Found missing dependencies: " + "; ".join(missing))

        try:
            sorted_indices = topological_sort(graph)
        except CycleDetected as exc:
            mod_id = by_index[exc.node].mod_id
            message = f"Cycle dependency found in sorting graph at mod id: {mod_id}"
            self._problems.report(ErrorKind.CYCLIC_DEPENDENCY, message, mod_id=mod_id)
            self._logger.event(event="dependency_cycle", level="fatal", mod_id=mod_id, message=message)
            return Outcome.failure(ErrorKind.CYCLIC_DEPENDENCY, message, mod_id=mod_id)

        ordered = pin_load_last([by_index[index] for index in sorted_indices])
        registry.clear()
        self._logger.event(event="load_order_resolved", level="info", order=[entry.mod_id for entry in ordered])
        return Outcome.success(ordered)

    def _link(
        self,
        registry: ModRegistry,
        index_of: dict[str, int],
        graph: DirectedGraph[int],
        entry: LoadingEntry,
        dependencies: Mapping[str, VersionRange],
        missing: list[str],
        *,
        optional: bool,
    ) -> None:
        self_info: ModInfo = entry.info
        for dep_id, accepted in dependencies.items():
            if dep_id == ORDER_LAST_ID:
                continue
            target = registry.get(dep_id)
            if target is None or not accepted.matches(target.info.version):
                if optional:
                    continue
                reason = "not installed" if target is None else f"unsupported version: {target.info.version}"
                missing.append(f"{self_info.mod_id} requires {dep_id}({accepted}): {reason}")
                continue
            graph.add_edge(index_of[self_info.mod_id], index_of[dep_id])
            entry.edges.append(dep_id)
