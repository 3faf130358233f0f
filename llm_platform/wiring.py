"""
Stack wiring — resolves consumer inputs against registered producer outputs
and derives build-order dependencies from what was consumed.

    wiring = Wiring()
    wiring.register("network", network_stack, network_stack.outputs)
    vpc = wiring.output("data", "network", "vpc")          # records network → data
    data_stack = DataStack(..., inputs=DataInputs(vpc=vpc, ...))
    wiring.register("data", data_stack, data_stack.outputs)  # data.add_dependency(network)

Because every edge is recorded at the moment a value crosses a stack
boundary, a consumer can never reference a producer without also depending
on it. Readiness probes consumed by a stack are lifted into the same graph so
"mount targets before service" is inspectable without synthesizing.
"""
import logging
from collections import defaultdict, deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import Any

import aws_cdk as cdk

from llm_platform.contracts import StackOutputs
from llm_platform.errors import DependencyCycleError, MissingStackInputError, SynthesisError
from llm_platform.readiness import ReadinessProbe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    producer: str
    consumer: str
    names: tuple[str, ...]


class DependencyGraph:
    """Directed graph; an edge A → B means A must exist before B."""

    def __init__(self) -> None:
        self._kinds: dict[str, str] = {}
        self._edges: dict[tuple[str, str], set[str]] = defaultdict(set)

    def add_node(self, name: str, kind: str = "stack") -> None:
        self._kinds.setdefault(name, kind)

    def add_edge(self, producer: str, consumer: str, names: Iterable[str] = ()) -> None:
        if producer == consumer:
            raise DependencyCycleError(f"'{producer}' cannot depend on itself")
        self.add_node(producer)
        self.add_node(consumer)
        self._edges[(producer, consumer)].update(names)

    @property
    def nodes(self) -> list[str]:
        return sorted(self._kinds)

    def kind(self, name: str) -> str:
        return self._kinds[name]

    def edges(self) -> list[Edge]:
        return [
            Edge(producer, consumer, tuple(sorted(names)))
            for (producer, consumer), names in sorted(self._edges.items())
        ]

    def predecessors(self, name: str) -> list[str]:
        return sorted(p for (p, c) in self._edges if c == name)

    def successors(self, name: str) -> list[str]:
        return sorted(c for (p, c) in self._edges if p == name)

    def has_path(self, source: str, target: str) -> bool:
        if source not in self._kinds or target not in self._kinds:
            return False
        seen = {source}
        queue = deque([source])
        while queue:
            current = queue.popleft()
            if current == target:
                return True
            for nxt in self.successors(current):
                if nxt not in seen:
                    seen.add(nxt)
                    queue.append(nxt)
        return False

    def order(self) -> list[str]:
        """Deterministic build order; raises DependencyCycleError on a cycle."""
        sorter = TopologicalSorter({name: set(self.predecessors(name)) for name in self.nodes})
        try:
            sorter.prepare()
        except CycleError as exc:
            raise DependencyCycleError(f"Dependency cycle: {' → '.join(exc.args[1])}") from exc
        ordered: list[str] = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready())
            ordered.extend(ready)
            sorter.done(*ready)
        return ordered

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [{"name": n, "kind": self._kinds[n]} for n in self.nodes],
            "edges": [
                {"from": e.producer, "to": e.consumer, "names": list(e.names)}
                for e in self.edges()
            ],
        }


class Wiring:
    def __init__(self, graph: DependencyGraph | None = None) -> None:
        self.graph = graph or DependencyGraph()
        self._stacks: dict[str, cdk.Stack] = {}
        self._outputs: dict[str, StackOutputs] = {}
        self._pending: dict[str, dict[str, set[str]]] = defaultdict(lambda: defaultdict(set))
        self._probes: dict[str, list[tuple[str, ReadinessProbe]]] = defaultdict(list)

    # ── Producers ────────────────────────────────────────────────────────────

    def register(self, role: str, stack: cdk.Stack, outputs: StackOutputs) -> StackOutputs:
        """Register a built stack and apply every dependency its inputs implied."""
        if role in self._stacks:
            raise SynthesisError(f"Stack role '{role}' is registered twice")

        self._stacks[role] = stack
        self._outputs[role] = outputs
        self.graph.add_node(role)

        for producer, names in sorted(self._pending.pop(role, {}).items()):
            stack.add_dependency(self._stacks[producer])
            self.graph.add_edge(producer, role, names)
            logger.debug(f"[wiring] {producer} → {role}: {', '.join(sorted(names))}")

        for producer, probe in self._probes.pop(role, []):
            self.graph.add_node(probe.name, kind="probe")
            self.graph.add_edge(producer, probe.name)
            for label in probe.gated:
                self.graph.add_node(label, kind="resource")
                self.graph.add_edge(probe.name, label)

        logger.info(f"[wiring] registered {role} ({stack.stack_name})")
        return outputs

    def outputs_of(self, role: str) -> StackOutputs:
        return self._outputs[role]

    # ── Consumers ────────────────────────────────────────────────────────────

    def output(self, consumer: str, producer: str, name: str) -> Any:
        """Resolve one exported name of `producer` on behalf of `consumer`."""
        if consumer in self._stacks:
            raise SynthesisError(f"'{consumer}' is already built; it cannot consume more inputs")
        if producer not in self._outputs:
            raise MissingStackInputError(consumer, producer, name, f"stack '{producer}' has not been built")
        try:
            value = self._outputs[producer].lookup(name)
        except KeyError:
            raise MissingStackInputError(
                consumer, producer, name, f"'{producer}' does not export it"
            ) from None

        self._pending[consumer][producer].add(name)
        if isinstance(value, ReadinessProbe):
            self._probes[consumer].append((producer, value))
        return value

    def outputs(self, consumer: str, producer: str, attr: str, keys: Iterable[str]) -> Mapping[str, Any]:
        """Resolve a keyed subset of a mapping output, e.g. security_groups.{alb,ecs}."""
        return {key: self.output(consumer, producer, f"{attr}.{key}") for key in keys}

    def declared_inputs(self, consumer: str, producer: str) -> frozenset[str]:
        for edge in self.graph.edges():
            if edge.producer == producer and edge.consumer == consumer:
                return frozenset(edge.names)
        return frozenset()
