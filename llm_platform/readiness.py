"""
Readiness probes — "X must be usable before Y starts".

CloudFormation only orders resources along declared edges, and some resources
finish creating before their side effects are usable (EFS reports the file
system as created while its mount targets are still coming up). A probe wraps
the construct-level dependable that completes only once the prerequisite is
usable, and records every construct gated on it so the composition layer can
lift those edges into the inspectable dependency graph.
"""
import logging

from constructs import Construct, IDependable

logger = logging.getLogger(__name__)


class ReadinessProbe:
    def __init__(self, name: str, dependable: IDependable) -> None:
        self.name = name
        self.dependable = dependable
        self.gated: list[str] = []

    def gate(self, construct: Construct, label: str | None = None) -> None:
        """Make `construct` wait for this probe; `label` names it in the dependency graph."""
        construct.node.add_dependency(self.dependable)
        label = label or construct.node.path
        if label not in self.gated:
            self.gated.append(label)
        logger.debug(f"[readiness] {label} waits for {self.name}")

    def __repr__(self) -> str:
        return f"ReadinessProbe({self.name!r}, gated={self.gated!r})"
