"""
Structural errors raised while composing the platform.

Everything here is raised during synthesis, before any call to AWS.
Provisioning errors belong to CloudFormation and are never wrapped.
"""


class SynthesisError(Exception):
    """Base class for errors that abort synthesis."""


class TopologyError(SynthesisError, ValueError):
    """The declared topology is inconsistent (bad CIDR, forward reference, ...)."""


class MissingStackInputError(SynthesisError):
    """A consuming stack asked for an output its producer does not export."""

    def __init__(self, consumer: str, producer: str | None, name: str, reason: str = "") -> None:
        self.consumer = consumer
        self.producer = producer
        self.name = name
        message = f"{consumer} requires '{producer}.{name}'" if producer else f"{consumer} requires '{name}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DependencyCycleError(SynthesisError):
    """The stack dependency graph contains a cycle."""


class UngatedMountError(SynthesisError):
    """A service mounts the shared filesystem without waiting for its mount targets."""
