"""Exceptions raised by the orchestration core."""


class PreconditionError(ValueError):
    """A batch was rejected before any run was created."""


class ReferenceNotFound(PreconditionError):
    """The reference asset could not be resolved from the product store."""


class RunNotFound(KeyError):
    """No run with the given id is registered."""


class ProviderTransportError(Exception):
    """The network layer failed before a provider produced any response.

    Fatal to the worker that hit it, and through the pool to the run.
    """


class JobCancelled(Exception):
    """An in-flight job was abandoned because its run was cancelled."""
