"""Exception types raised by the editing core."""

from __future__ import annotations


class GraphEditError(Exception):
    """Base class for all graphedit errors."""


class InvariantViolation(GraphEditError, ValueError):
    """A programmer error at the call site; never recovered from."""


class DanglingReferenceError(InvariantViolation):
    """A link references an element that is not in the graph."""


class DuplicateCellError(InvariantViolation):
    """A cell with the same instance id is already in the graph."""


class UnrelatedEndpointError(InvariantViolation):
    """Relation data cannot be re-attached to unrelated endpoints."""


class TypeIdMismatchError(InvariantViolation):
    """Descriptor data does not match the descriptor IRI."""


class NotInAuthoringModeError(GraphEditError, RuntimeError):
    """An authoring operation was requested while the editor is read-only."""


class OperationCancelled(GraphEditError):
    """A cancellation token was triggered before the operation completed."""


class ProviderError(GraphEditError):
    """A data or metadata provider failed in a way the caller must see."""
