"""Exception types raised by tidy-kg.

Only conditions the caller must act on are exceptions. A single inferred
relationship that fails validation is logged and counted instead
(see ``ContentRelationshipInference.apply_relationships_to_entities``).
"""


class TidyKGError(Exception):
    """Base class for tidy-kg errors."""


class RelationshipValidationError(TidyKGError, ValueError):
    """A relationship or entity set failed registry validation."""


class EntityNotFoundError(TidyKGError, KeyError):
    """An entity id was not found in the current population."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Entity not found"


class MergeUnavailableError(TidyKGError):
    """Undo or redo was requested on an empty stack."""


class RestoreFailureError(TidyKGError):
    """The restorer collaborator failed during undo or redo.

    The affected record has already been put back on its stack.
    """

    def __init__(self, message: str, record_id: str) -> None:
        super().__init__(message)
        self.record_id = record_id
