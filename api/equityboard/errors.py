"""
Exception hierarchy shared by the core modules.

Every error carries a human readable message plus an optional ``details``
mapping. ``main.py`` maps each class onto an HTTP status code.
"""

from typing import Optional


class EquityBoardError(Exception):
    """Base exception for all service errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidInput(EquityBoardError):
    """Raised when input is malformed. Nothing is mutated."""

    status_code = 400


class Forbidden(EquityBoardError):
    """Raised when the acting identity is not the owner or the assigned signer."""

    status_code = 403


class NotFound(EquityBoardError):
    """Raised when an entity is absent or not visible to the caller."""

    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        super().__init__(f"{entity} not found", {"entity": entity, "id": entity_id})


class Conflict(EquityBoardError):
    """Raised when a state transition's precondition does not hold."""

    status_code = 409


class DependencyError(EquityBoardError):
    """Raised when the blob store or the PDF compositor fails."""

    status_code = 502


class StorageError(DependencyError):
    """Blob store call failed."""


class BlobNotFound(StorageError):
    """Blob store has no object at the requested key."""

    def __init__(self, key: str):
        super().__init__(f"stored file missing: {key}", {"key": key})


class CompositionError(DependencyError):
    """The signature page could not be composed onto the document."""


class ArtifactSkipped(EquityBoardError):
    """Signed-artifact generation was not applicable for this document."""

    status_code = 409
