# Overview: Error taxonomy shared by the ledger, workflow and allocation services.

"""
Every failure a workflow can report is one of these classes. Routes map them to
HTTP responses through `status_code`; services raise them inside a transaction
that is always rolled back before the error reaches the caller.

StaleState is internal to the allocation layer: it is retried and converted to
InsufficientStock (bulk allocation) or StateConflict (explicit units) when the
retries run out.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for errors surfaced by inventory operations."""

    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": type(self).__name__}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(InventoryError):
    """Missing or invalid input, or an unknown/inactive reference."""

    status_code = 400


class NotFoundError(InventoryError):
    """Workflow record, unit or material does not exist in the caller's scope."""

    status_code = 404


class DuplicateIdentity(InventoryError):
    """Serial number or MAC id already belongs to an active unit."""

    status_code = 409


class InsufficientStock(InventoryError):
    """Fewer units available than requested, after allocation retries."""

    status_code = 409


class StaleState(InventoryError):
    """A unit no longer matches the state a transition expected."""

    status_code = 409


class StateConflict(InventoryError):
    """Workflow record is in a status that does not allow the operation."""

    status_code = 409
