"""Exceptions raised by the catalog engine and its stores."""


class CatalogError(Exception):
    """Base class for catalog errors."""


class PreconditionViolation(CatalogError):
    """Operation requested on a state it cannot handle (e.g. re-vote with no votes)."""


class UnknownIdentity(CatalogError):
    """Username cannot be resolved against the identity store."""

    def __init__(self, username):
        super().__init__(f"Unknown user: {username}")
        self.username = username


class StoreFailure(CatalogError):
    """Failure surfaced by a backing store."""


class NotFoundError(StoreFailure):
    """Record that should exist is missing."""


class ConflictError(StoreFailure):
    """Record was modified concurrently; the caller may retry."""


class AlreadyShelved(CatalogError):
    """Book is already on the shelf it was asked to move to."""
