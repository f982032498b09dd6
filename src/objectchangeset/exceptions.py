"""
Exception hierarchy for changeset misuse.

Validation failures are data (recorded in the error tree) and never raised.
The exceptions below signal programmer-contract violations only.
"""
from dataclasses import dataclass


class ChangesetError(Exception):
    """Base exception class for changeset errors."""
    pass


@dataclass
class KeyPathError(ChangesetError):
    """Raised for malformed key paths (empty path or empty segment)."""
    path: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid key path {self.path!r}: {self.reason}"


@dataclass
class ErrorContractError(ChangesetError):
    """Raised when add_error() receives a structured error missing a field."""
    path: str
    missing: str

    def __str__(self) -> str:
        return f"Error for {self.path!r} must have {self.missing}."


@dataclass
class RelayDestroyedError(ChangesetError):
    """Raised when a torn-down relay is read from or written to."""
    path: str

    def __str__(self) -> str:
        return f"Relay for {self.path!r} has been destroyed"
