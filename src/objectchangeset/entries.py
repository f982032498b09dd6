"""
Value holders stored at the leaves of the change and error trees.

Pure data containers with no logic. Trees are nested plain dicts; any
non-dict node is one of the entries below.
"""
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class Change:
    """A staged value for a single key path."""
    value: Any


@dataclass(frozen=True)
class Err:
    """A value that failed validation plus the validator's payload.

    The payload is opaque: False, a reason string, a list of reasons or any
    structured object the validator returned.
    """
    value: Any
    validation: Any


@dataclass(frozen=True)
class ChangesetSnapshot:
    """Immutable capture of a changeset's change and error trees.

    Trees are copied structurally; staged values themselves are shared,
    not deep-copied.
    """
    changes: Dict
    errors: Dict
