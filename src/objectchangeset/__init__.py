"""
Change-tracking and validation overlay for arbitrary objects.

A changeset stages edits to (possibly deeply nested) properties of a content
object without mutating it, validates each staged edit independently and
asynchronously, and serves merged read-through values.

Key Features:
- Dotted key paths for nested reads and writes ("org.usa.ny")
- Per-key validators with "latest dispatch wins" semantics
- Sync or async validators (async ones run as asyncio tasks)
- Relays: cached nested views that write back through the changeset
- Rollback, snapshot/restore and named event hooks

Quick Start:
    >>> from objectchangeset import new_changeset
    >>>
    >>> def name_validator(ctx):
    ...     return (ctx.new_value and len(ctx.new_value) > 3) or "too short"
    >>>
    >>> changeset = new_changeset({'name': None}, validation_map={'name': name_validator})
    >>> _ = changeset.set('name', 'a')
    >>> changeset.errors
    [{'key': 'name', 'value': 'a', 'validation': 'too short'}]
    >>> _ = changeset.set('name', 'Jamie')
    >>> changeset.changes
    [{'key': 'name', 'value': 'Jamie'}]

Modules:
    - changeset: Changeset orchestrator and new_changeset factory
    - validation_job: Per-key validation scheduling and handles
    - relay: Nested views over object-valued properties
    - paths: Dotted path access and path-indexed trees
    - entries: Change/Err value holders and snapshots
    - events: Named hooks
    - config: Options and thread-local defaults
    - exceptions: Programmer-contract errors
"""

from objectchangeset.changeset import Changeset, new_changeset
from objectchangeset.config import (
    ChangesetOptions,
    get_default_options,
    reset_default_options,
    set_default_options,
)
from objectchangeset.entries import Change, ChangesetSnapshot, Err
from objectchangeset.events import (
    AFTER_ROLLBACK,
    AFTER_VALIDATION,
    BEFORE_VALIDATION,
    PROPERTY_CHANGED,
)
from objectchangeset.exceptions import (
    ChangesetError,
    ErrorContractError,
    KeyPathError,
    RelayDestroyedError,
)
from objectchangeset.paths import get_path, is_object
from objectchangeset.relay import Relay
from objectchangeset.validation_job import (
    ValidationContext,
    ValidationHandle,
    ValidationJob,
    is_valid_result,
)

__all__ = [
    # Changeset
    'Changeset',
    'new_changeset',
    # Configuration
    'ChangesetOptions',
    'get_default_options',
    'set_default_options',
    'reset_default_options',
    # Entries
    'Change',
    'Err',
    'ChangesetSnapshot',
    # Events
    'PROPERTY_CHANGED',
    'BEFORE_VALIDATION',
    'AFTER_VALIDATION',
    'AFTER_ROLLBACK',
    # Exceptions
    'ChangesetError',
    'ErrorContractError',
    'KeyPathError',
    'RelayDestroyedError',
    # Paths
    'get_path',
    'is_object',
    # Relay
    'Relay',
    # Validation
    'ValidationContext',
    'ValidationHandle',
    'ValidationJob',
    'is_valid_result',
]

__version__ = '1.0.0'
__description__ = 'Change-tracking and validation overlay for arbitrary objects'
