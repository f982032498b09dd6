"""
Changeset: staged edits and validation errors over an untouched content object.

The changeset owns four pieces of state, all addressed by dotted key paths:
- _changes: change tree (nested dicts, Change leaves)
- _errors: error tree (nested dicts, Err leaves)
- _relay_cache: top-level key -> Relay over object-valued content
- _validation_jobs: key -> ValidationJob

Reads resolve error value -> change value -> content value. Writes stage a
change, clear the key's error and dispatch the key's validator. The content
object is never mutated; committing staged values is the caller's business.
"""
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
import logging

from objectchangeset.config import ChangesetOptions, resolve_options
from objectchangeset.entries import Change, ChangesetSnapshot, Err
from objectchangeset.events import (
    AFTER_ROLLBACK,
    AFTER_VALIDATION,
    BEFORE_VALIDATION,
    PROPERTY_CHANGED,
    EventHooks,
)
from objectchangeset.exceptions import ErrorContractError
from objectchangeset.paths import (
    copy_tree,
    covering_entry_path,
    delete_from_tree,
    entry_at,
    flatten_tree,
    get_path,
    get_segment,
    inflate_tree,
    is_object,
    resolve_entry,
    set_in_tree,
    split_path,
)
from objectchangeset.relay import Relay
from objectchangeset.validation_job import (
    ValidationHandle,
    ValidationJob,
    Validator,
    flatten_validation_map,
)

logger = logging.getLogger(__name__)

CHANGES = 'changes'
ERRORS = 'errors'


class Changeset:
    """
    Change-tracking and validation overlay over an arbitrary content object.

    Lifecycle:
    - Created over a content object with an optional overlay-wide validator
      and an optional (nested) validation map of per-key validators
    - set() stages edits; validate() re-checks current values
    - rollback() discards everything staged; destroy() tears down relays and jobs

    Derived state:
    - is_valid / is_invalid -> error tree empty / non-empty
    - is_pristine / is_dirty -> change tree empty / non-empty
    - is_validating -> any job's latest dispatch still in flight
    """

    def __init__(
        self,
        content: Any,
        validator: Optional[Validator] = None,
        validation_map: Optional[Mapping[str, Any]] = None,
        options: Optional[Union[ChangesetOptions, Mapping[str, Any]]] = None,
    ):
        """
        Initialize Changeset.

        Args:
            content: Backing object. Read through dotted paths, never mutated.
            validator: Used for keys the validation map does not declare.
                       None means such keys are always valid.
            validation_map: Key -> validator, arbitrarily nested
                            ({'org': {'usa': {'ny': fn}}} declares 'org.usa.ny').
            options: ChangesetOptions, or a mapping of option overrides applied
                     on top of the thread's default options.
        """
        self._content = content
        self._validator = validator
        self._validation_map: Dict[str, Validator] = flatten_validation_map(validation_map)
        self._options = resolve_options(options)

        self._changes: Dict[str, Any] = {}
        self._errors: Dict[str, Any] = {}
        self._relay_cache: Dict[str, Relay] = {}
        self._validation_jobs: Dict[str, ValidationJob] = {}
        self._hooks = EventHooks()

        for key in self._validation_map:
            self._job_for(key)

        logger.debug(f"Created changeset over {type(content).__name__} "
                     f"with {len(self._validation_map)} declared validator(s)")

    # ========== DERIVED STATE ==========

    @property
    def data(self) -> Any:
        """The raw content object."""
        return self._content

    @property
    def options(self) -> ChangesetOptions:
        return self._options

    @property
    def changes(self) -> List[Dict[str, Any]]:
        """Staged changes as [{'key': full_path, 'value': value}, ...]."""
        return [{'key': key, 'value': entry.value} for key, entry in flatten_tree(self._changes)]

    @property
    def errors(self) -> List[Dict[str, Any]]:
        """Errors as [{'key': full_path, 'value': value, 'validation': payload}, ...]."""
        return [
            {'key': key, 'value': entry.value, 'validation': entry.validation}
            for key, entry in flatten_tree(self._errors)
        ]

    @property
    def change(self) -> Dict[str, Any]:
        """Staged values as a nested dict: {'org': {'usa': {'ny': 'foo'}}}."""
        return inflate_tree(self._changes, lambda entry: entry.value)

    @property
    def error(self) -> Dict[str, Any]:
        """Errors as a nested dict of {'value': ..., 'validation': ...} leaves."""
        return inflate_tree(self._errors, lambda entry: {'value': entry.value, 'validation': entry.validation})

    @property
    def is_valid(self) -> bool:
        return not self._errors

    @property
    def is_invalid(self) -> bool:
        return not self.is_valid

    @property
    def is_pristine(self) -> bool:
        return not self._changes

    @property
    def is_dirty(self) -> bool:
        return not self.is_pristine

    @property
    def is_validating(self) -> bool:
        return any(job.is_running for job in self._validation_jobs.values())

    # ========== EVENTS ==========

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """Subscribe to 'property_changed', 'before_validation',
        'after_validation' or 'after_rollback'."""
        self._hooks.on(event, callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        self._hooks.off(event, callback)

    def _notify_property_change(self, key: str) -> None:
        self._hooks.trigger(PROPERTY_CHANGED, key)

    def _validation_settled(self, key: str, is_valid: bool) -> None:
        """Called by a ValidationJob once a live invocation settles."""
        self._hooks.trigger(AFTER_VALIDATION, key)

    # ========== READ ==========

    def get(self, path: str) -> Any:
        """Resolved value for path: error value, else change value, else content.

        Object-valued content is returned as a cached Relay so deep paths can
        be navigated and written through the changeset. Use .content on the
        relay (or the data property) for the raw object.
        """
        return self._value_for(path)

    def _value_for(self, path: str, plain: bool = False) -> Any:
        """Resolve path. plain=True never wraps content in a Relay."""
        found, value = self._override_for(path)
        if found:
            return value

        original = get_path(self._content, path)
        if is_object(original) and not plain:
            return self._relay_for_path(path, original)
        return original

    def _override_for(self, path: str) -> Tuple[bool, Any]:
        """Staged value for path from the error tree, then the change tree."""
        found, value = resolve_entry(self._errors, path)
        if found:
            return True, value
        return resolve_entry(self._changes, path)

    def _relay_for_path(self, path: str, original: Any) -> Relay:
        """Get the cached Relay for path, following the relay chain segment by segment."""
        segments = split_path(path)
        first = segments[0]
        root_value = original if len(segments) == 1 else get_segment(self._content, first)
        if not is_object(root_value):
            # Path runs through a non-object (e.g. a list index); nothing to cache on
            return Relay(self, path, original)

        relay = self._relay_for(first, root_value)
        for segment in segments[1:]:
            value = get_segment(relay.content, segment)
            if not is_object(value):
                return Relay(self, path, original)
            relay = relay._relay_for(segment, value)
        return relay

    def _relay_for(self, key: str, value: Any) -> Relay:
        relay = self._relay_cache.get(key)
        if relay is not None and relay.content is value:
            return relay
        if relay is not None:
            relay.destroy()
        relay = Relay(self, key, value)
        self._relay_cache[key] = relay
        logger.debug(f"Created relay: path={key!r}")
        return relay

    # ========== WRITE ==========

    def set(self, path: str, value: Any) -> ValidationHandle:
        """Stage value at path and validate it.

        State changes happen before this method returns:
        1. Any error at path is cleared, and any change or error staged at an
           ancestor of path is dropped
        2. value equal to the content value removes the change at path;
           anything else replaces whatever was staged at or below path
        3. 'property_changed' fires for 'changes' and for path
        4. The key's validator is dispatched (unless options.skip_validate)

        Returns:
            Handle resolving to True/False once this invocation's validation
            settles, or None if it was superseded or validation was skipped.
        """
        split_path(path)
        if isinstance(value, Relay):
            value = value.content

        old_value = get_path(self._content, path)

        errors_changed = delete_from_tree(self._errors, path)
        # A leaf staged at an ancestor gives way to the finer edit
        ancestors = set()
        for tree in (self._changes, self._errors):
            ancestor = covering_entry_path(tree, path)
            if ancestor is not None:
                delete_from_tree(tree, ancestor)
                errors_changed = errors_changed or tree is self._errors
                ancestors.add(ancestor)
        for ancestor in ancestors:
            job = self._validation_jobs.get(ancestor)
            if job is not None:
                job.supersede()
            logger.debug(f"Dropped staged entry at {ancestor!r} for finer edit {path!r}")
            self._notify_property_change(ancestor)

        if errors_changed:
            self._notify_property_change(ERRORS)

        if value == old_value:
            delete_from_tree(self._changes, path)
        else:
            set_in_tree(self._changes, path, Change(value))

        self._notify_property_change(CHANGES)
        self._notify_property_change(path)

        if self._options.skip_validate:
            return ValidationHandle.settled(None)
        return self._dispatch_validation(path, value, old_value)

    def validate(self, path: Optional[str] = None) -> ValidationHandle:
        """Validate current values without staging anything.

        Without path, every key of the validation map is validated
        concurrently and the returned handle resolves to the list of results
        once all have settled. With path, only that key is validated.
        """
        if path is not None:
            return self._validate_key(path)

        if not self._validation_map:
            return ValidationHandle.settled(None)

        # Every key is dispatched before a synchronous validator failure is re-raised
        handles: List[ValidationHandle] = []
        failure: Optional[Exception] = None
        for key in self._validation_map:
            try:
                handles.append(self._validate_key(key))
            except Exception as e:
                logger.debug(f"Validator for {key!r} raised during validate(): {e}")
                if failure is None:
                    failure = e
        if failure is not None:
            raise failure
        return ValidationHandle.gather(handles)

    def _validate_key(self, key: str) -> ValidationHandle:
        new_value = self._value_for(key, plain=True)
        old_value = get_path(self._content, key)
        if delete_from_tree(self._errors, key):
            self._notify_property_change(ERRORS)
            self._notify_property_change(key)
        return self._dispatch_validation(key, new_value, old_value)

    def _job_for(self, key: str) -> ValidationJob:
        job = self._validation_jobs.get(key)
        if job is None:
            job = ValidationJob(key, self._validation_map.get(key, self._validator))
            self._validation_jobs[key] = job
        return job

    def _dispatch_validation(self, key: str, new_value: Any, old_value: Any) -> ValidationHandle:
        job = self._job_for(key)
        self._hooks.trigger(BEFORE_VALIDATION, key)
        return job.perform(self, new_value, old_value, self.change, self._content)

    # ========== ERRORS ==========

    def add_error(self, path: str, error: Any) -> Any:
        """Record an error at path, overwriting any previous one.

        Args:
            path: Key path the error belongs to
            error: An Err, a mapping with both 'value' and 'validation', or a
                   bare validation payload (value taken from get(path)).

        Returns:
            The error argument, unchanged.

        Raises:
            ErrorContractError: If a mapping lacks 'value' or 'validation'.
        """
        if isinstance(error, Err):
            new_error = error
        elif isinstance(error, Mapping):
            if 'value' not in error:
                raise ErrorContractError(path, 'value')
            if 'validation' not in error:
                raise ErrorContractError(path, 'validation')
            new_error = Err(error['value'], error['validation'])
        else:
            new_error = Err(self._value_for(path, plain=True), error)

        set_in_tree(self._errors, path, new_error)
        self._notify_property_change(ERRORS)
        self._notify_property_change(path)
        return error

    def push_errors(self, path: str, *payloads: Any) -> Err:
        """Append payloads to the validation payload of the error at path.

        A scalar existing payload becomes a one-element list first. Without an
        existing error, records a new one with the payloads as a list.
        """
        existing = entry_at(self._errors, path)
        if existing is None:
            value = self._value_for(path, plain=True)
            validation: List[Any] = []
        else:
            value = existing.value
            prior = existing.validation
            validation = list(prior) if isinstance(prior, (list, tuple)) else [prior]
        validation.extend(payloads)

        new_error = Err(value, validation)
        set_in_tree(self._errors, path, new_error)
        self._notify_property_change(ERRORS)
        self._notify_property_change(path)
        return new_error

    # ========== ROLLBACK / SNAPSHOT ==========

    def _rollback_keys(self) -> List[str]:
        """Top-level and full keys present in either tree, without duplicates."""
        keys: List[str] = []
        for tree in (self._changes, self._errors):
            keys.extend(tree.keys())
            keys.extend(key for key, _ in flatten_tree(tree))
        return list(dict.fromkeys(keys))

    def _supersede_validations(self) -> None:
        for job in self._validation_jobs.values():
            job.supersede()

    def rollback(self) -> 'Changeset':
        """Discard all staged changes and errors.

        In-flight validations are superseded, so they settle without touching
        the cleared trees.
        """
        for relay in self._relay_cache.values():
            relay.rollback()

        keys = self._rollback_keys()

        self._supersede_validations()
        self._relay_cache = {}
        self._changes = {}
        self._errors = {}

        self._notify_property_change(CHANGES)
        self._notify_property_change(ERRORS)
        for key in keys:
            self._notify_property_change(key)

        logger.debug(f"Rolled back changeset ({len(keys)} key(s) notified)")
        self._hooks.trigger(AFTER_ROLLBACK)
        return self

    def snapshot(self) -> ChangesetSnapshot:
        """Capture the change and error trees."""
        return ChangesetSnapshot(changes=copy_tree(self._changes), errors=copy_tree(self._errors))

    def restore(self, snapshot: ChangesetSnapshot) -> 'Changeset':
        """Put back the trees captured by snapshot().

        In-flight validations are superseded.
        """
        keys = self._rollback_keys()

        self._supersede_validations()
        self._changes = copy_tree(snapshot.changes)
        self._errors = copy_tree(snapshot.errors)
        keys.extend(self._rollback_keys())

        self._notify_property_change(CHANGES)
        self._notify_property_change(ERRORS)
        for key in dict.fromkeys(keys):
            self._notify_property_change(key)
        return self

    # ========== TEARDOWN ==========

    def destroy(self) -> None:
        """Tear down every cached relay and release every validation job."""
        for relay in self._relay_cache.values():
            relay.destroy()
        self._relay_cache = {}

        self._supersede_validations()
        self._validation_jobs.clear()
        logger.debug("Destroyed changeset")

    def __str__(self) -> str:
        return f"changeset:{self._content}"

    def __repr__(self) -> str:
        return f"<Changeset dirty={self.is_dirty} valid={self.is_valid} content={self._content!r}>"


def new_changeset(
    content: Any,
    validator: Optional[Validator] = None,
    validation_map: Optional[Mapping[str, Any]] = None,
    options: Optional[Union[ChangesetOptions, Mapping[str, Any]]] = None,
) -> Changeset:
    """Create a Changeset over content. See Changeset.__init__ for arguments."""
    return Changeset(content, validator, validation_map, options)
