"""
Relay: nested view over an object-valued property of a changeset's content.

A Relay lets deep paths be read and written as if they were keys of one flat
object:
- External API: changeset.get('org').get('usa').set('ny', 'foo')
- Internal: changeset.set('org.usa.ny', 'foo') (root change tree)

Relays hold no changes of their own. Reads consult the owning changeset for
staged overrides first; writes always land in the owning changeset.
"""
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional
import logging

from objectchangeset.exceptions import RelayDestroyedError
from objectchangeset.paths import get_path, get_segment, is_object, join_path, split_path

if TYPE_CHECKING:
    from objectchangeset.changeset import Changeset
    from objectchangeset.validation_job import ValidationHandle

logger = logging.getLogger(__name__)


class Relay:
    """Cached proxy over the raw object found at `path` in the content."""

    def __init__(self, changeset: 'Changeset', path: str, content: Any):
        """Initialize Relay.

        Args:
            changeset: The changeset reads and writes delegate to
            path: Full dotted path of the wrapped object
            content: The raw wrapped object
        """
        self._changeset: Optional['Changeset'] = changeset
        self._path = path
        self._content = content
        self._relay_cache: Dict[str, 'Relay'] = {}

    @property
    def path(self) -> str:
        return self._path

    @property
    def content(self) -> Any:
        """The wrapped raw object, bypassing all overlay semantics."""
        return self._content

    @property
    def is_destroyed(self) -> bool:
        return self._changeset is None

    def _owner(self) -> 'Changeset':
        if self._changeset is None:
            raise RelayDestroyedError(self._path)
        return self._changeset

    def get(self, key: str) -> Any:
        """Get a staged override, a nested Relay, or the raw value under key.

        Methods of the wrapped object are returned bound to the wrapped
        object, not to the relay.
        """
        split_path(key)
        first, _, rest = key.partition('.')
        value = self._get_one(first)
        if not rest:
            return value
        if isinstance(value, Relay):
            return value.get(rest)
        return get_path(value, rest)

    def _get_one(self, segment: str) -> Any:
        changeset = self._owner()
        found, value = changeset._override_for(join_path(self._path, segment))
        if found:
            return value

        raw = get_segment(self._content, segment)
        if isinstance(self._content, Mapping) and segment not in self._content:
            # Mapping methods (keys, items...) for names the mapping doesn't hold
            raw = getattr(self._content, segment, None)
        if is_object(raw):
            return self._relay_for(segment, raw)
        return raw

    def set(self, key: str, value: Any) -> 'ValidationHandle':
        """Stage value at this relay's path + key on the owning changeset."""
        split_path(key)
        return self._owner().set(join_path(self._path, key), value)

    def _relay_for(self, segment: str, value: Any) -> 'Relay':
        """Get or create the cached child relay for segment."""
        relay = self._relay_cache.get(segment)
        if relay is not None and relay.content is value:
            return relay
        if relay is not None:
            # Wrapped object was swapped out underneath the cached relay
            relay.destroy()
        relay = Relay(self._owner(), join_path(self._path, segment), value)
        self._relay_cache[segment] = relay
        logger.debug(f"Created relay: path={relay.path!r}")
        return relay

    def rollback(self) -> None:
        """Cascade into child relays, then release them."""
        for relay in self._relay_cache.values():
            relay.rollback()
        self._relay_cache.clear()

    def destroy(self) -> None:
        """Tear down child relays and detach from the changeset."""
        for relay in self._relay_cache.values():
            relay.destroy()
        self._relay_cache.clear()
        self._changeset = None

    def __repr__(self) -> str:
        state = ' destroyed' if self.is_destroyed else ''
        return f"<Relay {self._path!r}{state}>"
