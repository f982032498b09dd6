"""
Dotted key-path utilities.

Two concerns live here:

- Content access: resolving "org.usa.ny" against an arbitrary backing
  object by repeated single-level lookup (mapping item, sequence index or
  attribute).
- Path-indexed trees: the change and error trees are nested plain dicts whose
  leaves are Change/Err entries. Writing at a path replaces the subtree that
  was there; deleting prunes containers left empty.
"""
from dataclasses import is_dataclass
import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from objectchangeset.entries import Change, Err
from objectchangeset.exceptions import KeyPathError


_SCALAR_TYPES = (str, bytes, bytearray, int, float, complex, bool)
_COLLECTION_TYPES = (list, tuple, set, frozenset)


def split_path(path: str) -> List[str]:
    """Split a dotted key path into its segments."""
    if not isinstance(path, str) or not path:
        raise KeyPathError(str(path), "path must be a non-empty string")
    segments = path.split('.')
    if any(not segment for segment in segments):
        raise KeyPathError(path, "path contains an empty segment")
    return segments


def join_path(prefix: str, key: str) -> str:
    return f'{prefix}.{key}' if prefix else key


def is_object(value: Any) -> bool:
    """True for values a changeset wraps in a Relay instead of returning raw.

    Mappings, dataclass instances and plain instances qualify. Scalars,
    None, ordinary collections, callables, classes and modules do not.
    """
    if value is None or isinstance(value, _SCALAR_TYPES + _COLLECTION_TYPES):
        return False
    if isinstance(value, Mapping):
        return True
    if isinstance(value, type) or inspect.ismodule(value) or callable(value):
        return False
    if is_dataclass(value):
        return True
    return hasattr(value, '__dict__')


def get_segment(obj: Any, segment: str) -> Any:
    """Single-level lookup: mapping item, sequence index or attribute."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(segment)
    if isinstance(obj, Sequence) and not isinstance(obj, _SCALAR_TYPES):
        if segment.isdigit() and int(segment) < len(obj):
            return obj[int(segment)]
        return None
    return getattr(obj, segment, None)


def get_path(obj: Any, path: str) -> Any:
    """Resolve a dotted path against obj. Missing segments resolve to None."""
    for segment in split_path(path):
        obj = get_segment(obj, segment)
        if obj is None:
            return None
    return obj


# ========== PATH-INDEXED TREES ==========

def is_entry(node: Any) -> bool:
    return isinstance(node, (Change, Err))


def set_in_tree(tree: Dict[str, Any], path: str, entry: Any) -> None:
    """Write entry at path, replacing whatever subtree existed there.

    Intermediate segments that hold a leaf entry are replaced by containers.
    """
    segments = split_path(path)
    node = tree
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[segments[-1]] = entry


def delete_from_tree(tree: Dict[str, Any], path: str) -> bool:
    """Delete the node at path (leaf or subtree). Returns True if removed."""
    segments = split_path(path)
    parents: List[Tuple[Dict[str, Any], str]] = []
    node = tree
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            return False
        parents.append((node, segment))
        node = child

    if segments[-1] not in node:
        return False
    del node[segments[-1]]

    # Prune containers emptied by the delete
    for parent, segment in reversed(parents):
        if parent[segment]:
            break
        del parent[segment]
    return True


def find_entry(tree: Dict[str, Any], path: str) -> Tuple[Optional[Any], List[str]]:
    """Find the entry governing path.

    Returns (entry, remainder): entry is the leaf at path or at its nearest
    ancestor, remainder the segments below that entry. (None, []) when no
    entry covers the path.
    """
    segments = split_path(path)
    node: Any = tree
    for index, segment in enumerate(segments):
        if not isinstance(node, dict) or segment not in node:
            return None, []
        node = node[segment]
        if is_entry(node):
            return node, segments[index + 1:]
    return None, []


def covering_entry_path(tree: Dict[str, Any], path: str) -> Optional[str]:
    """Path of the leaf entry held by a strict ancestor of path, if any."""
    entry, remainder = find_entry(tree, path)
    if entry is None or not remainder:
        return None
    return '.'.join(split_path(path)[:-len(remainder)])


def entry_at(tree: Dict[str, Any], path: str) -> Optional[Any]:
    """Return the leaf entry stored exactly at path, if any."""
    entry, remainder = find_entry(tree, path)
    return entry if entry is not None and not remainder else None


def resolve_entry(tree: Dict[str, Any], path: str) -> Tuple[bool, Any]:
    """Resolve path through the tree. Returns (found, value).

    When an ancestor holds the entry, the remainder is read from inside the
    staged value.
    """
    entry, remainder = find_entry(tree, path)
    if entry is None:
        return False, None
    if not remainder:
        return True, entry.value
    return True, get_path(entry.value, '.'.join(remainder))


def flatten_tree(tree: Dict[str, Any], prefix: str = '') -> List[Tuple[str, Any]]:
    """Pre-order (full_path, entry) pairs."""
    result: List[Tuple[str, Any]] = []
    for key, node in tree.items():
        full_path = join_path(prefix, key)
        if isinstance(node, dict):
            result.extend(flatten_tree(node, full_path))
        else:
            result.append((full_path, node))
    return result


def inflate_tree(tree: Dict[str, Any], transform: Callable[[Any], Any]) -> Dict[str, Any]:
    """Nested dict mirroring tree with each entry passed through transform."""
    return {
        key: inflate_tree(node, transform) if isinstance(node, dict) else transform(node)
        for key, node in tree.items()
    }


def copy_tree(tree: Dict[str, Any]) -> Dict[str, Any]:
    """Structural copy. Entries are immutable and shared."""
    return inflate_tree(tree, lambda entry: entry)
