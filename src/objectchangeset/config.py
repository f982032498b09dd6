"""
Changeset options and thread-local defaults.

A changeset merges explicitly passed options over the defaults of the thread
that constructs it. Defaults are read once, at construction time.
"""
from dataclasses import dataclass, fields, replace
import threading
from typing import Any, Mapping, Optional, Union


@dataclass(frozen=True)
class ChangesetOptions:
    """Options recognized by a changeset.

    skip_validate: set() stages changes without invoking validators.
                   Explicit validate() calls still run them.
    """
    skip_validate: bool = False


# Accepted spellings for mapping-style options
_OPTION_ALIASES = {
    'skipValidate': 'skip_validate',
}

_default_options_context = threading.local()


def set_default_options(options: ChangesetOptions) -> None:
    """Set the options changesets created on this thread start from."""
    _default_options_context.value = options


def get_default_options() -> ChangesetOptions:
    """Get this thread's default options."""
    return getattr(_default_options_context, 'value', None) or ChangesetOptions()


def reset_default_options() -> None:
    """Restore built-in defaults for this thread. For testing."""
    _default_options_context.value = None


def resolve_options(options: Optional[Union[ChangesetOptions, Mapping[str, Any]]] = None) -> ChangesetOptions:
    """Merge options over the thread defaults.

    Args:
        options: A ChangesetOptions instance (used as is), a mapping of option
                 names to override on top of the defaults, or None.

    Raises:
        TypeError: For unknown option names.
    """
    if isinstance(options, ChangesetOptions):
        return options

    defaults = get_default_options()
    if not options:
        return defaults

    known = {f.name for f in fields(ChangesetOptions)}
    overrides = {}
    for name, value in options.items():
        name = _OPTION_ALIASES.get(name, name)
        if name not in known:
            raise TypeError(f"Unknown changeset option {name!r}. Known: {sorted(known)}")
        overrides[name] = value
    return replace(defaults, **overrides)
