"""
Per-key validation scheduling.

Each validated key owns one ValidationJob. A job runs the key's validator and
records failures on the owning changeset, with "latest dispatch wins"
semantics: every dispatch bumps the job's generation, and an invocation whose
generation is no longer current when it settles is discarded. Superseded work
is not cancelled (validators may not be interruptible); only its outcome is
dropped.

Validators receive a single ValidationContext and may return a value or an
awaitable. Awaitable results run as asyncio tasks and need a running loop;
plain results settle before perform() returns.
"""
import asyncio
from dataclasses import dataclass
import inspect
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Set
import logging

from objectchangeset.paths import join_path

if TYPE_CHECKING:
    from objectchangeset.changeset import Changeset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationContext:
    """Everything a validator gets to look at.

    changes is a snapshot of the staged values (nested plain dict) taken when
    the validation was dispatched.
    """
    key: str
    new_value: Any
    old_value: Any
    changes: Dict[str, Any]
    content: Any


Validator = Callable[[ValidationContext], Any]


def is_valid_result(result: Any) -> bool:
    """True for True and for a one-element sequence holding True."""
    if result is True:
        return True
    return isinstance(result, (list, tuple)) and len(result) == 1 and result[0] is True


def flatten_validation_map(validation_map: Optional[Mapping[str, Any]], prefix: str = '') -> Dict[str, Validator]:
    """Flatten a nested validation map into dotted key -> validator.

    {'org': {'usa': {'ny': fn}}} -> {'org.usa.ny': fn}
    """
    result: Dict[str, Validator] = {}
    for key, entry in (validation_map or {}).items():
        full_key = join_path(prefix, key)
        if isinstance(entry, Mapping):
            result.update(flatten_validation_map(entry, full_key))
        elif callable(entry):
            result[full_key] = entry
        else:
            raise TypeError(f"Validator for {full_key!r} must be callable, got {type(entry).__name__}")
    return result


class ValidationHandle:
    """Awaitable outcome of one dispatched validation.

    Resolves to True/False for an invocation whose outcome was applied, and
    to None for one that was superseded (or never ran a validator because
    validation was skipped).
    """

    __slots__ = ('_task', '_result')

    def __init__(self, task: Optional['asyncio.Future'] = None, result: Any = None):
        self._task = task
        self._result = result

    @classmethod
    def settled(cls, result: Any = None) -> 'ValidationHandle':
        return cls(result=result)

    @classmethod
    def pending(cls, task: 'asyncio.Future') -> 'ValidationHandle':
        return cls(task=task)

    @classmethod
    def gather(cls, handles: Iterable['ValidationHandle']) -> 'ValidationHandle':
        """Join handles; resolves to the list of their results, in order."""
        handles = list(handles)
        tasks = [h._task for h in handles if h._task is not None]
        if not tasks:
            return cls.settled([h._result for h in handles])

        async def _join() -> List[Any]:
            await asyncio.gather(*tasks)
            return [h.result() for h in handles]

        return cls.pending(asyncio.ensure_future(_join()))

    def done(self) -> bool:
        return self._task is None or self._task.done()

    def result(self) -> Any:
        """Return the settled result. Raises if still pending or if it failed."""
        if self._task is not None:
            return self._task.result()
        return self._result

    def __await__(self):
        if self._task is not None:
            return (yield from self._task.__await__())
        return self._result

    def __repr__(self) -> str:
        state = 'pending' if not self.done() else 'settled'
        return f"ValidationHandle({state})"


class ValidationJob:
    """Runs one key's validator with stale-result discard."""

    def __init__(self, key: str, validator: Optional[Validator] = None):
        self.key = key
        self.validator = validator
        self._generation = 0
        # Generation of the live in-flight invocation, None when idle
        self._running_generation: Optional[int] = None
        self._tasks: Set['asyncio.Task'] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        """True while the most recent dispatch is still in flight."""
        return self._running_generation is not None and self._running_generation == self._generation

    def supersede(self) -> None:
        """Mark every in-flight invocation stale without dispatching a new one."""
        self._generation += 1
        self._running_generation = None

    def perform(
        self,
        changeset: 'Changeset',
        new_value: Any,
        old_value: Any,
        changes: Dict[str, Any],
        content: Any,
    ) -> ValidationHandle:
        """Dispatch a validation of new_value, superseding any earlier one.

        Exceptions raised synchronously by the validator propagate to the
        caller. Exceptions from an awaitable result propagate through the
        returned handle unless the invocation was superseded meanwhile.
        """
        self._generation += 1
        generation = self._generation
        self._running_generation = None

        if self.validator is None:
            return ValidationHandle.settled(self._apply(changeset, generation, new_value, True))

        context = ValidationContext(
            key=self.key,
            new_value=new_value,
            old_value=old_value,
            changes=changes,
            content=content,
        )
        result = self.validator(context)

        if not inspect.isawaitable(result):
            return ValidationHandle.settled(self._apply(changeset, generation, new_value, result))

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(result):
                result.close()
            raise RuntimeError(
                f"Validator for {self.key!r} returned an awaitable but no event loop is running"
            ) from None

        task = loop.create_task(self._settle(changeset, generation, new_value, result))
        self._running_generation = generation
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Dispatched async validation: key={self.key!r} generation={generation}")
        return ValidationHandle.pending(task)

    async def _settle(self, changeset: 'Changeset', generation: int, new_value: Any, awaitable: Any) -> Optional[bool]:
        try:
            result = await awaitable
        except Exception as e:
            if generation != self._generation:
                logger.debug(f"Discarded stale validation failure: key={self.key!r} "
                             f"generation={generation} current={self._generation}: {e}")
                return None
            self._running_generation = None
            raise
        return self._apply(changeset, generation, new_value, result)

    def _apply(self, changeset: 'Changeset', generation: int, new_value: Any, result: Any) -> Optional[bool]:
        if generation != self._generation:
            logger.debug(f"Discarded stale validation: key={self.key!r} "
                         f"generation={generation} current={self._generation}")
            return None

        self._running_generation = None
        is_valid = is_valid_result(result)
        logger.debug(f"Validation settled: key={self.key!r} is_valid={is_valid} result={result!r}")
        if not is_valid:
            changeset.add_error(self.key, {'value': new_value, 'validation': result})
        changeset._validation_settled(self.key, is_valid)
        return is_valid
