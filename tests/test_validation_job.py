"""
Tests for per-key validation scheduling.

Tests cover:
- Result interpretation (is_valid_result)
- Validation map flattening
- Latest-dispatch-wins for async validators
- Stale failures, rollback during flight, is_validating
- Fan-out/join of validate()
"""
import asyncio

import pytest

from objectchangeset import ValidationHandle, is_valid_result, new_changeset
from objectchangeset.validation_job import flatten_validation_map


class GatedValidator:
    """Async validator whose invocations finish only when released.

    Values starting with 'good' are valid, anything else fails with 'bad value'.
    Values starting with 'raise' make the validator raise.
    """

    def __init__(self):
        self.gates = {}

    def gate(self, value):
        if value not in self.gates:
            self.gates[value] = asyncio.Event()
        return self.gates[value]

    def release(self, value):
        self.gate(value).set()

    async def __call__(self, ctx):
        await self.gate(ctx.new_value).wait()
        if str(ctx.new_value).startswith('raise'):
            raise ValueError(ctx.new_value)
        return str(ctx.new_value).startswith('good') or 'bad value'


class TestIsValidResult:
    """Test validator result interpretation."""

    def test_true(self):
        assert is_valid_result(True)

    def test_single_true_shorthand(self):
        assert is_valid_result([True])
        assert is_valid_result((True,))

    @pytest.mark.parametrize('result', [False, None, 1, 'ok', [], [True, True], [1], {'valid': True}])
    def test_everything_else_is_invalid(self, result):
        assert not is_valid_result(result)


class TestFlattenValidationMap:
    """Test nested validation map flattening."""

    def test_nested(self):
        fn = lambda ctx: True
        assert flatten_validation_map({'a': fn, 'org': {'usa': {'ny': fn}}}) == {'a': fn, 'org.usa.ny': fn}

    def test_none(self):
        assert flatten_validation_map(None) == {}


class TestAsyncValidation:
    """Async validators run as tasks with stale-result discard."""

    def test_async_invalid_result(self):
        asyncio.run(self._async_invalid_result())

    async def _async_invalid_result(self):
        async def validator(ctx):
            return 'nope'

        changeset = new_changeset({}, validator=validator)
        handle = changeset.set('key', 'value')
        assert not handle.done()
        assert changeset.changes == [{'key': 'key', 'value': 'value'}]
        assert changeset.errors == []

        assert await handle is False
        assert changeset.errors == [{'key': 'key', 'value': 'value', 'validation': 'nope'}]

    def test_latest_dispatch_wins_when_stale_settles_last(self):
        asyncio.run(self._latest_dispatch_wins_when_stale_settles_last())

    async def _latest_dispatch_wins_when_stale_settles_last(self):
        validator = GatedValidator()
        changeset = new_changeset({'key': None}, validator=validator)

        first = changeset.set('key', 'bad')
        second = changeset.set('key', 'good')

        validator.release('good')
        assert await second is True
        validator.release('bad')
        assert await first is None

        assert changeset.errors == []
        assert changeset.changes == [{'key': 'key', 'value': 'good'}]

    def test_latest_dispatch_wins_when_stale_settles_first(self):
        asyncio.run(self._latest_dispatch_wins_when_stale_settles_first())

    async def _latest_dispatch_wins_when_stale_settles_first(self):
        validator = GatedValidator()
        changeset = new_changeset({'key': None}, validator=validator)

        first = changeset.set('key', 'good')
        second = changeset.set('key', 'bad')

        validator.release('good')
        assert await first is None
        assert changeset.errors == []

        validator.release('bad')
        assert await second is False
        assert changeset.errors == [{'key': 'key', 'value': 'bad', 'validation': 'bad value'}]

    def test_keys_are_independent(self):
        asyncio.run(self._keys_are_independent())

    async def _keys_are_independent(self):
        validator = GatedValidator()
        changeset = new_changeset({}, validator=validator)

        a = changeset.set('a', 'bad-a')
        b = changeset.set('b', 'bad-b')
        validator.release('bad-b')
        validator.release('bad-a')
        assert await a is False
        assert await b is False
        assert sorted(e['key'] for e in changeset.errors) == ['a', 'b']

    def test_is_validating(self):
        asyncio.run(self._is_validating())

    async def _is_validating(self):
        validator = GatedValidator()
        changeset = new_changeset({}, validator=validator)

        stale = changeset.set('key', 'bad')
        live = changeset.set('key', 'good')
        assert changeset.is_validating

        validator.release('good')
        await live
        assert not changeset.is_validating

        validator.release('bad')
        await stale
        assert not changeset.is_validating

    def test_stale_failure_is_suppressed(self):
        asyncio.run(self._stale_failure_is_suppressed())

    async def _stale_failure_is_suppressed(self):
        validator = GatedValidator()
        changeset = new_changeset({}, validator=validator)

        stale = changeset.set('key', 'raise-me')
        live = changeset.set('key', 'good')
        validator.release('raise-me')
        assert await stale is None

        validator.release('good')
        assert await live is True
        assert changeset.is_valid

    def test_live_failure_propagates(self):
        asyncio.run(self._live_failure_propagates())

    async def _live_failure_propagates(self):
        validator = GatedValidator()
        changeset = new_changeset({}, validator=validator)

        handle = changeset.set('key', 'raise-me')
        validator.release('raise-me')
        with pytest.raises(ValueError):
            await handle
        assert not changeset.is_validating
        assert changeset.changes == [{'key': 'key', 'value': 'raise-me'}]

    def test_rollback_discards_in_flight_outcome(self):
        asyncio.run(self._rollback_discards_in_flight_outcome())

    async def _rollback_discards_in_flight_outcome(self):
        validator = GatedValidator()
        changeset = new_changeset({}, validator=validator)

        handle = changeset.set('key', 'bad')
        changeset.rollback()
        assert not changeset.is_validating

        validator.release('bad')
        assert await handle is None
        assert changeset.errors == []
        assert changeset.changes == []

    def test_after_validation_fires_for_live_outcome_only(self):
        asyncio.run(self._after_validation_fires_for_live_outcome_only())

    async def _after_validation_fires_for_live_outcome_only(self):
        validator = GatedValidator()
        changeset = new_changeset({}, validator=validator)
        settled = []
        changeset.on('after_validation', settled.append)

        stale = changeset.set('key', 'bad')
        live = changeset.set('key', 'good')
        validator.release('bad')
        validator.release('good')
        await stale
        await live
        assert settled == ['key']


class TestValidateAll:
    """validate() fans out over declared keys and joins."""

    def test_waits_for_all_keys(self):
        asyncio.run(self._waits_for_all_keys())

    async def _waits_for_all_keys(self):
        validator = GatedValidator()
        changeset = new_changeset(
            {'a': 'bad-a', 'b': 'good-b', 'c': 'bad-c'},
            validation_map={'a': validator, 'b': validator, 'c': validator},
        )

        handle = changeset.validate()
        validator.release('bad-c')
        validator.release('good-b')
        await asyncio.sleep(0)
        assert not handle.done()

        validator.release('bad-a')
        assert await handle == [False, True, False]
        assert [e['key'] for e in changeset.errors] == ['c', 'a']
        assert changeset.is_pristine

    def test_mixed_sync_and_async(self):
        asyncio.run(self._mixed_sync_and_async())

    async def _mixed_sync_and_async(self):
        async def slow(ctx):
            await asyncio.sleep(0)
            return 'slow failure'

        changeset = new_changeset(
            {'fast': 1, 'slow': 2},
            validation_map={'fast': lambda ctx: True, 'slow': slow},
        )
        assert await changeset.validate() == [True, False]
        assert changeset.errors == [{'key': 'slow', 'value': 2, 'validation': 'slow failure'}]

    def test_validate_supersedes_pending_set(self):
        asyncio.run(self._validate_supersedes_pending_set())

    async def _validate_supersedes_pending_set(self):
        validator = GatedValidator()
        changeset = new_changeset({'key': 'good'}, validation_map={'key': validator})

        staged = changeset.set('key', 'bad')
        # validate() re-checks the staged value
        checked = changeset.validate('key')
        validator.release('bad')
        assert await staged is None
        assert await checked is False
        assert changeset.errors == [{'key': 'key', 'value': 'bad', 'validation': 'bad value'}]
        assert changeset.changes == [{'key': 'key', 'value': 'bad'}]


class TestValidationHandle:
    """Test the awaitable handle itself."""

    def test_settled_handle_is_awaitable(self):
        asyncio.run(self._settled_handle_is_awaitable())

    async def _settled_handle_is_awaitable(self):
        assert await ValidationHandle.settled(True) is True

    def test_settled_result(self):
        handle = ValidationHandle.settled(False)
        assert handle.done()
        assert handle.result() is False

    def test_gather_of_settled_handles(self):
        handle = ValidationHandle.gather([ValidationHandle.settled(True), ValidationHandle.settled(None)])
        assert handle.result() == [True, None]

    def test_async_validator_without_loop(self):
        async def validator(ctx):
            return True

        changeset = new_changeset({}, validator=validator)
        with pytest.raises(RuntimeError):
            changeset.set('key', 1)
        assert changeset.changes == [{'key': 'key', 'value': 1}]
