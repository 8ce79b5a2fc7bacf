import asyncio
import contextlib
from datetime import timedelta
from types import MethodType

import pytest

from tempora import ManualClock, ServiceProvider
from tempora.binder import StepBinder, serialize_call
from tempora.clock import to_epoch_ms
from tempora.contracts import SuspensionSignal
from tempora.errors import ActivityFailedError
from tempora.persistence import InMemoryWorkflowRepository, RecordState
from tempora.registry import build_schema
from tempora.serialization import digest, dumps
from tests.fixtures.workflows import Ledger, LedgerWorkflow


def _bind(workflow_type, clock=None):
    """Build and bind a workflow instance the way the runner does."""
    clock = clock or ManualClock()
    repo = InMemoryWorkflowRepository(clock)
    ledger = Ledger()
    scope = ServiceProvider()
    scope.add(Ledger, ledger)
    suspension = SuspensionSignal()
    instance = workflow_type(
        input=None,
        eta=clock.utc_now,
        id="wf-1",
        current_time=clock.utc_now,
        engine=None,
    )
    binder = StepBinder(repo, scope, suspension)
    for descriptor in build_schema(workflow_type).activities:
        func = getattr(workflow_type, descriptor.name)
        setattr(instance, descriptor.name, MethodType(binder.bind(descriptor, func), instance))
    return instance, repo, ledger, suspension, clock


@pytest.mark.asyncio
async def test_same_call_at_same_time_runs_body_once():
    wf, repo, ledger, _, clock = _bind(LedgerWorkflow)
    start = wf.current_time

    first = await wf.record("a")
    wf.current_time = start
    second = await wf.record("a")

    assert first == {"value": "a", "n": 1}
    assert second == {"value": "a", "n": 1}
    assert ledger.calls == ["a"]
    steps = await repo.list_steps("wf-1")
    assert [s.id for s in steps] == [f'wf-1(["a"],{to_epoch_ms(start)})']
    assert steps[0].state is RecordState.DONE


@pytest.mark.asyncio
async def test_same_call_at_later_time_runs_again():
    wf, _, ledger, _, clock = _bind(LedgerWorkflow)

    await wf.record("a")
    clock.advance(timedelta(seconds=1))
    wf.current_time = clock.utc_now
    result = await wf.record("a")

    assert result == {"value": "a", "n": 2}
    assert ledger.calls == ["a", "a"]


@pytest.mark.asyncio
async def test_completed_step_advances_logical_time():
    wf, repo, _, _, clock = _bind(LedgerWorkflow)
    start = wf.current_time
    clock.advance(timedelta(seconds=30))

    await wf.record("a")
    assert wf.current_time == start + timedelta(seconds=30)

    # replaying from the original logical time lands on the same instant
    wf.current_time = start
    clock.advance(timedelta(hours=5))
    await wf.record("a")
    assert wf.current_time == start + timedelta(seconds=30)


@pytest.mark.asyncio
async def test_unique_activity_runs_once_across_logical_times():
    wf, repo, ledger, _, clock = _bind(LedgerWorkflow)

    assert await wf.record_once("x") == "x"
    clock.advance(timedelta(days=3))
    wf.current_time = clock.utc_now
    assert await wf.record_once("x") == "x"

    assert ledger.calls == [("once", "x")]
    steps = await repo.list_steps("wf-1")
    assert [s.id for s in steps] == ['wf-1(["x"],0)']


@pytest.mark.asyncio
async def test_long_arguments_are_replaced_by_digest():
    wf, repo, _, _, _ = _bind(LedgerWorkflow)
    value = "z" * 200

    await wf.record(value)

    steps = await repo.list_steps("wf-1")
    expected_key = digest(dumps([value]))
    assert steps[0].id == f"wf-1({expected_key},{to_epoch_ms(wf.current_time)})"
    assert steps[0].input == dumps([value])


def test_keyword_arguments_are_part_of_the_key():
    assert serialize_call(("a",), {}) == '["a"]'
    assert serialize_call(("a",), {"b": 1}) == '[["a"],{"b":1}]'


@pytest.mark.asyncio
async def test_failed_step_replays_stored_error_without_running():
    wf, repo, ledger, _, _ = _bind(LedgerWorkflow)
    start = wf.current_time

    with pytest.raises(ActivityFailedError) as first:
        await wf.explode("boom")
    assert isinstance(first.value.__cause__, ValueError)
    assert "ValueError: boom" in first.value.detail
    failed_at = wf.current_time

    for _ in range(2):
        wf.current_time = start
        with pytest.raises(ActivityFailedError) as info:
            await wf.explode("boom")
        assert info.value.detail == first.value.detail
        assert wf.current_time == failed_at

    assert ledger.calls == [("explode", "boom")]
    steps = await repo.list_steps("wf-1")
    assert steps[0].state is RecordState.FAILED


@pytest.mark.asyncio
async def test_elapsed_delay_completes_immediately():
    wf, repo, _, suspension, clock = _bind(LedgerWorkflow)
    wf.current_time = clock.utc_now - timedelta(hours=2)
    started = wf.current_time

    assert await wf.delay(timedelta(hours=1)) is None

    assert not suspension.is_set
    assert wf.current_time == started + timedelta(hours=1)
    steps = await repo.list_steps("wf-1")
    assert steps[0].state is RecordState.DONE
    assert steps[0].name == "delay"


@pytest.mark.asyncio
async def test_pending_delay_suspends_with_remaining_time():
    wf, repo, _, suspension, clock = _bind(LedgerWorkflow)
    wf.current_time = clock.utc_now - timedelta(minutes=15)

    call = asyncio.ensure_future(wf.delay(timedelta(hours=1)))
    await asyncio.wait({call, suspension.outcome}, return_when=asyncio.FIRST_COMPLETED)

    assert suspension.is_set
    assert suspension.outcome.result().ttl == timedelta(minutes=45)
    assert not call.done()
    call.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await call

    steps = await repo.list_steps("wf-1")
    assert steps[0].state is RecordState.PENDING
    assert steps[0].eta == clock.utc_now + timedelta(minutes=45)


@pytest.mark.asyncio
async def test_explicit_argument_wins_over_injection():
    wf, _, ledger, _, _ = _bind(LedgerWorkflow)
    other = Ledger()

    await wf.record("a", other)

    assert other.calls == ["a"]
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_sync_activity_is_supported():
    wf, repo, _, _, _ = _bind(LedgerWorkflow)

    assert await wf.add(2, 3) == 5
    steps = await repo.list_steps("wf-1")
    assert steps[0].output == "5"
