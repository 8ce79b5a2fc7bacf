import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from tempora import ManualClock
from tempora.clock import as_utc
from tempora.persistence import (
    InMemoryWorkflowRepository,
    RecordState,
    SQLiteWorkflowRepository,
    WorkflowRecord,
)


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    clock = ManualClock()
    if request.param == "memory":
        yield InMemoryWorkflowRepository(clock)
    else:
        repository = SQLiteWorkflowRepository(tmp_path / "records.db", clock)
        yield repository
        repository.close()


def _workflow(repo, id, eta_offset=timedelta(0), **fields):
    now = repo.clock.utc_now
    return WorkflowRecord(
        id=id,
        name="Example",
        input='"x"',
        is_workflow=True,
        queued=now,
        updated=now,
        eta=now + eta_offset,
        **fields,
    )


def _step(repo, workflow_id, key, **fields):
    now = repo.clock.utc_now
    return WorkflowRecord(
        id=f"{workflow_id}({key},0)",
        name="step",
        input=key,
        is_workflow=False,
        queued=now,
        updated=now,
        eta=now,
        **fields,
    )


@pytest.mark.asyncio
async def test_save_and_get_round_trip(repo):
    record = _workflow(repo, "wf-1", parent_id="parent", output='{"a":1}')
    await repo.seed()
    await repo.save(record)

    loaded = await repo.get_workflow("wf-1")
    assert loaded == record
    assert await repo.get_step("wf-1") is None


@pytest.mark.asyncio
async def test_save_replaces_existing_record(repo):
    record = _workflow(repo, "wf-1")
    await repo.save(record)

    record.state = RecordState.DONE
    record.output = "42"
    await repo.save(record)

    loaded = await repo.get_workflow("wf-1")
    assert loaded.state is RecordState.DONE
    assert loaded.output == "42"
    assert len(await repo.list_workflows()) == 1


@pytest.mark.asyncio
async def test_steps_and_workflows_are_kept_apart(repo):
    await repo.save(_workflow(repo, "wf-1"))
    step = _step(repo, "wf-1", '["a"]')
    await repo.save(step)

    assert await repo.get_step(step.id) == step
    assert await repo.get_workflow(step.id) is None
    assert [r.id for r in await repo.list_workflows()] == ["wf-1"]


@pytest.mark.asyncio
async def test_claim_due_leases_records(repo):
    await repo.save(_workflow(repo, "late", eta_offset=timedelta(seconds=-5)))
    await repo.save(_workflow(repo, "later", eta_offset=timedelta(seconds=-1)))
    await repo.save(_workflow(repo, "future", eta_offset=timedelta(minutes=1)))
    await repo.save(_step(repo, "late", '["a"]'))

    now = repo.clock.utc_now
    claimed = await repo.claim_due(now, timedelta(minutes=5), 10)

    assert [r.id for r in claimed] == ["late", "later"]
    assert len({r.lock_token for r in claimed}) == 1
    assert all(r.lock_ttl == now + timedelta(minutes=5) for r in claimed)

    # live leases are skipped
    assert await repo.claim_due(now, timedelta(minutes=5), 10) == []


@pytest.mark.asyncio
async def test_claim_due_respects_limit(repo):
    for n in range(3):
        await repo.save(_workflow(repo, f"wf-{n}", eta_offset=timedelta(seconds=n - 10)))

    claimed = await repo.claim_due(repo.clock.utc_now, timedelta(minutes=5), 2)

    assert [r.id for r in claimed] == ["wf-0", "wf-1"]


@pytest.mark.asyncio
async def test_expired_lease_can_be_claimed_again(repo):
    await repo.save(_workflow(repo, "wf-1"))
    first = await repo.claim_due(repo.clock.utc_now, timedelta(minutes=5), 10)

    repo.clock.advance(timedelta(minutes=5))
    second = await repo.claim_due(repo.clock.utc_now, timedelta(minutes=5), 10)

    assert [r.id for r in second] == ["wf-1"]
    assert second[0].lock_token != first[0].lock_token


@pytest.mark.asyncio
async def test_released_lease_can_be_claimed_again(repo):
    await repo.save(_workflow(repo, "wf-1"))
    (claimed,) = await repo.claim_due(repo.clock.utc_now, timedelta(minutes=5), 10)

    claimed.release_lease()
    await repo.save(claimed)

    assert len(await repo.claim_due(repo.clock.utc_now, timedelta(minutes=5), 10)) == 1


@pytest.mark.asyncio
async def test_concurrent_claims_never_share_a_record(repo):
    for n in range(10):
        await repo.save(_workflow(repo, f"wf-{n}"))

    now = repo.clock.utc_now
    batches = await asyncio.gather(
        *(repo.claim_due(now, timedelta(minutes=5), 4) for _ in range(4))
    )

    ids = [r.id for batch in batches for r in batch]
    assert sorted(ids) == sorted(f"wf-{n}" for n in range(10))


@pytest.mark.asyncio
async def test_delete_cascades_to_own_steps_only(repo):
    await repo.save(_workflow(repo, "wf-1"))
    await repo.save(_workflow(repo, "wf-10"))
    await repo.save(_step(repo, "wf-1", '["a"]'))
    await repo.save(_step(repo, "wf-1", '["b"]'))
    await repo.save(_step(repo, "wf-10", '["a"]'))

    await repo.delete("wf-1")

    assert await repo.get_workflow("wf-1") is None
    assert await repo.list_steps("wf-1") == []
    assert await repo.get_workflow("wf-10") is not None
    assert len(await repo.list_steps("wf-10")) == 1


@pytest.mark.asyncio
async def test_list_steps_in_queue_order(repo):
    await repo.save(_workflow(repo, "wf-1"))
    await repo.save(_step(repo, "wf-1", '["first"]'))
    repo.clock.advance(timedelta(seconds=1))
    await repo.save(_step(repo, "wf-1", '["second"]'))

    steps = await repo.list_steps("wf-1")

    assert [s.input for s in steps] == ['["first"]', '["second"]']


@pytest.mark.asyncio
async def test_naive_datetimes_are_stored_as_utc(repo):
    record = _workflow(repo, "wf-1")
    record.eta = datetime(2026, 1, 1, 9, 30)
    await repo.save(record)

    claimed = await repo.claim_due(
        datetime(2026, 1, 1, 9, 30, tzinfo=timezone.utc), timedelta(minutes=5), 10
    )

    assert [r.id for r in claimed] == ["wf-1"]
    assert as_utc(claimed[0].eta) == datetime(2026, 1, 1, 9, 30, tzinfo=timezone.utc)
