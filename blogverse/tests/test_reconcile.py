import json
import logging
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from blogverse import crud, reconcile
from blogverse.models import AsyncSessionLocal
from blogverse.models.follow_audits import FollowCountAudit
from blogverse.cache import cache_user_profile, get_cached_user_profile
from blogverse.reconcile import CounterDrift, _record_written, reconcile_follow_counts


async def _audits():
    async with AsyncSessionLocal() as session:
        res = await session.execute(select(FollowCountAudit).order_by(FollowCountAudit.id))
        return res.scalars().all()


@pytest.mark.asyncio
async def test_consistent_store_has_no_drift(make_user):
    a, b = await make_user(), await make_user()
    await crud.follow_user(a.id, b.id)

    summary = await reconcile_follow_counts()

    assert summary['ok'] is True
    assert summary['user_count'] == 2
    assert summary['drift_count'] == 0
    assert summary['drift_items'] == []
    assert await _audits() == []


@pytest.mark.asyncio
async def test_drift_is_corrected_and_audited(make_user, counts, force_counts, caplog):
    a, b, c = await make_user(), await make_user(), await make_user()
    await crud.follow_user(a.id, b.id)
    await crud.follow_user(c.id, b.id)
    await force_counts(b.id, followers_count=7)
    await force_counts(a.id, following_count=0)

    with caplog.at_level(logging.WARNING, logger='blogverse.audit'):
        summary = await reconcile_follow_counts()

    assert summary['drift_count'] == 2
    assert {(d['user_id'], d['field'], d['stored'], d['actual']) for d in summary['drift_items']} == {
        (a.id, 'following_count', 0, 1),
        (b.id, 'followers_count', 7, 2),
    }
    assert await counts(a.id) == (0, 1)
    assert await counts(b.id) == (2, 0)

    audits = await _audits()
    assert {(r.user_id, r.field, r.stored, r.actual, r.source) for r in audits} == {
        (a.id, 'following_count', 0, 1, 'reconcile'),
        (b.id, 'followers_count', 7, 2, 'reconcile'),
    }

    logged = [r.msg for r in caplog.records if r.name == 'blogverse.audit' and isinstance(r.msg, dict)]
    assert len(logged) == 2
    assert all(entry['code'] == 'counter_drift' and entry['corrected'] for entry in logged)

    again = await reconcile_follow_counts()
    assert again['drift_count'] == 0


@pytest.mark.asyncio
async def test_dry_run_reports_without_writing(make_user, counts, force_counts):
    a, b = await make_user(), await make_user()
    await crud.follow_user(a.id, b.id)
    await force_counts(b.id, followers_count=4)

    summary = await reconcile_follow_counts(dry_run=True)

    assert summary['dry_run'] is True
    assert summary['drift_count'] == 1
    assert await counts(b.id) == (4, 0)
    assert await _audits() == []


@pytest.mark.asyncio
async def test_scoped_to_user_ids(make_user, counts, force_counts):
    a, b, c = await make_user(), await make_user(), await make_user()
    await force_counts(b.id, followers_count=3)
    await force_counts(c.id, following_count=2)

    summary = await reconcile_follow_counts(user_ids=[b.id])

    assert summary['user_count'] == 1
    assert summary['drift_count'] == 1
    assert await counts(b.id) == (0, 0)
    assert await counts(c.id) == (0, 2)


def test_cli_exit_code_and_args(monkeypatch, capsys):
    seen = {}

    async def fake_run(user_ids, dry_run):
        seen.update(user_ids=user_ids, dry_run=dry_run)
        return {'ok': True, 'drift_count': 1, 'drift_items': []}

    monkeypatch.setattr(reconcile, '_run', fake_run)

    assert reconcile.main(['--dry-run', '--user-id', '3', '--user-id', '5']) == 2
    assert seen == {'user_ids': [3, 5], 'dry_run': True}
    assert '"drift_count": 1' in capsys.readouterr().out


def test_cli_clean_run_exits_zero(monkeypatch):
    async def fake_run(user_ids, dry_run):
        return {'ok': True, 'drift_count': 0, 'drift_items': []}

    monkeypatch.setattr(reconcile, '_run', fake_run)

    assert reconcile.main([]) == 0


@pytest.mark.asyncio
async def test_broker_outage_after_correction(make_user, counts, force_counts, broken_kafka):
    a, b = await make_user(), await make_user()
    await crud.follow_user(a.id, b.id)
    await force_counts(b.id, followers_count=5)

    summary = await reconcile_follow_counts()

    assert summary['drift_count'] == 1
    assert summary['drift_items'][0]['actual'] == 1
    assert await counts(b.id) == (1, 0)
    assert len(await _audits()) == 1


@pytest.mark.asyncio
async def test_correction_drops_cached_profiles(make_user, force_counts, dummy_redis):
    a, b = await make_user(), await make_user()
    await crud.follow_user(a.id, b.id)
    await cache_user_profile(a.id, await crud.get_user_profile(a.id))
    await cache_user_profile(b.id, await crud.get_user_profile(b.id))
    await force_counts(b.id, followers_count=5)

    await reconcile_follow_counts()

    assert await get_cached_user_profile(b.id) is None
    assert await get_cached_user_profile(a.id) is not None
    events = [json.loads(raw) for key, raw in dummy_redis.store.items() if key.startswith('job:counter_audit')]
    assert [e['data']['drift_items'][0]['user_id'] for e in events] == [b.id]


def test_recorded_values_come_from_the_write():
    drifts = [
        CounterDrift(1, 'followers_count', stored=5, actual=2),
        CounterDrift(2, 'following_count', stored=0, actual=1),
        CounterDrift(3, 'followers_count', stored=4, actual=3),
    ]
    written = {
        1: SimpleNamespace(followers_count=3, following_count=0),
        2: SimpleNamespace(followers_count=0, following_count=0),
    }

    recorded = _record_written(drifts, written)

    # user 2 was fixed by someone else before the write, user 3 no longer exists
    assert recorded == [CounterDrift(1, 'followers_count', stored=5, actual=3)]
