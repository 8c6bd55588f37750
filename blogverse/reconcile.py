"""
Follow counter reconciliation.
Recomputes followers_count/following_count from the follows table, repairs drift,
and records every correction in follow_count_audits and the audit log.
"""
import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from typing import Iterable, Optional
from sqlalchemy import select, update, func
from .models import AsyncSessionLocal, engine
from .models.users import User
from .models.follows import Follow
from .models.follow_audits import FollowCountAudit
from .core import FOLLOW_COUNT_DRIFT, setup_logging
from .queue_manager import enqueue_counter_audit
from .cache import invalidate_user_profiles

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger('blogverse.audit')


@dataclass
class CounterDrift:
    """A stored counter that disagrees with the follows table"""
    user_id: int
    field: str
    stored: int
    actual: int

    code = 'counter_drift'


def _actual_followers():
    return (
        select(func.count())
        .select_from(Follow)
        .where(Follow.following_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )


def _actual_following():
    return (
        select(func.count())
        .select_from(Follow)
        .where(Follow.follower_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )


def _find_drift(rows) -> list:
    drifts = []
    for row in rows:
        if row.followers_count != row.actual_followers:
            drifts.append(CounterDrift(row.id, 'followers_count', row.followers_count, row.actual_followers))
        if row.following_count != row.actual_following:
            drifts.append(CounterDrift(row.id, 'following_count', row.following_count, row.actual_following))
    return drifts


def _record_written(drifts, written) -> list:
    """Replace scanned values with what the UPDATE wrote; drop users deleted or already fixed meanwhile"""
    recorded = []
    for drift in drifts:
        row = written.get(drift.user_id)
        if row is None:
            continue
        actual = getattr(row, drift.field)
        if actual != drift.stored:
            recorded.append(replace(drift, actual=actual))
    return recorded


async def reconcile_follow_counts(
    user_ids: Optional[Iterable[int]] = None,
    dry_run: bool = False,
    source: str = 'reconcile',
) -> dict:
    """
    Scan users (all, or only user_ids) and compare both counters with COUNT(*) over follows.

    Drifted users are corrected with an UPDATE that recomputes the value at write time,
    so a follow committed between the scan and the fix is still counted.
    With dry_run the drift is reported and logged but nothing is written.
    """
    user_ids = list(user_ids) if user_ids else None

    async with AsyncSessionLocal() as session:
        q = (
            select(
                User.id,
                User.followers_count,
                User.following_count,
                _actual_followers().label('actual_followers'),
                _actual_following().label('actual_following'),
            )
            .order_by(User.id)
        )
        if user_ids:
            q = q.where(User.id.in_(user_ids))
        rows = (await session.execute(q)).all()
        drifts = _find_drift(rows)

        if drifts and not dry_run:
            drifted_ids = sorted({d.user_id for d in drifts})
            # lock first in a statement of its own: the recompute below then reads
            # a snapshot taken after any follow holding these rows has committed
            await session.execute(
                select(User.id).where(User.id.in_(drifted_ids)).order_by(User.id).with_for_update()
            )
            res = await session.execute(
                update(User)
                .where(User.id.in_(drifted_ids))
                .values(followers_count=_actual_followers(), following_count=_actual_following())
                .returning(User.id, User.followers_count, User.following_count)
                .execution_options(synchronize_session=False)
            )
            written = {row.id: row for row in res.all()}
            drifts = _record_written(drifts, written)
            for drift in drifts:
                session.add(FollowCountAudit(
                    user_id=drift.user_id,
                    field=drift.field,
                    stored=drift.stored,
                    actual=drift.actual,
                    source=source,
                ))
            await session.commit()

    for drift in drifts:
        audit_logger.warning({
            'msg': 'follow_count_drift',
            'code': CounterDrift.code,
            'corrected': not dry_run,
            'source': source,
            **asdict(drift),
        })
        if not dry_run:
            FOLLOW_COUNT_DRIFT.labels(drift.field).inc()

    drift_items = [asdict(d) for d in drifts]
    if drift_items and not dry_run:
        await invalidate_user_profiles({d.user_id for d in drifts})
        await enqueue_counter_audit(drift_items, source)

    summary = {
        'ok': True,
        'scope': 'follow_counts',
        'dry_run': dry_run,
        'user_count': len(rows),
        'drift_count': len(drifts),
        'drift_items': drift_items,
        'generated_at': datetime.utcnow().isoformat(),
    }
    logger.info({'msg': 'follow_count_reconcile_done', 'user_count': len(rows), 'drift_count': len(drifts)})
    return summary


async def _run(user_ids, dry_run):
    try:
        return await reconcile_follow_counts(user_ids=user_ids, dry_run=dry_run)
    finally:
        await engine.dispose()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Recompute follower/following counts from follows and repair drift.")
    parser.add_argument("--user-id", dest="user_ids", type=int, action="append", help="Limit to this user id (repeatable).")
    parser.add_argument("--dry-run", action="store_true", help="Report drift without correcting it.")
    args = parser.parse_args(argv)

    setup_logging()
    summary = asyncio.run(_run(args.user_ids, args.dry_run))

    print(json.dumps(summary, indent=2))
    return 0 if summary['drift_count'] == 0 else 2


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()
