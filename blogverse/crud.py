from .models import AsyncSessionLocal
from .models.users import User
from .models.follows import Follow
from .errors import (
    SelfFollowRejected,
    DuplicateRelationship,
    RelationshipNotFound,
    UserNotFound,
    TooManyUserIds,
)
from .core import FOLLOW_ACTIONS
from .cache import invalidate_user_profiles
from sqlalchemy import select, update, delete, case, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
import logging

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100
MAX_STATUS_IDS = 100
DEFAULT_SUGGESTIONS = 10
MAX_SUGGESTIONS = 50
DELETE_LOCK_ATTEMPTS = 3

def _floored_decrement(column):
    return case((column > 0, column - 1), else_=0)

async def _adjust_counter(session, user_id: int, **values) -> bool:
    # relative UPDATE; takes the user's row lock until commit
    res = await session.execute(
        update(User)
        .where(User.id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1

async def _adjust_pair(session, actor_id: int, target_id: int, actor_values: dict, target_values: dict):
    """Apply both counter adjustments, locking rows in id order so A->B and B->A never deadlock"""
    adjustments = sorted([(actor_id, actor_values), (target_id, target_values)], key=lambda a: a[0])
    for user_id, values in adjustments:
        if not await _adjust_counter(session, user_id, **values):
            raise UserNotFound()

async def _lock_users(session, user_ids) -> set:
    """SELECT ... FOR UPDATE in ascending id order, the order follow/unfollow lock in. Returns ids that exist."""
    res = await session.execute(
        select(User.id).where(User.id.in_(user_ids)).order_by(User.id).with_for_update()
    )
    return set(res.scalars().all())

async def _counterpart_ids(session, user_id: int):
    followed = await session.execute(select(Follow.following_id).where(Follow.follower_id == user_id))
    followers = await session.execute(select(Follow.follower_id).where(Follow.following_id == user_id))
    return set(followed.scalars().all()), set(followers.scalars().all())

async def create_user(username: str, email: str, bio: str = None, image: str = None):
    async with AsyncSessionLocal() as session:
        user = User(username=username, email=email, bio=bio, image=image)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user

async def get_user_by_id(user_id: int):
    async with AsyncSessionLocal() as session:
        q = await session.execute(select(User).where(User.id == user_id))
        return q.scalars().first()

# follows
async def follow_user(actor_id: int, target_id: int) -> int:
    """
    Create the (actor -> target) edge and bump both counters in one transaction.
    Returns the target's followers_count after commit.
    """
    if actor_id == target_id:
        FOLLOW_ACTIONS.labels('follow', SelfFollowRejected.code).inc()
        raise SelfFollowRejected()

    async with AsyncSessionLocal() as session:
        try:
            await _adjust_pair(
                session, actor_id, target_id,
                actor_values={'following_count': User.following_count + 1},
                target_values={'followers_count': User.followers_count + 1},
            )
            session.add(Follow(follower_id=actor_id, following_id=target_id))
            await session.flush()
            followers_count = await session.scalar(
                select(User.followers_count).where(User.id == target_id)
            )
            await session.commit()
        except IntegrityError:
            # pair key already taken; the counter bumps above go with the rollback
            await session.rollback()
            FOLLOW_ACTIONS.labels('follow', DuplicateRelationship.code).inc()
            raise DuplicateRelationship()
        except UserNotFound:
            await session.rollback()
            FOLLOW_ACTIONS.labels('follow', UserNotFound.code).inc()
            raise

    FOLLOW_ACTIONS.labels('follow', 'ok').inc()
    logger.info({'msg': 'follow_created', 'follower_id': actor_id, 'following_id': target_id})
    return followers_count

async def unfollow_user(actor_id: int, target_id: int) -> int:
    """
    Delete the (actor -> target) edge and decrement both counters, floored at 0, in one transaction.
    Returns the target's followers_count after commit.
    """
    async with AsyncSessionLocal() as session:
        try:
            await _adjust_pair(
                session, actor_id, target_id,
                actor_values={'following_count': _floored_decrement(User.following_count)},
                target_values={'followers_count': _floored_decrement(User.followers_count)},
            )
            res = await session.execute(
                delete(Follow).where(Follow.follower_id == actor_id, Follow.following_id == target_id)
            )
            if res.rowcount == 0:
                raise RelationshipNotFound()
            followers_count = await session.scalar(
                select(User.followers_count).where(User.id == target_id)
            )
            await session.commit()
        except (RelationshipNotFound, UserNotFound) as e:
            await session.rollback()
            FOLLOW_ACTIONS.labels('unfollow', e.code).inc()
            raise

    FOLLOW_ACTIONS.labels('unfollow', 'ok').inc()
    logger.info({'msg': 'follow_deleted', 'follower_id': actor_id, 'following_id': target_id})
    return followers_count

async def delete_user(user_id: int) -> dict:
    """
    Remove a user and every edge touching it, releasing the counterparts' counters
    in the same transaction. The FK cascade alone would leave their counters stale.
    """
    async with AsyncSessionLocal() as session:
        try:
            for attempt in range(DELETE_LOCK_ATTEMPTS):
                followed, followers = await _counterpart_ids(session, user_id)
                locked = await _lock_users(session, {user_id} | followed | followers)
                if user_id not in locked:
                    raise UserNotFound()
                # while the user's row is held no edge touching it can commit
                followed, followers = await _counterpart_ids(session, user_id)
                if (followed | followers) <= locked or attempt == DELETE_LOCK_ATTEMPTS - 1:
                    break
                # an edge to an unlocked user committed before the lock; retry in id order
                await session.rollback()

            r1 = await session.execute(
                update(User)
                .where(User.id.in_(select(Follow.following_id).where(Follow.follower_id == user_id)))
                .values(followers_count=_floored_decrement(User.followers_count))
                .execution_options(synchronize_session=False)
            )
            r2 = await session.execute(
                update(User)
                .where(User.id.in_(select(Follow.follower_id).where(Follow.following_id == user_id)))
                .values(following_count=_floored_decrement(User.following_count))
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                delete(Follow).where(or_(Follow.follower_id == user_id, Follow.following_id == user_id))
            )
            res = await session.execute(delete(User).where(User.id == user_id))
            if res.rowcount == 0:
                raise UserNotFound()
            await session.commit()
        except UserNotFound:
            await session.rollback()
            raise

    await invalidate_user_profiles({user_id} | followed | followers)
    result = {'user_id': user_id, 'followings_released': r1.rowcount, 'followers_released': r2.rowcount}
    logger.info({'msg': 'user_deleted', **result})
    return result

async def is_following(actor_id: int, target_id: int) -> bool:
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Follow.follower_id).where(Follow.follower_id == actor_id, Follow.following_id == target_id)
        )
        return res.first() is not None

async def following_status(actor_id: int, user_ids: list) -> dict:
    """Map each requested id to whether actor follows it"""
    if len(user_ids) > MAX_STATUS_IDS:
        raise TooManyUserIds()
    if not user_ids:
        return {}
    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(Follow.following_id).where(
                Follow.follower_id == actor_id,
                Follow.following_id.in_(set(user_ids)),
            )
        )
        followed = set(res.scalars().all())
    return {uid: uid in followed for uid in user_ids}

async def get_user_profile(user_id: int):
    """Profile with the denormalized follow counts"""
    user = await get_user_by_id(user_id)
    if not user:
        raise UserNotFound()
    return {
        'id': user.id,
        'username': user.username,
        'bio': user.bio,
        'image': user.image,
        'followers_count': user.followers_count,
        'following_count': user.following_count,
        'created_at': user.created_at.isoformat() if user.created_at else None,
    }

def _clamp_page(limit, offset):
    limit = DEFAULT_LIST_LIMIT if limit is None else limit
    limit = max(1, min(limit, MAX_LIST_LIMIT))
    offset = max(0, offset or 0)
    return limit, offset

async def _list_edges(user_id: int, limit, offset, direction: str):
    limit, offset = _clamp_page(limit, offset)
    if direction == 'followers':
        total_col, match_col, other_col = User.followers_count, Follow.following_id, Follow.follower_id
    else:
        total_col, match_col, other_col = User.following_count, Follow.follower_id, Follow.following_id

    async with AsyncSessionLocal() as session:
        total = await session.scalar(select(total_col).where(User.id == user_id))
        if total is None:
            raise UserNotFound()
        res = await session.execute(
            select(User.id, User.username, User.bio, User.image, Follow.created_at)
            .join(Follow, other_col == User.id)
            .where(match_col == user_id)
            .order_by(Follow.created_at.desc(), other_col.desc())
            .limit(limit)
            .offset(offset)
        )
        users = [
            {
                'id': row.id,
                'username': row.username,
                'bio': row.bio,
                'image': row.image,
                'followed_at': row.created_at,
            }
            for row in res.all()
        ]
    return {'users': users, 'total': total, 'has_more': (offset + limit) < total}

async def list_followers(user_id: int, limit: int = None, offset: int = 0):
    return await _list_edges(user_id, limit, offset, 'followers')

async def list_following(user_id: int, limit: int = None, offset: int = 0):
    return await _list_edges(user_id, limit, offset, 'following')

async def follow_suggestions(user_id: int, limit: int = None):
    """
    Users followed by people user_id follows, excluding anyone user_id already follows.
    Ranked by how many of those followings follow them, then by followers_count.
    """
    limit = DEFAULT_SUGGESTIONS if limit is None else limit
    limit = max(1, min(limit, MAX_SUGGESTIONS))

    mine = aliased(Follow)
    theirs = aliased(Follow)
    already_following = select(Follow.following_id).where(Follow.follower_id == user_id)
    mutual = func.count(func.distinct(theirs.follower_id)).label('mutual_followers_count')

    async with AsyncSessionLocal() as session:
        res = await session.execute(
            select(User.id, User.username, User.bio, User.image, User.followers_count, mutual)
            .select_from(mine)
            .join(theirs, theirs.follower_id == mine.following_id)
            .join(User, User.id == theirs.following_id)
            .where(
                mine.follower_id == user_id,
                theirs.following_id != user_id,
                theirs.following_id.not_in(already_following),
            )
            .group_by(User.id, User.username, User.bio, User.image, User.followers_count)
            .order_by(mutual.desc(), User.followers_count.desc(), User.id)
            .limit(limit)
        )
        return [dict(row._mapping) for row in res.all()]
