from typing import Dict, List
from fastapi import APIRouter, Depends, HTTPException, Query
from ..schemas.users import UserProfileOut
from ..schemas.follows import FollowActionOut, FollowListOut, IsFollowingOut, FollowingStatusIn, FollowSuggestionOut
from ..crud import (
    follow_user,
    unfollow_user,
    get_user_profile,
    is_following,
    following_status,
    list_followers,
    list_following,
    follow_suggestions
)
from ..auth import get_current_user, get_optional_user
from ..cache import (
    cache_user_profile,
    get_cached_user_profile,
    invalidate_follow_caches,
    check_rate_limit
)
from ..queue_manager import enqueue_follow_event, enqueue_user_activity

router = APIRouter()

FOLLOW_ACTIONS_PER_HOUR = 200


@router.post('/following-status', response_model=Dict[int, bool])
async def bulk_following_status(
    payload: FollowingStatusIn,
    current_user: dict = Depends(get_current_user)
):
    return await following_status(current_user['id'], payload.user_ids)


@router.get('/suggestions', response_model=List[FollowSuggestionOut])
async def suggestions(
    limit: int = Query(10),
    current_user: dict = Depends(get_current_user)
):
    return await follow_suggestions(current_user['id'], limit=limit)


@router.post('/{user_id}/follow', response_model=FollowActionOut)
async def follow(
    user_id: int,
    current_user: dict = Depends(get_current_user)
):
    if not await check_rate_limit(
        current_user['id'],
        "follow_action",
        limit=FOLLOW_ACTIONS_PER_HOUR,
        window=3600
    ):
        raise HTTPException(429, "Rate limit exceeded. Too many follow actions.")

    # edge insert and both counter bumps commit together
    followers_count = await follow_user(current_user['id'], user_id)

    await invalidate_follow_caches(current_user['id'], user_id)
    await enqueue_follow_event(current_user['id'], user_id, "follow", followers_count)
    await enqueue_user_activity(
        current_user['id'],
        "user_followed",
        {"target_id": user_id}
    )

    return {'following': True, 'followers_count': followers_count}


@router.delete('/{user_id}/follow', response_model=FollowActionOut)
async def unfollow(
    user_id: int,
    current_user: dict = Depends(get_current_user)
):
    if not await check_rate_limit(
        current_user['id'],
        "follow_action",
        limit=FOLLOW_ACTIONS_PER_HOUR,
        window=3600
    ):
        raise HTTPException(429, "Rate limit exceeded. Too many follow actions.")

    followers_count = await unfollow_user(current_user['id'], user_id)

    await invalidate_follow_caches(current_user['id'], user_id)
    await enqueue_follow_event(current_user['id'], user_id, "unfollow", followers_count)
    await enqueue_user_activity(
        current_user['id'],
        "user_unfollowed",
        {"target_id": user_id}
    )

    return {'following': False, 'followers_count': followers_count}


@router.get('/{user_id}/profile', response_model=UserProfileOut)
async def profile(
    user_id: int,
    current_user: dict | None = Depends(get_optional_user)
):
    user_profile = await get_cached_user_profile(user_id)
    if not user_profile:
        user_profile = await get_user_profile(user_id)
        await cache_user_profile(user_id, user_profile, ttl=300)

    # viewer-specific, never cached
    following = False
    if current_user and current_user['id'] != user_id:
        following = await is_following(current_user['id'], user_id)

    return {**user_profile, 'is_following': following}


@router.get('/{user_id}/followers', response_model=FollowListOut)
async def followers(
    user_id: int,
    limit: int = Query(20),
    offset: int = Query(0)
):
    return await list_followers(user_id, limit=limit, offset=offset)


@router.get('/{user_id}/following', response_model=FollowListOut)
async def following(
    user_id: int,
    limit: int = Query(20),
    offset: int = Query(0)
):
    return await list_following(user_id, limit=limit, offset=offset)


@router.get('/{user_id}/is-following', response_model=IsFollowingOut)
async def check_following(
    user_id: int,
    current_user: dict = Depends(get_current_user)
):
    return {'following': await is_following(current_user['id'], user_id)}
