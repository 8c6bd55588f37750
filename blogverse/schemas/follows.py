from pydantic import BaseModel
from typing import List, Optional
from .users import FollowUserOut

class FollowActionOut(BaseModel):
    following: bool
    followers_count: int

class FollowListOut(BaseModel):
    users: List[FollowUserOut]
    total: int
    has_more: bool

class IsFollowingOut(BaseModel):
    following: bool

class FollowingStatusIn(BaseModel):
    user_ids: List[int]

class FollowSuggestionOut(BaseModel):
    id: int
    username: str
    bio: Optional[str] = None
    image: Optional[str] = None
    followers_count: int
    mutual_followers_count: int
