from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class UserProfileOut(BaseModel):
    id: int
    username: str
    bio: Optional[str] = None
    image: Optional[str] = None
    followers_count: int
    following_count: int
    is_following: bool = False  # whether the caller follows this user
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class FollowUserOut(BaseModel):
    id: int
    username: str
    bio: Optional[str] = None
    image: Optional[str] = None
    followed_at: datetime
