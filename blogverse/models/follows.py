from sqlalchemy import Column, Integer, DateTime, ForeignKey, CheckConstraint, func
from . import Base

class Follow(Base):
    __tablename__ = 'follows'
    follower_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True, index=True)
    following_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    __table_args__ = (
        CheckConstraint('follower_id <> following_id', name='ck_follows_no_self_follow'),
    )
