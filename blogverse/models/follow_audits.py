from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from . import Base

class FollowCountAudit(Base):
    __tablename__ = 'follow_count_audits'
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    field = Column(String(32), nullable=False)  # followers_count or following_count
    stored = Column(Integer, nullable=False)
    actual = Column(Integer, nullable=False)
    source = Column(String(32), nullable=False, default='reconcile')
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
