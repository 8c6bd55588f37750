from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, CheckConstraint, Index, false, func
from . import Base

class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    bio = Column(Text, nullable=True)
    image = Column(String(255), nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False, server_default=false())
    # derived from the follows table; only crud/reconcile write these
    followers_count = Column(Integer, nullable=False, default=0, server_default='0')
    following_count = Column(Integer, nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    __table_args__ = (
        CheckConstraint('followers_count >= 0', name='ck_users_followers_count_nonneg'),
        CheckConstraint('following_count >= 0', name='ck_users_following_count_nonneg'),
        Index('ix_users_followers_count', followers_count.desc()),
        Index('ix_users_following_count', following_count.desc()),
    )
