"""create follows

Revision ID: 0002
Revises: 0001
Create Date: 2026-01-18 13:48:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0002'
down_revision = '0001'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('follows',
        sa.Column('follower_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('following_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('follower_id', 'following_id'),
        sa.CheckConstraint('follower_id <> following_id', name='ck_follows_no_self_follow')
    )
    op.create_index('ix_follows_follower_id', 'follows', ['follower_id'])
    op.create_index('ix_follows_following_id', 'follows', ['following_id'])
    op.create_index('ix_follows_created_at', 'follows', ['created_at'])

def downgrade():
    op.drop_table('follows')
