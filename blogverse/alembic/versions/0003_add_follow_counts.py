"""add denormalized follow counts

Revision ID: 0003
Revises: 0002
Create Date: 2026-01-19 10:00:00.000000

Counts are maintained by the application inside the follow/unfollow
transaction (blogverse.crud); there is no database trigger.
"""
from alembic import op
import sqlalchemy as sa

revision = '0003'
down_revision = '0002'
branch_labels = None
depends_on = None

def upgrade():
    op.add_column('users', sa.Column('followers_count', sa.Integer(), nullable=False, server_default='0'))
    op.add_column('users', sa.Column('following_count', sa.Integer(), nullable=False, server_default='0'))
    op.create_check_constraint('ck_users_followers_count_nonneg', 'users', 'followers_count >= 0')
    op.create_check_constraint('ck_users_following_count_nonneg', 'users', 'following_count >= 0')

    # Backfill existing counts
    op.execute(
        "UPDATE users SET followers_count = "
        "(SELECT COUNT(*) FROM follows f WHERE f.following_id = users.id)"
    )
    op.execute(
        "UPDATE users SET following_count = "
        "(SELECT COUNT(*) FROM follows f WHERE f.follower_id = users.id)"
    )

    op.create_index('ix_users_followers_count', 'users', [sa.text('followers_count DESC')])
    op.create_index('ix_users_following_count', 'users', [sa.text('following_count DESC')])

def downgrade():
    op.drop_index('ix_users_following_count', table_name='users')
    op.drop_index('ix_users_followers_count', table_name='users')
    op.drop_constraint('ck_users_following_count_nonneg', 'users', type_='check')
    op.drop_constraint('ck_users_followers_count_nonneg', 'users', type_='check')
    op.drop_column('users', 'following_count')
    op.drop_column('users', 'followers_count')
