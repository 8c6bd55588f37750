"""follow count drift audit table

Revision ID: 0004
Revises: 0003
Create Date: 2026-01-20 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = '0004'
down_revision = '0003'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('follow_count_audits',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('field', sa.String(32), nullable=False),
        sa.Column('stored', sa.Integer, nullable=False),
        sa.Column('actual', sa.Integer, nullable=False),
        sa.Column('source', sa.String(32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('ix_follow_count_audits_user_id', 'follow_count_audits', ['user_id'])
    op.create_index('ix_follow_count_audits_created_at', 'follow_count_audits', ['created_at'])

def downgrade():
    op.drop_table('follow_count_audits')
