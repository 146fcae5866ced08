"""create users and jobs tables

Revision ID: create_users_and_jobs
Revises: 
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'create_users_and_jobs'
down_revision = None
branch_labels = None
depends_on = None

JOB_STATUSES = ('OPEN', 'IN_PROGRESS', 'SUBMITTED', 'COMPLETED', 'AUTO_RELEASED', 'DISPUTED', 'CANCELLED')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('wallet_address', sa.String(44), nullable=False),
        sa.Column('username', sa.String(50), nullable=True, unique=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('email', sa.String(320), nullable=True, unique=True),
        sa.Column('github_username', sa.String(100), nullable=True),
        sa.Column('reputation_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_wallet_address', 'users', ['wallet_address'], unique=True)
    op.create_index('ix_users_github_username', 'users', ['github_username'])

    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_id', sa.String(100), nullable=False),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('freelancer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('requirements', sa.Text(), nullable=True),
        sa.Column('budget_lamports', sa.BigInteger(), nullable=False),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.Enum(*JOB_STATUSES, name='job_status', native_enum=False, length=20), nullable=False),
        sa.Column('submission_url', sa.String(500), nullable=True),
        sa.Column('submission_notes', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('escrow_address', sa.String(44), nullable=True),
        sa.Column('transaction_signature', sa.String(88), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('budget_lamports > 0', name='ck_jobs_budget_positive'),
    )
    op.create_index('ix_jobs_job_id', 'jobs', ['job_id'], unique=True)
    op.create_index('ix_jobs_client_id', 'jobs', ['client_id'])
    op.create_index('ix_jobs_freelancer_id', 'jobs', ['freelancer_id'])
    op.create_index('ix_jobs_status', 'jobs', ['status'])
    # scheduler scans by status and submission time
    op.create_index('ix_jobs_status_submitted_at', 'jobs', ['status', 'submitted_at'])


def downgrade() -> None:
    op.drop_table('jobs')
    op.drop_table('users')
