"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-02-27 00:00:00.000000

Accounts mirror, Telegram identities, workspaces, memberships and invites.
On PostgreSQL also installs the membership predicates used by row-level
policies on the workout tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


PREDICATES = [
    """
    create or replace function public.is_workspace_member(wid text, uid text)
    returns boolean
    language sql
    stable
    as $$
      select exists (
        select 1 from public.workspace_members wm
        where wm.workspace_id = wid and wm.account_id = uid
      );
    $$
    """,
    """
    create or replace function public.is_workspace_owner(wid text, uid text)
    returns boolean
    language sql
    stable
    as $$
      select exists (
        select 1 from public.workspace_members wm
        where wm.workspace_id = wid and wm.account_id = uid and wm.role = 'owner'
      );
    $$
    """,
]


def upgrade() -> None:
    # Accounts table (mirror of auth provider users)
    op.create_table(
        'accounts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Telegram identities
    op.create_table(
        'telegram_identities',
        sa.Column('telegram_user_id', sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('accounts.id', ondelete='CASCADE'), unique=True, nullable=False),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('first_name', sa.String(255), nullable=True),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('last_auth_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Workspaces table
    op.create_table(
        'workspaces',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('length(trim(name)) > 0', name='ck_workspaces_name_not_blank'),
    )

    # Memberships table
    op.create_table(
        'workspace_members',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('workspace_id', sa.String(36), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_id', sa.String(36), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('workspace_id', 'account_id', name='uq_workspace_member'),
        sa.CheckConstraint("role in ('owner', 'coach', 'member')", name='ck_workspace_member_role'),
    )
    op.create_index('ix_workspace_members_account_id', 'workspace_members', ['account_id'])

    # Invites table
    op.create_table(
        'workspace_invites',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('workspace_id', sa.String(36), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='coach'),
        sa.Column('token', sa.String(200), unique=True, nullable=False),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_by', sa.String(36), sa.ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_workspace_invites_workspace_id', 'workspace_invites', ['workspace_id'])
    op.create_index('ix_workspace_invites_expires_at', 'workspace_invites', ['expires_at'])

    if op.get_bind().dialect.name == 'postgresql':
        for statement in PREDICATES:
            op.execute(statement)


def downgrade() -> None:
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('drop function if exists public.is_workspace_owner(text, text)')
        op.execute('drop function if exists public.is_workspace_member(text, text)')
    op.drop_table('workspace_invites')
    op.drop_table('workspace_members')
    op.drop_table('workspaces')
    op.drop_table('telegram_identities')
    op.drop_table('accounts')
