"""Baseline migration - users, tickets and ticket chat

Revision ID: 0001_helpdesk_baseline
Revises:
Create Date: 2026-10-19

Status/priority use the Spanish-capitalized vocabulary
(Nuevo/En Progreso/Resuelto/Cerrado, Baja/Media/Alta/Urgente).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_helpdesk_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


USER_ROLES = ("usuario", "tecnico", "admin")
TICKET_STATUSES = ("Nuevo", "En Progreso", "Resuelto", "Cerrado")
TICKET_PRIORITIES = ("Baja", "Media", "Alta", "Urgente")
DEPARTMENTS = ("IT", "RRHH", "Finanzas", "Operaciones")


def upgrade() -> None:
    """Create users, tickets and chat_messages."""

    # ==========================================================================
    # Users
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('email', sa.String(100), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column(
            'role',
            sa.Enum(*USER_ROLES, name='user_role', create_constraint=True),
            nullable=False,
        ),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('telegram_chat_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_role_active', 'users', ['role', 'is_active'])

    # ==========================================================================
    # Tickets
    # ==========================================================================
    op.create_table(
        'tickets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('floor', sa.Integer(), nullable=False),
        sa.Column('office', sa.String(50), nullable=False),
        sa.Column(
            'department',
            sa.Enum(*DEPARTMENTS, name='ticket_department', create_constraint=True),
            nullable=False,
        ),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column(
            'priority',
            sa.Enum(*TICKET_PRIORITIES, name='ticket_priority', create_constraint=True),
            nullable=False,
        ),
        sa.Column(
            'status',
            sa.Enum(*TICKET_STATUSES, name='ticket_status', create_constraint=True),
            nullable=False,
        ),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        sa.Column('requester_id', sa.Integer(), nullable=False),
        sa.Column('assignee_id', sa.Integer(), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('floor >= 1', name='ck_tickets_floor_positive'),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assignee_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_tickets_status', 'tickets', ['status'])
    op.create_index('idx_tickets_priority', 'tickets', ['priority'])
    op.create_index('idx_tickets_department', 'tickets', ['department'])
    op.create_index('idx_tickets_assignee', 'tickets', ['assignee_id'])
    op.create_index('idx_tickets_requester', 'tickets', ['requester_id'])
    op.create_index('idx_tickets_created_at', 'tickets', ['created_at'])

    # ==========================================================================
    # Ticket chat
    # ==========================================================================
    op.create_table(
        'chat_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('ticket_id', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('is_internal', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['author_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_chat_messages_ticket_created', 'chat_messages', ['ticket_id', 'created_at']
    )


def downgrade() -> None:
    """Drop all helpdesk tables (and enum types on PostgreSQL)."""
    op.drop_index('idx_chat_messages_ticket_created', table_name='chat_messages')
    op.drop_table('chat_messages')

    for index in (
        'idx_tickets_created_at',
        'idx_tickets_requester',
        'idx_tickets_assignee',
        'idx_tickets_department',
        'idx_tickets_priority',
        'idx_tickets_status',
    ):
        op.drop_index(index, table_name='tickets')
    op.drop_table('tickets')

    op.drop_index('ix_users_role_active', table_name='users')
    op.drop_table('users')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for enum_name in ('ticket_status', 'ticket_priority', 'ticket_department', 'user_role'):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
