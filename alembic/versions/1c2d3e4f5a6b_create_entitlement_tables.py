"""create entitlement tables

Revision ID: 1c2d3e4f5a6b
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1c2d3e4f5a6b'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, books, signup ledger, trial ledger, loans and devices"""
    userrole = sa.Enum('super_user', 'admin', 'user', name='userrole')
    subscriptiontier = sa.Enum('free', 'basic', 'premium', name='subscriptiontier')
    subscriptionstatus = sa.Enum('active', 'inactive', 'cancelled', name='subscriptionstatus')
    loanstatus = sa.Enum('active', 'returned', 'revoked', name='loanstatus')
    loantype = sa.Enum('subscription', 'trial', name='loantype')

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('role', userrole, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('free_trial_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('free_trial_started_at', sa.DateTime(), nullable=True),
        sa.Column('free_trial_ended_at', sa.DateTime(), nullable=True),
        sa.Column('subscription_tier', subscriptiontier, nullable=False, server_default='free'),
        sa.Column('subscription_status', subscriptionstatus, nullable=False, server_default='inactive'),
        sa.Column('registration_ip', sa.String(length=45), nullable=True),
        sa.Column('device_fingerprint', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'books',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('author', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_books_id'), 'books', ['id'], unique=False)

    op.create_table(
        'signup_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('ip', sa.String(length=45), nullable=False),
        sa.Column('device_fingerprint', sa.String(length=128), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('attempted_at', sa.DateTime(), nullable=False),
        sa.Column('successful', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('block_until', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_signup_attempts_id'), 'signup_attempts', ['id'], unique=False)
    op.create_index(op.f('ix_signup_attempts_block_until'), 'signup_attempts', ['block_until'], unique=False)
    op.create_index('ix_signup_attempts_ip_attempted_at', 'signup_attempts', ['ip', 'attempted_at'], unique=False)

    op.create_table(
        'free_trial_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('email_domain', sa.String(length=255), nullable=False),
        sa.Column('ip', sa.String(length=45), nullable=False),
        sa.Column('device_fingerprint', sa.String(length=128), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('trial_started_at', sa.DateTime(), nullable=False),
        sa.Column('trial_ended_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_free_trial_records_id'), 'free_trial_records', ['id'], unique=False)
    op.create_index(op.f('ix_free_trial_records_email'), 'free_trial_records', ['email'], unique=True)
    op.create_index(op.f('ix_free_trial_records_user_id'), 'free_trial_records', ['user_id'], unique=False)
    op.create_index('ix_free_trial_records_ip_started', 'free_trial_records', ['ip', 'trial_started_at'], unique=False)
    op.create_index('ix_free_trial_records_fingerprint_started', 'free_trial_records', ['device_fingerprint', 'trial_started_at'], unique=False)
    op.create_index('ix_free_trial_records_domain_started', 'free_trial_records', ['email_domain', 'trial_started_at'], unique=False)

    op.create_table(
        'loans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('book_id', sa.Integer(), nullable=False),
        sa.Column('status', loanstatus, nullable=False),
        sa.Column('loan_type', loantype, nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('returned_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('revoke_reason', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['book_id'], ['books.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_loans_id'), 'loans', ['id'], unique=False)
    op.create_index(op.f('ix_loans_book_id'), 'loans', ['book_id'], unique=False)
    op.create_index('ix_loans_user_id_status', 'loans', ['user_id', 'status'], unique=False)

    op.create_table(
        'devices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('device_fingerprint', sa.String(length=128), nullable=False),
        sa.Column('public_key', sa.Text(), nullable=False),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_active_at', sa.DateTime(), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_devices_id'), 'devices', ['id'], unique=False)
    op.create_index(op.f('ix_devices_device_fingerprint'), 'devices', ['device_fingerprint'], unique=False)
    op.create_index('ix_devices_user_id_is_active', 'devices', ['user_id', 'is_active'], unique=False)


def downgrade() -> None:
    """Drop entitlement tables and their enum types"""
    op.drop_index('ix_devices_user_id_is_active', table_name='devices')
    op.drop_index(op.f('ix_devices_device_fingerprint'), table_name='devices')
    op.drop_index(op.f('ix_devices_id'), table_name='devices')
    op.drop_table('devices')

    op.drop_index('ix_loans_user_id_status', table_name='loans')
    op.drop_index(op.f('ix_loans_book_id'), table_name='loans')
    op.drop_index(op.f('ix_loans_id'), table_name='loans')
    op.drop_table('loans')

    op.drop_index('ix_free_trial_records_domain_started', table_name='free_trial_records')
    op.drop_index('ix_free_trial_records_fingerprint_started', table_name='free_trial_records')
    op.drop_index('ix_free_trial_records_ip_started', table_name='free_trial_records')
    op.drop_index(op.f('ix_free_trial_records_user_id'), table_name='free_trial_records')
    op.drop_index(op.f('ix_free_trial_records_email'), table_name='free_trial_records')
    op.drop_index(op.f('ix_free_trial_records_id'), table_name='free_trial_records')
    op.drop_table('free_trial_records')

    op.drop_index('ix_signup_attempts_ip_attempted_at', table_name='signup_attempts')
    op.drop_index(op.f('ix_signup_attempts_block_until'), table_name='signup_attempts')
    op.drop_index(op.f('ix_signup_attempts_id'), table_name='signup_attempts')
    op.drop_table('signup_attempts')

    op.drop_index(op.f('ix_books_id'), table_name='books')
    op.drop_table('books')

    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_name in ('loantype', 'loanstatus', 'subscriptionstatus', 'subscriptiontier', 'userrole'):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
