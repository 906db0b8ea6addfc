"""profiles, wallets and transactions

Revision ID: a7c1e2f3d4b5
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'a7c1e2f3d4b5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('auth_user_id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f('ix_profiles_auth_user_id'), 'profiles', ['auth_user_id'], unique=True)

    op.create_table(
        'wallets',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('profile_id', sa.String(length=36), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('blockchain', sa.String(length=20), nullable=False),
        sa.Column('wallet_address', sa.String(), nullable=False),
        sa.Column('circle_wallet_id', sa.String(), nullable=True),
        sa.Column('balance', sa.String(length=78), server_default='0'),
        sa.Column('passkey_credential', sa.Text(), nullable=True),
        sa.Column('wallet_type', sa.String(length=20), server_default='modular'),
        sa.Column('account_type', sa.String(length=10), server_default='SCA'),
        sa.Column('currency', sa.String(length=10), server_default='USDC'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('profile_id', 'blockchain', name='uq_wallet_profile_blockchain'),
    )
    op.create_index(op.f('ix_wallets_wallet_address'), 'wallets', ['wallet_address'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('wallet_id', sa.String(length=36), sa.ForeignKey('wallets.id'), nullable=False),
        sa.Column('profile_id', sa.String(length=36), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('transaction_type', sa.String(length=40), nullable=False),
        sa.Column('amount', sa.Numeric(precision=36, scale=18), server_default='0'),
        sa.Column('currency', sa.String(length=10), server_default='USDC'),
        sa.Column('status', sa.String(length=30), nullable=True),
        sa.Column('circle_transaction_id', sa.String(), nullable=True),
        sa.Column('network_id', sa.Integer(), nullable=True),
        sa.Column('network_name', sa.String(length=50), nullable=True),
        sa.Column('circle_contract_address', sa.String(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        # Backstop for concurrent deliveries of the same notification
        sa.UniqueConstraint('wallet_id', 'circle_transaction_id', name='uq_transaction_wallet_correlation'),
    )
    op.create_index(op.f('ix_transactions_circle_transaction_id'), 'transactions', ['circle_transaction_id'])


def downgrade() -> None:
    op.drop_index(op.f('ix_transactions_circle_transaction_id'), table_name='transactions')
    op.drop_table('transactions')
    op.drop_index(op.f('ix_wallets_wallet_address'), table_name='wallets')
    op.drop_table('wallets')
    op.drop_index(op.f('ix_profiles_auth_user_id'), table_name='profiles')
    op.drop_table('profiles')
