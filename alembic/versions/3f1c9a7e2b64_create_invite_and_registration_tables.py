"""Create invite code, code usage and registration tables

Revision ID: 3f1c9a7e2b64
Revises:
Create Date: 2026-10-19 10:12:31.402118

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7e2b64'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

registration_type_enum = postgresql.ENUM('NFT', 'INVITE_CODE', name='registrationtype', create_type=False)


def upgrade() -> None:
    registration_type_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'invite_codes',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('code', sa.String(length=8), nullable=False),
        sa.Column('creator_email', sa.String(), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=False),
        sa.Column('current_uses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('max_uses BETWEEN 1 AND 100', name='ck_invite_codes_max_uses'),
        sa.CheckConstraint('current_uses >= 0 AND current_uses <= max_uses', name='ck_invite_codes_current_uses'),
    )
    op.create_index('ix_invite_codes_code', 'invite_codes', ['code'], unique=True)

    op.create_table(
        'code_usages',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_email', sa.String(), nullable=False),
        sa.Column('invite_code_id', sa.String(), sa.ForeignKey('invite_codes.id'), nullable=False),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('device_info', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_code_usages_user_email', 'code_usages', ['user_email'], unique=True)
    op.create_index('ix_code_usages_invite_code_id', 'code_usages', ['invite_code_id'])

    op.create_table(
        'registrations',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('wallet_address', sa.String(), nullable=False),
        sa.Column('invite_code', sa.String(), nullable=False, server_default=''),
        sa.Column('signature', sa.String(), nullable=False),
        sa.Column('registration_type', registration_type_enum, nullable=False, server_default='INVITE_CODE'),
        sa.Column('token_id', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_registrations_email', 'registrations', ['email'], unique=True)
    op.create_index('ix_registrations_wallet_address', 'registrations', ['wallet_address'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_registrations_wallet_address', table_name='registrations')
    op.drop_index('ix_registrations_email', table_name='registrations')
    op.drop_table('registrations')
    op.drop_index('ix_code_usages_invite_code_id', table_name='code_usages')
    op.drop_index('ix_code_usages_user_email', table_name='code_usages')
    op.drop_table('code_usages')
    op.drop_index('ix_invite_codes_code', table_name='invite_codes')
    op.drop_table('invite_codes')
    registration_type_enum.drop(op.get_bind(), checkfirst=True)
