"""leads_and_embed_sessions

Revision ID: 001
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'leads',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('source_business', sa.String(255), nullable=False),
        sa.Column('source_domain', sa.String(255), nullable=True),
        sa.Column('utm_source', sa.String(255), nullable=True),
        sa.Column('utm_medium', sa.String(255), nullable=True),
        sa.Column('utm_campaign', sa.String(255), nullable=True),
        sa.Column('referrer_url', sa.String(2048), nullable=True),
        sa.Column('additional_fields', sa.JSON(), nullable=False),
        sa.Column('business_name', sa.String(255), nullable=True),
        sa.Column('place_id', sa.String(255), nullable=True),
        sa.Column('location_address', sa.String(512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', 'source_business', name='uq_leads_email_source_business'),
    )
    op.create_index(op.f('ix_leads_id'), 'leads', ['id'], unique=False)
    op.create_index(op.f('ix_leads_email'), 'leads', ['email'], unique=False)

    op.create_table(
        'embed_sessions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('scope', sa.JSON(), nullable=False),
        sa.Column('key_version', sa.String(64), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('lead_id', sa.String(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_embed_sessions_id'), 'embed_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_embed_sessions_token_hash'), 'embed_sessions', ['token_hash'], unique=True)
    op.create_index(op.f('ix_embed_sessions_key_version'), 'embed_sessions', ['key_version'], unique=False)
    op.create_index(op.f('ix_embed_sessions_lead_id'), 'embed_sessions', ['lead_id'], unique=False)
    op.create_index(op.f('ix_embed_sessions_expires_at'), 'embed_sessions', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('embed_sessions')
    op.drop_table('leads')
