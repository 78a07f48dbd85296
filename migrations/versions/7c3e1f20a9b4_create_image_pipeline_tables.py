"""create image pipeline tables

Revision ID: 7c3e1f20a9b4
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c3e1f20a9b4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'image_assets',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('owner_user_id', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=20), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('content_type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('size_bytes', sa.Integer(), nullable=False),
        sa.Column('checksum_sha256', sa.String(length=64), nullable=False),
        sa.Column('storage_key', sa.String(length=512), nullable=False),
        sa.Column('image_data', sa.LargeBinary(), nullable=True),
        sa.Column('moderation_labels', sa.JSON(), nullable=True),
        sa.Column('moderation_max_confidence', sa.Float(), nullable=False),
        sa.Column('curated_by_user_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_image_assets_owner_user_id', 'image_assets', ['owner_user_id'])
    op.create_index('ix_image_assets_entity', 'image_assets', ['entity_type', 'entity_id'])

    op.create_table(
        'pending_uploads',
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('owner_user_id', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=20), nullable=False),
        sa.Column('content_type', sa.String(length=50), nullable=False),
        sa.Column('image_data', sa.LargeBinary(), nullable=False),
        sa.Column('decision_status', sa.String(length=20), nullable=False),
        sa.Column('decision_reason', sa.String(length=255), nullable=False),
        sa.Column('moderation_labels', sa.JSON(), nullable=True),
        sa.Column('moderation_max_confidence', sa.Float(), nullable=False),
        sa.Column('consumed', sa.Boolean(), nullable=False),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('token'),
    )
    op.create_index('ix_pending_uploads_owner_user_id', 'pending_uploads', ['owner_user_id'])
    op.create_index('ix_pending_uploads_expires_at', 'pending_uploads', ['expires_at'])

    op.create_table(
        'entity_image_slots',
        sa.Column('entity_type', sa.String(length=20), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('owner_user_id', sa.String(length=64), nullable=True),
        sa.Column('image_asset_id', sa.String(length=36), nullable=True),
        sa.Column('curated_by_user_id', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['image_asset_id'], ['image_assets.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('entity_type', 'entity_id'),
    )
    op.create_index('ix_entity_image_slots_owner_user_id', 'entity_image_slots', ['owner_user_id'])


def downgrade():
    op.drop_index('ix_entity_image_slots_owner_user_id', table_name='entity_image_slots')
    op.drop_table('entity_image_slots')
    op.drop_index('ix_pending_uploads_expires_at', table_name='pending_uploads')
    op.drop_index('ix_pending_uploads_owner_user_id', table_name='pending_uploads')
    op.drop_table('pending_uploads')
    op.drop_index('ix_image_assets_entity', table_name='image_assets')
    op.drop_index('ix_image_assets_owner_user_id', table_name='image_assets')
    op.drop_table('image_assets')
