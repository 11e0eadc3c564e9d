"""Create users, videos, quota, storage config and upload session tables

Revision ID: 3f2a9c41b7d0
Revises:
Create Date: 2026-10-18 10:12:40.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f2a9c41b7d0'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('VIEWER', 'ADMIN', name='userrole')
upload_status = sa.Enum('PENDING', 'UPLOADING', 'ASSEMBLING', 'COMPLETED', 'FAILED', 'CANCELLED',
                        name='uploadstatus')


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=80), nullable=True),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('username')
    )

    op.create_table('storage_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False, server_default='local'),
        sa.Column('s3_access_key', sa.String(length=255), nullable=True),
        sa.Column('s3_secret_key', sa.String(length=255), nullable=True),
        sa.Column('s3_endpoint', sa.String(length=500), nullable=True),
        sa.Column('s3_bucket', sa.String(length=255), nullable=True),
        sa.Column('s3_region', sa.String(length=50), nullable=True),
        sa.Column('max_file_size_mb', sa.Integer(), nullable=True),
        sa.Column('allowed_types', sa.JSON(), nullable=True),
        sa.Column('default_storage_limit_mb', sa.Integer(), nullable=True),
        sa.Column('video_expiration_days', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('user_quotas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('storage_used_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('storage_limit_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('upload_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('video_expiration_days', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    op.create_table('videos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('filename', sa.String(length=500), nullable=True),
        sa.Column('storage_path', sa.String(length=1000), nullable=False),
        sa.Column('share_id', sa.String(length=32), nullable=False),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('views', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_videos_share_id', 'videos', ['share_id'], unique=True)
    op.create_index('ix_videos_created_at', 'videos', ['created_at'], unique=False)
    op.create_index('ix_videos_expires_at', 'videos', ['expires_at'], unique=False)
    op.create_index('ix_videos_user_id', 'videos', ['user_id'], unique=False)

    op.create_table('upload_sessions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('filename', sa.String(length=500), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('mimetype', sa.String(length=255), nullable=False),
        sa.Column('total_chunks', sa.Integer(), nullable=False),
        sa.Column('chunks_uploaded', sa.Integer(), nullable=False),
        sa.Column('status', upload_status, nullable=False),
        sa.Column('share_id', sa.String(length=32), nullable=False),
        sa.Column('quota_reserved', sa.Boolean(), nullable=False),
        sa.Column('reserved_bytes', sa.BigInteger(), nullable=False),
        sa.Column('storage_path', sa.String(length=1000), nullable=True),
        sa.Column('video_id', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('share_id')
    )
    op.create_index('ix_upload_sessions_user_id', 'upload_sessions', ['user_id'], unique=False)
    op.create_index('ix_upload_sessions_status', 'upload_sessions', ['status'], unique=False)
    op.create_index('ix_upload_sessions_expires_at', 'upload_sessions', ['expires_at'], unique=False)

    op.create_table('upload_chunks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(length=36), nullable=False),
        sa.Column('chunk_number', sa.Integer(), nullable=False),
        sa.Column('chunk_size', sa.BigInteger(), nullable=False),
        sa.Column('storage_path', sa.String(length=1000), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['upload_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'chunk_number', name='uq_upload_chunks_session_chunk')
    )
    op.create_index('ix_upload_chunks_session_id', 'upload_chunks', ['session_id'], unique=False)


def downgrade():
    op.drop_index('ix_upload_chunks_session_id', table_name='upload_chunks')
    op.drop_table('upload_chunks')
    op.drop_index('ix_upload_sessions_expires_at', table_name='upload_sessions')
    op.drop_index('ix_upload_sessions_status', table_name='upload_sessions')
    op.drop_index('ix_upload_sessions_user_id', table_name='upload_sessions')
    op.drop_table('upload_sessions')
    op.drop_index('ix_videos_user_id', table_name='videos')
    op.drop_index('ix_videos_expires_at', table_name='videos')
    op.drop_index('ix_videos_created_at', table_name='videos')
    op.drop_index('ix_videos_share_id', table_name='videos')
    op.drop_table('videos')
    op.drop_table('user_quotas')
    op.drop_table('storage_config')
    op.drop_table('users')
    upload_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
