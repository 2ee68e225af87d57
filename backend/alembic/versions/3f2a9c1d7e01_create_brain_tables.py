"""create_brain_tables

Revision ID: 3f2a9c1d7e01
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e01'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """升级迁移：创建用户、文件与知识库相关表"""

    # 用户表
    op.create_table(
        'sys_users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('password_hash', sa.String(length=128), nullable=False),
        sa.Column('nickname', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('brain_link', sa.String(length=64), nullable=False),
        sa.Column('is_brain_public', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        mysql_engine='InnoDB',
        mysql_charset='utf8mb4',
    )
    op.create_index('ix_sys_users_username', 'sys_users', ['username'], unique=True)
    op.create_index('ix_sys_users_brain_link', 'sys_users', ['brain_link'], unique=True)

    # 文件记录表
    op.create_table(
        'sys_files',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('storage_path', sa.String(length=500), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.String(length=100), nullable=True),
        sa.Column('uploader_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['uploader_id'], ['sys_users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        mysql_engine='InnoDB',
        mysql_charset='utf8mb4',
        comment='文件存储记录表'
    )
    op.create_index('ix_sys_files_uploader_id', 'sys_files', ['uploader_id'])

    # 收藏夹表
    op.create_table(
        'brain_collections',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(length=20), nullable=False),
        sa.Column('color', sa.String(length=20), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['parent_id'], ['brain_collections.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'name', name='uq_brain_collection_user_name'),
        mysql_engine='InnoDB',
        mysql_charset='utf8mb4',
        comment='知识库收藏夹表'
    )
    op.create_index('ix_brain_collections_parent_id', 'brain_collections', ['parent_id'])
    op.create_index('ix_brain_collections_user_id', 'brain_collections', ['user_id'])

    # 内容表
    op.create_table(
        'brain_contents',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='link'),
        sa.Column('link', sa.String(length=1000), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('collection_id', sa.Integer(), nullable=True),
        sa.Column('file_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['collection_id'], ['brain_collections.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['file_id'], ['sys_files.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.Index('idx_brain_content_user_created', 'user_id', 'created_at'),
        mysql_engine='InnoDB',
        mysql_charset='utf8mb4',
        comment='知识库内容表'
    )
    op.create_index('ix_brain_contents_collection_id', 'brain_contents', ['collection_id'])
    op.create_index('ix_brain_contents_user_id', 'brain_contents', ['user_id'])


def downgrade() -> None:
    """降级迁移：删除知识库相关表"""
    op.drop_table('brain_contents')
    op.drop_table('brain_collections')
    op.drop_table('sys_files')
    op.drop_table('sys_users')
