"""
知识库数据模型
表名遵循隔离协议：brain_前缀
收藏夹通过自引用支持无限层级
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Boolean, DateTime, Text, ForeignKey, JSON, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


CONTENT_TYPES = ("link", "file")
DEFAULT_COLLECTION_ICON = "📁"
DEFAULT_COLLECTION_COLOR = "#6B7280"


class BrainCollection(Base):
    """收藏夹（支持无限层级）"""
    __tablename__ = "brain_collections"
    __table_args__ = (
        # 同一用户下名称唯一，并发创建时由数据库兜底
        UniqueConstraint("user_id", "name", name="uq_brain_collection_user_name"),
        {"extend_existing": True, "comment": "知识库收藏夹表"},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    icon: Mapped[str] = mapped_column(String(20), default=DEFAULT_COLLECTION_ICON)
    color: Mapped[str] = mapped_column(String(20), default=DEFAULT_COLLECTION_COLOR)

    # 默认收藏夹不可重命名、不可删除
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    # 父收藏夹（创建后不可修改）
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("brain_collections.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # 所属用户（严格隔离）
    user_id: Mapped[int] = mapped_column(Integer, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)


class BrainContent(Base):
    """知识库内容（链接或文件）"""
    __tablename__ = "brain_contents"
    __table_args__ = (
        Index("idx_brain_content_user_created", "user_id", "created_at"),
        {"extend_existing": True, "comment": "知识库内容表"},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(20), default="link")  # link / file
    link: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)

    # 所属收藏夹（为空表示未分类）
    collection_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("brain_collections.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # 上传文件记录（仅 file 类型）
    file_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("sys_files.id", ondelete="SET NULL"),
        nullable=True
    )

    # 所属用户（严格隔离）
    user_id: Mapped[int] = mapped_column(Integer, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)
