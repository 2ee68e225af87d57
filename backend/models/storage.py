"""
文件存储数据模型
记录上传到知识库的文件
"""

from typing import Optional
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, ForeignKey

from core.database import Base


class FileRecord(Base):
    """文件记录表"""
    __tablename__ = "sys_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(255))  # 原始文件名
    storage_path: Mapped[str] = mapped_column(String(500))  # 相对上传目录的路径
    file_size: Mapped[int] = mapped_column(Integer)  # 字节
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    uploader_id: Mapped[int] = mapped_column(Integer, ForeignKey("sys_users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        {'mysql_engine': 'InnoDB', 'mysql_charset': 'utf8mb4', 'comment': '文件存储记录表'},
    )
