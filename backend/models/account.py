"""
账户数据模型
用户账号表，附带个人知识库的公开分享设置
"""

import secrets
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


def generate_brain_link() -> str:
    """生成不可猜测的分享令牌"""
    return secrets.token_urlsafe(16)


class User(Base):
    """用户表"""
    __tablename__ = "sys_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(128))
    nickname: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # 知识库分享：令牌唯一，默认不公开
    brain_link: Mapped[str] = mapped_column(String(64), unique=True, index=True, default=generate_brain_link)
    is_brain_public: Mapped[bool] = mapped_column(Boolean, default=False)

    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
