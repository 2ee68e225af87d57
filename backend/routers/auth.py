"""
认证路由
用户注册、登录、令牌管理
"""

import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from core.database import get_db
from core.security import (
    hash_password,
    verify_password,
    create_token_pair,
    decode_token,
    TokenData,
    TokenResponse,
    get_current_user
)
from core.config import get_settings
from models import User
from schemas import UserCreate, UserLogin, UserUpdate, UserInfo, success
from modules.brain.brain_collection_service import CollectionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["认证"])

REFRESH_EXPIRES_IN = 30 * 24 * 60 * 60  # 30天（秒）


def _issue_tokens(user: User) -> dict:
    access_token, refresh_token = create_token_pair(
        TokenData(user_id=user.id, username=user.username)
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=get_settings().jwt_expire_minutes * 60,
        refresh_expires_in=REFRESH_EXPIRES_IN
    ).model_dump()


@router.post("/register")
async def register(data: UserCreate, db: AsyncSession = Depends(get_db)):
    """用户注册，同时创建默认收藏夹"""
    result = await db.execute(select(User).where(User.username == data.username))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="用户名已存在")

    user = User(
        username=data.username,
        password_hash=hash_password(data.password),
        nickname=data.nickname or data.username,
        is_active=True
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    default_name = get_settings().default_collection_name
    if default_name:
        await CollectionService(db, user.id).ensure_default_collection(default_name)

    logger.info(f"新用户注册: {user.username} (id: {user.id})")
    return success({"id": user.id, "username": user.username}, "注册成功")


@router.post("/login")
async def login(data: UserLogin, request: Request, db: AsyncSession = Depends(get_db)):
    """用户登录"""
    client_ip = request.client.host if request.client else "unknown"

    result = await db.execute(select(User).where(User.username == data.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(data.password, user.password_hash):
        logger.warning(f"登录失败 - IP: {client_ip}, 用户名: {data.username}")
        raise HTTPException(status_code=401, detail="用户名或密码错误")

    if not user.is_active:
        logger.warning(f"登录被阻止 - IP: {client_ip}, 用户ID: {user.id}, 原因: 账户已禁用")
        raise HTTPException(status_code=403, detail="账户已被禁用")

    user.last_login = datetime.now(timezone.utc)
    await db.commit()

    tokens = _issue_tokens(user)
    tokens["user"] = {
        "id": user.id,
        "username": user.username,
        "nickname": user.nickname
    }
    return success(tokens)


@router.get("/me")
async def get_me(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """获取当前用户信息"""
    user = await db.get(User, current_user.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="用户不存在")

    return success(UserInfo.model_validate(user).model_dump())


@router.put("/profile")
async def update_profile(
    data: UserUpdate,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    更新当前用户的个人资料
    可修改昵称和用户名，至少提供一项
    """
    if data.nickname is None and data.username is None:
        raise HTTPException(status_code=400, detail="请至少提供一项要修改的资料")

    user = await db.get(User, current_user.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="用户不存在")

    if data.username is not None and data.username != user.username:
        # 检查用户名是否被其他用户占用
        existing = await db.execute(
            select(User).where(User.username == data.username, User.id != user.id)
        )
        if existing.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="用户名已被其他用户使用")
        user.username = data.username

    if data.nickname is not None:
        user.nickname = data.nickname

    await db.commit()
    await db.refresh(user)

    logger.info(f"用户更新资料: {user.username} (id: {user.id})")
    return success(UserInfo.model_validate(user).model_dump(), "资料已更新")


class RefreshTokenRequest(BaseModel):
    """刷新令牌请求"""
    refresh_token: str


@router.post("/refresh")
async def refresh_token(data: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    """使用刷新令牌换取新的令牌对"""
    token_data = decode_token(data.refresh_token, expected_type="refresh")
    if not token_data:
        raise HTTPException(status_code=401, detail="无效的刷新令牌")

    user = await db.get(User, token_data.user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="用户不存在或已被禁用")

    return success(_issue_tokens(user))
