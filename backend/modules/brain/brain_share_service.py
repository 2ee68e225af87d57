"""
知识库公开分享
每个用户有一个不可猜测的分享令牌；公开后任何人可只读浏览其全部内容
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ErrorCode, NotFoundException, PermissionException
from models import User
from models.account import generate_brain_link

from .brain_models import BrainContent
from .brain_schemas import ContentInfo, PublicBrain, ShareInfo

logger = logging.getLogger(__name__)


class ShareService:
    """分享服务"""

    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def _get_user(self) -> User:
        user = await self.db.get(User, self.user_id)
        if user is None:
            raise NotFoundException("用户", self.user_id, code=ErrorCode.ACCOUNT_NOT_FOUND)
        return user

    async def get_share_info(self) -> ShareInfo:
        """获取分享链接与公开状态，缺少令牌时补发"""
        user = await self._get_user()
        if not user.brain_link:
            user.brain_link = generate_brain_link()
            await self.db.commit()
        return ShareInfo(brain_link=user.brain_link, is_brain_public=user.is_brain_public)

    async def set_visibility(self, is_public: bool) -> ShareInfo:
        user = await self._get_user()
        user.is_brain_public = is_public
        await self.db.commit()
        logger.info(f"知识库{'已公开' if is_public else '已设为私有'} (user_id: {self.user_id})")
        return await self.get_share_info()

    async def regenerate_link(self) -> ShareInfo:
        """重新生成分享令牌，旧链接立即失效"""
        user = await self._get_user()
        user.brain_link = generate_brain_link()
        await self.db.commit()
        logger.info(f"分享链接已重置 (user_id: {self.user_id})")
        return ShareInfo(brain_link=user.brain_link, is_brain_public=user.is_brain_public)

    @staticmethod
    async def get_public_brain(db: AsyncSession, brain_link: str) -> PublicBrain:
        """
        通过分享令牌获取公开知识库（无需登录）

        Raises:
            NotFoundException: 令牌不存在
            PermissionException: 知识库未公开
        """
        result = await db.execute(select(User).where(User.brain_link == brain_link))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundException("分享链接", code=ErrorCode.BRAIN_LINK_NOT_FOUND)
        if not user.is_brain_public:
            raise PermissionException("该知识库未公开", code=ErrorCode.BRAIN_PRIVATE)

        contents = await db.execute(
            select(BrainContent)
            .where(BrainContent.user_id == user.id)
            .order_by(BrainContent.created_at.desc(), BrainContent.id.desc())
        )
        items: List[ContentInfo] = [ContentInfo.model_validate(c) for c in contents.scalars().all()]
        return PublicBrain(username=user.username, contents=items)
