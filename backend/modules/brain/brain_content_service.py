"""
知识库内容业务逻辑
链接与文件的增删改查、移动、上传
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ErrorCode, BusinessException, NotFoundException
from models import FileRecord
from utils.storage import get_storage_manager

from .brain_models import BrainCollection, BrainContent
from .brain_schemas import ContentCreate, ContentUpdate, ContentStats

logger = logging.getLogger(__name__)


def file_download_path(content_id: int) -> str:
    """上传文件的下载地址"""
    return f"/api/v1/brain/contents/{content_id}/file"


class ContentService:
    """内容服务"""

    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id  # 所有操作都限定在当前用户

    async def _require_owned_collection(self, collection_id: int) -> None:
        exists = await self.db.scalar(
            select(BrainCollection.id).where(
                and_(
                    BrainCollection.id == collection_id,
                    BrainCollection.user_id == self.user_id
                )
            )
        )
        if exists is None:
            raise NotFoundException("收藏夹", collection_id, code=ErrorCode.BRAIN_COLLECTION_NOT_FOUND)

    # ============ 查询 ============

    async def get_content(self, content_id: int) -> Optional[BrainContent]:
        """获取内容（验证用户权限）"""
        result = await self.db.execute(
            select(BrainContent).where(
                and_(
                    BrainContent.id == content_id,
                    BrainContent.user_id == self.user_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def require_content(self, content_id: int) -> BrainContent:
        content = await self.get_content(content_id)
        if not content:
            raise NotFoundException("内容", content_id, code=ErrorCode.BRAIN_CONTENT_NOT_FOUND)
        return content

    async def list_contents(
        self,
        collection_id: Optional[int] = None,
        uncategorized: bool = False,
        content_type: Optional[str] = None,
        page: int = 1,
        size: int = 20
    ) -> Tuple[List[BrainContent], int]:
        """获取内容列表（新建的在前）"""
        conditions = [BrainContent.user_id == self.user_id]
        if uncategorized:
            conditions.append(BrainContent.collection_id.is_(None))
        elif collection_id is not None:
            conditions.append(BrainContent.collection_id == collection_id)
        if content_type:
            conditions.append(BrainContent.type == content_type)

        total = await self.db.scalar(select(func.count(BrainContent.id)).where(*conditions))

        result = await self.db.execute(
            select(BrainContent)
            .where(*conditions)
            .order_by(BrainContent.created_at.desc(), BrainContent.id.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total or 0

    async def get_stats(self) -> ContentStats:
        """按类型统计内容数量"""
        result = await self.db.execute(
            select(BrainContent.type, func.count(BrainContent.id))
            .where(BrainContent.user_id == self.user_id)
            .group_by(BrainContent.type)
        )
        by_type = {row[0]: row[1] for row in result}

        uncategorized = await self.db.scalar(
            select(func.count(BrainContent.id)).where(
                and_(
                    BrainContent.user_id == self.user_id,
                    BrainContent.collection_id.is_(None)
                )
            )
        )
        return ContentStats(
            total=sum(by_type.values()),
            link=by_type.get("link", 0),
            file=by_type.get("file", 0),
            uncategorized=uncategorized or 0
        )

    # ============ 写操作 ============

    async def create_content(self, data: ContentCreate) -> BrainContent:
        """创建内容；未指定收藏夹时为未分类"""
        if data.collection_id is not None:
            await self._require_owned_collection(data.collection_id)

        content = BrainContent(
            title=data.title,
            type=data.type,
            link=data.link,
            description=data.description,
            tags=data.tags,
            collection_id=data.collection_id,
            user_id=self.user_id
        )
        self.db.add(content)
        await self.db.commit()
        await self.db.refresh(content)
        return content

    async def update_content(self, content_id: int, data: ContentUpdate) -> BrainContent:
        """
        更新内容

        只处理请求中出现的字段；collection_id 显式为 null 时移到未分类
        """
        content = await self.require_content(content_id)
        fields = data.model_fields_set

        if "collection_id" in fields:
            if data.collection_id is not None:
                await self._require_owned_collection(data.collection_id)
            content.collection_id = data.collection_id

        if "title" in fields and data.title is not None:
            content.title = data.title
        if "description" in fields:
            content.description = data.description
        if "link" in fields and content.type == "link":
            content.link = data.link
        if "tags" in fields:
            content.tags = data.tags or []

        await self.db.commit()
        await self.db.refresh(content)
        return content

    async def move_content(self, content_id: int, collection_id: Optional[int]) -> BrainContent:
        """移动内容到指定收藏夹；collection_id 为 None 表示移到未分类"""
        content = await self.require_content(content_id)
        if collection_id is not None:
            await self._require_owned_collection(collection_id)

        content.collection_id = collection_id
        await self.db.commit()
        await self.db.refresh(content)
        return content

    async def delete_content(self, content_id: int) -> None:
        """删除内容；上传的文件尽力删除，失败只记录日志"""
        content = await self.require_content(content_id)

        storage_path = None
        if content.file_id is not None:
            record = await self.db.get(FileRecord, content.file_id)
            if record is not None:
                storage_path = record.storage_path
                await self.db.delete(record)

        await self.db.delete(content)
        await self.db.commit()

        if storage_path and not get_storage_manager().delete_file(storage_path):
            logger.warning(f"内容已删除，但文件清理失败: {storage_path} (content_id: {content_id})")

    async def upload_file(
        self,
        filename: str,
        data: bytes,
        title: Optional[str] = None,
        description: Optional[str] = None,
        collection_id: Optional[int] = None,
        mime_type: Optional[str] = None
    ) -> BrainContent:
        """保存上传的文件并创建 file 类型内容，标题默认为文件名"""
        if collection_id is not None:
            await self._require_owned_collection(collection_id)

        storage = get_storage_manager()
        valid, error = storage.validate_file(filename, len(data), data)
        if not valid:
            code = ErrorCode.FILE_TOO_LARGE if len(data) > storage.max_size else ErrorCode.FILE_TYPE_NOT_ALLOWED
            raise BusinessException(code, error)

        storage_path = storage.save_file(data, filename, self.user_id)
        try:
            content = await self._create_file_content(
                filename, data, storage_path, title, description, collection_id,
                storage.guess_mime(data) or mime_type
            )
        except SQLAlchemyError:
            await self.db.rollback()
            storage.delete_file(storage_path)
            raise

        logger.info(f"上传文件: {filename} ({len(data)} 字节, content_id: {content.id}, user_id: {self.user_id})")
        return content

    async def _create_file_content(
        self,
        filename: str,
        data: bytes,
        storage_path: str,
        title: Optional[str],
        description: Optional[str],
        collection_id: Optional[int],
        mime_type: Optional[str]
    ) -> BrainContent:
        record = FileRecord(
            filename=filename,
            storage_path=storage_path,
            file_size=len(data),
            mime_type=mime_type,
            uploader_id=self.user_id
        )
        self.db.add(record)
        await self.db.flush()

        content = BrainContent(
            title=(title or "").strip() or filename,
            type="file",
            description=description,
            tags=[],
            collection_id=collection_id,
            file_id=record.id,
            user_id=self.user_id
        )
        self.db.add(content)
        await self.db.flush()
        content.link = file_download_path(content.id)

        await self.db.commit()
        await self.db.refresh(content)
        return content

    async def get_file(self, content_id: int) -> FileRecord:
        """获取内容关联的文件记录"""
        content = await self.require_content(content_id)
        record = await self.db.get(FileRecord, content.file_id) if content.file_id else None
        if record is None:
            raise NotFoundException("文件", content_id)
        return record
