"""
收藏夹业务逻辑
包含严格的用户隔离校验：他人的收藏夹与不存在的收藏夹对调用方表现一致
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, delete, update, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import (
    ErrorCode, BusinessException, NotFoundException, DependencyException
)
from models import FileRecord
from utils.storage import get_storage_manager

from .brain_models import BrainCollection, BrainContent
from .brain_schemas import (
    CollectionCreate, CollectionUpdate, CollectionInfo, CollectionTreeNode,
    DeleteImpact, DeleteMode, DeleteResult, ParentOption
)
from .brain_tree import build_collection_tree, build_descendant_map, build_parent_options

logger = logging.getLogger(__name__)


class CollectionService:
    """收藏夹服务"""

    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id  # 所有操作都限定在当前用户

    # ============ 查询 ============

    async def _content_counts(self) -> Dict[int, int]:
        """一次查询统计每个收藏夹的直属内容数量"""
        result = await self.db.execute(
            select(
                BrainContent.collection_id,
                func.count(BrainContent.id).label("count")
            ).where(
                and_(
                    BrainContent.user_id == self.user_id,
                    BrainContent.collection_id.isnot(None)
                )
            ).group_by(BrainContent.collection_id)
        )
        return {row.collection_id: row.count for row in result}

    async def _all_collections(self) -> List[BrainCollection]:
        result = await self.db.execute(
            select(BrainCollection)
            .where(BrainCollection.user_id == self.user_id)
            .order_by(BrainCollection.created_at.desc(), BrainCollection.id.desc())
        )
        return list(result.scalars().all())

    def _to_info(self, collection: BrainCollection, counts: Dict[int, int]) -> CollectionInfo:
        info = CollectionInfo.model_validate(collection)
        info.content_count = counts.get(collection.id, 0)
        return info

    async def list_collections(self) -> List[CollectionInfo]:
        """获取全部收藏夹（新建的在前），附带实时内容数量"""
        collections = await self._all_collections()
        counts = await self._content_counts()
        return [self._to_info(c, counts) for c in collections]

    async def get_collection(self, collection_id: int) -> Optional[BrainCollection]:
        """获取收藏夹（验证用户权限）"""
        result = await self.db.execute(
            select(BrainCollection).where(
                and_(
                    BrainCollection.id == collection_id,
                    BrainCollection.user_id == self.user_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def require_collection(self, collection_id: int) -> BrainCollection:
        """获取收藏夹，不存在或无权访问时抛出 404"""
        collection = await self.get_collection(collection_id)
        if not collection:
            raise NotFoundException("收藏夹", collection_id, code=ErrorCode.BRAIN_COLLECTION_NOT_FOUND)
        return collection

    async def get_collection_info(self, collection_id: int) -> CollectionInfo:
        collection = await self.require_collection(collection_id)
        count = await self.db.scalar(
            select(func.count(BrainContent.id)).where(
                and_(
                    BrainContent.user_id == self.user_id,
                    BrainContent.collection_id == collection_id
                )
            )
        )
        return self._to_info(collection, {collection_id: count or 0})

    async def get_collection_contents(self, collection_id: int) -> Tuple[BrainCollection, List[BrainContent]]:
        """获取收藏夹及其直属内容（新建的在前）"""
        collection = await self.require_collection(collection_id)
        result = await self.db.execute(
            select(BrainContent).where(
                and_(
                    BrainContent.user_id == self.user_id,
                    BrainContent.collection_id == collection_id
                )
            ).order_by(BrainContent.created_at.desc(), BrainContent.id.desc())
        )
        return collection, list(result.scalars().all())

    async def get_tree(self, collections: Optional[List[CollectionInfo]] = None) -> List[CollectionTreeNode]:
        """获取收藏夹树；可传入已缓存的列表避免重复查询"""
        if collections is None:
            collections = await self.list_collections()
        return build_collection_tree(collections)

    async def get_parent_options(
        self,
        exclude_id: Optional[int] = None,
        collections: Optional[List[CollectionInfo]] = None
    ) -> List[ParentOption]:
        tree = await self.get_tree(collections)
        return build_parent_options(tree, exclude_id)

    async def _name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        query = select(BrainCollection.id).where(
            and_(
                BrainCollection.user_id == self.user_id,
                BrainCollection.name == name
            )
        )
        if exclude_id is not None:
            query = query.where(BrainCollection.id != exclude_id)
        return (await self.db.scalar(query.limit(1))) is not None

    # ============ 写操作 ============

    async def _commit_unique(self, name: str) -> None:
        """提交；同名冲突（包括并发创建）统一转为业务异常"""
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise BusinessException(
                ErrorCode.BRAIN_COLLECTION_NAME_EXISTS,
                f"收藏夹「{name}」已存在"
            )

    async def create_collection(self, data: CollectionCreate) -> BrainCollection:
        """创建收藏夹"""
        if data.parent_id is not None:
            await self.require_collection(data.parent_id)

        if await self._name_exists(data.name):
            raise BusinessException(
                ErrorCode.BRAIN_COLLECTION_NAME_EXISTS,
                f"收藏夹「{data.name}」已存在"
            )

        collection = BrainCollection(
            name=data.name,
            description=data.description,
            icon=data.icon,
            color=data.color,
            parent_id=data.parent_id,
            user_id=self.user_id,
            is_default=False
        )
        self.db.add(collection)
        await self._commit_unique(data.name)
        await self.db.refresh(collection)
        logger.info(f"创建收藏夹: {collection.name} (id: {collection.id}, user_id: {self.user_id})")
        return collection

    async def ensure_default_collection(self, name: str) -> BrainCollection:
        """创建（或返回已有的）受保护默认收藏夹"""
        result = await self.db.execute(
            select(BrainCollection).where(
                and_(
                    BrainCollection.user_id == self.user_id,
                    BrainCollection.is_default.is_(True)
                )
            ).limit(1)
        )
        existing = result.scalar_one_or_none()
        if existing:
            return existing

        collection = BrainCollection(name=name, user_id=self.user_id, is_default=True)
        self.db.add(collection)
        await self._commit_unique(name)
        await self.db.refresh(collection)
        return collection

    async def update_collection(self, collection_id: int, data: CollectionUpdate) -> BrainCollection:
        """更新收藏夹，仅修改请求中出现的字段"""
        collection = await self.require_collection(collection_id)

        update_data = data.model_dump(exclude_unset=True)
        # 名称、图标、颜色不允许置空；描述可以清空
        update_data = {
            key: value for key, value in update_data.items()
            if value is not None or key == "description"
        }

        new_name = update_data.get("name")
        if new_name is not None:
            if collection.is_default:
                raise BusinessException(
                    ErrorCode.BRAIN_DEFAULT_COLLECTION_PROTECTED,
                    "默认收藏夹不能重命名"
                )
            if new_name != collection.name and await self._name_exists(new_name, exclude_id=collection_id):
                raise BusinessException(
                    ErrorCode.BRAIN_COLLECTION_NAME_EXISTS,
                    f"收藏夹「{new_name}」已存在"
                )

        for key, value in update_data.items():
            setattr(collection, key, value)

        await self._commit_unique(collection.name)
        await self.db.refresh(collection)
        return collection

    async def _subtree_ids(self, collection_id: int) -> List[int]:
        """从一次查询构建的树中取出收藏夹及其全部后代"""
        tree = build_collection_tree(await self._all_collections())
        descendants = build_descendant_map(tree).get(collection_id, [])
        return [collection_id, *descendants]

    async def get_delete_impact(self, collection_id: int) -> DeleteImpact:
        """评估删除影响，供客户端选择删除方式"""
        await self.require_collection(collection_id)
        collections = await self.list_collections()
        tree = build_collection_tree(collections)
        descendants = build_descendant_map(tree).get(collection_id, [])

        counts = {c.id: c.content_count for c in collections}
        child_count = sum(1 for c in collections if c.parent_id == collection_id)
        return DeleteImpact(
            has_children=child_count > 0,
            child_count=child_count,
            descendant_count=len(descendants),
            content_count=counts.get(collection_id, 0),
            subtree_content_count=sum(counts.get(i, 0) for i in [collection_id, *descendants])
        )

    async def delete_collection(self, collection_id: int, mode: DeleteMode = "promote") -> DeleteResult:
        """
        删除收藏夹

        - promote: 直属子收藏夹上移到被删除者的父级，直属内容变为未分类
        - cascade: 删除整棵子树及其中的所有内容

        所有步骤在同一事务中提交，失败时整体回滚
        """
        collection = await self.require_collection(collection_id)
        if collection.is_default:
            raise BusinessException(
                ErrorCode.BRAIN_DEFAULT_COLLECTION_PROTECTED,
                "默认收藏夹不能删除"
            )

        try:
            if mode == "cascade":
                result = await self._delete_cascade(collection)
            else:
                result = await self._delete_promote(collection)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"删除收藏夹失败 (id: {collection_id}, mode: {mode}): {e}")
            raise DependencyException(ErrorCode.DATABASE_ERROR, "删除收藏夹失败，数据未改动")

        # 数据库提交成功后再清理文件
        storage = get_storage_manager()
        for path in result.storage_paths:
            storage.delete_file(path)

        logger.info(
            f"删除收藏夹 (id: {collection_id}, mode: {mode}, user_id: {self.user_id}): "
            f"收藏夹 {len(result.deleted_collection_ids)} 个, "
            f"上移 {len(result.promoted_collection_ids)} 个, "
            f"删除内容 {result.deleted_content_count} 条, "
            f"转为未分类 {result.uncategorized_content_count} 条"
        )
        return result

    async def _delete_promote(self, collection: BrainCollection) -> DeleteResult:
        children = await self.db.execute(
            select(BrainCollection.id).where(
                and_(
                    BrainCollection.user_id == self.user_id,
                    BrainCollection.parent_id == collection.id
                )
            )
        )
        child_ids = list(children.scalars().all())

        if child_ids:
            await self.db.execute(
                update(BrainCollection)
                .where(BrainCollection.id.in_(child_ids))
                .values(parent_id=collection.parent_id)
            )

        moved = await self.db.execute(
            update(BrainContent)
            .where(
                and_(
                    BrainContent.user_id == self.user_id,
                    BrainContent.collection_id == collection.id
                )
            )
            .values(collection_id=None)
        )

        await self.db.delete(collection)
        await self.db.flush()

        return DeleteResult(
            mode="promote",
            deleted_collection_ids=[collection.id],
            promoted_collection_ids=child_ids,
            uncategorized_content_count=moved.rowcount or 0
        )

    async def _delete_cascade(self, collection: BrainCollection) -> DeleteResult:
        subtree_ids = await self._subtree_ids(collection.id)

        protected = await self.db.scalar(
            select(func.count(BrainCollection.id)).where(
                and_(
                    BrainCollection.id.in_(subtree_ids),
                    BrainCollection.is_default.is_(True)
                )
            )
        )
        if protected:
            raise BusinessException(
                ErrorCode.BRAIN_DEFAULT_COLLECTION_PROTECTED,
                "子收藏夹中包含默认收藏夹，无法级联删除"
            )

        content_filter = and_(
            BrainContent.user_id == self.user_id,
            BrainContent.collection_id.in_(subtree_ids)
        )

        files = await self.db.execute(
            select(FileRecord.id, FileRecord.storage_path)
            .join(BrainContent, BrainContent.file_id == FileRecord.id)
            .where(content_filter)
        )
        file_rows = files.all()

        deleted = await self.db.execute(delete(BrainContent).where(content_filter))

        if file_rows:
            await self.db.execute(
                delete(FileRecord).where(FileRecord.id.in_([row.id for row in file_rows]))
            )

        await self.db.execute(
            delete(BrainCollection).where(
                and_(
                    BrainCollection.user_id == self.user_id,
                    BrainCollection.id.in_(subtree_ids)
                )
            )
        )

        return DeleteResult(
            mode="cascade",
            deleted_collection_ids=subtree_ids,
            deleted_content_count=deleted.rowcount or 0,
            storage_paths=[row.storage_path for row in file_rows]
        )
