"""
知识库API路由
RESTful风格；除公开知识库外，所有接口都需要认证且限定用户
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.deps import get_collection_cache
from core.errors import NotFoundException
from core.security import get_current_user, TokenData
from schemas import success, paginate
from utils.storage import get_storage_manager

from .brain_cache import CollectionListCache
from .brain_collection_service import CollectionService
from .brain_content_service import ContentService
from .brain_schemas import (
    CollectionCreate, CollectionUpdate, CollectionInfo,
    ContentCreate, ContentUpdate, ContentMove, ContentInfo, ContentType,
    DeleteMode, SearchSort, SearchType, VisibilityUpdate
)
from .brain_search_service import SearchService
from .brain_share_service import ShareService

router = APIRouter()


def get_collection_service(db: AsyncSession, user: TokenData) -> CollectionService:
    """创建收藏夹服务实例"""
    return CollectionService(db, user.user_id)


def get_content_service(db: AsyncSession, user: TokenData) -> ContentService:
    """创建内容服务实例"""
    return ContentService(db, user.user_id)


async def load_collections(
    service: CollectionService,
    cache: CollectionListCache,
    refresh: bool = False
):
    """经缓存读取收藏夹列表"""
    return await cache.get(service.user_id, service.list_collections, force_refresh=refresh)


def _content(content) -> dict:
    return ContentInfo.model_validate(content).model_dump()


# ============ 收藏夹接口 ============

@router.get("/collections")
async def list_collections(
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """获取收藏夹列表（实时内容数量，新建的在前）"""
    service = get_collection_service(db, user)
    collections = await load_collections(service, cache, refresh=True)
    return success([c.model_dump() for c in collections])


@router.get("/collections/tree")
async def get_collection_tree(
    refresh: bool = False,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """获取收藏夹树（带缓存，refresh=true 强制刷新）"""
    service = get_collection_service(db, user)
    collections = await load_collections(service, cache, refresh)
    tree = await service.get_tree(collections)
    return success([node.model_dump() for node in tree])


@router.get("/collections/options")
async def get_parent_options(
    exclude_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """获取父收藏夹下拉选项（按层级缩进）"""
    service = get_collection_service(db, user)
    collections = await load_collections(service, cache)
    options = await service.get_parent_options(exclude_id, collections)
    return success([o.model_dump() for o in options])


@router.post("/collections")
async def create_collection(
    data: CollectionCreate,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """创建收藏夹"""
    service = get_collection_service(db, user)
    collection = await service.create_collection(data)
    cache.invalidate(user.user_id)
    return success(CollectionInfo.model_validate(collection).model_dump(), "创建成功")


@router.get("/collections/{collection_id}")
async def get_collection(
    collection_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """获取收藏夹详情"""
    service = get_collection_service(db, user)
    info = await service.get_collection_info(collection_id)
    return success(info.model_dump())


@router.put("/collections/{collection_id}")
async def update_collection(
    collection_id: int,
    data: CollectionUpdate,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """更新收藏夹（默认收藏夹不可重命名）"""
    service = get_collection_service(db, user)
    await service.update_collection(collection_id, data)
    cache.invalidate(user.user_id)
    info = await service.get_collection_info(collection_id)
    return success(info.model_dump(), "更新成功")


@router.get("/collections/{collection_id}/impact")
async def get_delete_impact(
    collection_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """删除前评估：是否有子收藏夹、内容数量"""
    service = get_collection_service(db, user)
    impact = await service.get_delete_impact(collection_id)
    return success(impact.model_dump())


@router.delete("/collections/{collection_id}")
async def delete_collection(
    collection_id: int,
    mode: DeleteMode = Query("promote"),
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """
    删除收藏夹

    mode=promote（默认）：子收藏夹上移一级，内容变为未分类
    mode=cascade：删除整棵子树及其中的内容
    """
    service = get_collection_service(db, user)
    result = await service.delete_collection(collection_id, mode)
    cache.invalidate(user.user_id)
    return success(result.model_dump(), "删除成功")


@router.get("/collections/{collection_id}/contents")
async def get_collection_contents(
    collection_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """获取收藏夹及其内容"""
    service = get_collection_service(db, user)
    collection, contents = await service.get_collection_contents(collection_id)
    info = CollectionInfo.model_validate(collection)
    info.content_count = len(contents)
    return success({
        "collection": info.model_dump(),
        "contents": [_content(c) for c in contents]
    })


# ============ 内容接口 ============

@router.get("/contents")
async def list_contents(
    collection_id: Optional[int] = None,
    uncategorized: bool = False,
    content_type: Optional[ContentType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """获取内容列表"""
    service = get_content_service(db, user)
    contents, total = await service.list_contents(
        collection_id=collection_id,
        uncategorized=uncategorized,
        content_type=content_type,
        page=page,
        size=size
    )
    return paginate([_content(c) for c in contents], total, page, size)


@router.post("/contents")
async def create_content(
    data: ContentCreate,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """创建内容"""
    service = get_content_service(db, user)
    content = await service.create_content(data)
    cache.invalidate(user.user_id)
    return success(_content(content), "创建成功")


@router.post("/contents/upload")
async def upload_content(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    collection_id: Optional[int] = Form(None),
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """上传文件并保存为 file 类型内容"""
    service = get_content_service(db, user)
    data = await file.read()
    content = await service.upload_file(
        filename=file.filename or "upload",
        data=data,
        title=title,
        description=description,
        collection_id=collection_id,
        mime_type=file.content_type
    )
    cache.invalidate(user.user_id)
    return success(_content(content), "上传成功")


@router.get("/contents/stats")
async def get_content_stats(
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """内容统计"""
    service = get_content_service(db, user)
    stats = await service.get_stats()
    return success(stats.model_dump())


@router.get("/contents/{content_id}")
async def get_content(
    content_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """获取内容详情"""
    service = get_content_service(db, user)
    content = await service.require_content(content_id)
    return success(_content(content))


@router.put("/contents/{content_id}")
async def update_content(
    content_id: int,
    data: ContentUpdate,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """更新内容（collection_id 传 null 表示移到未分类）"""
    service = get_content_service(db, user)
    content = await service.update_content(content_id, data)
    cache.invalidate(user.user_id)
    return success(_content(content), "更新成功")


@router.put("/contents/{content_id}/move")
async def move_content(
    content_id: int,
    data: ContentMove,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """移动内容到收藏夹"""
    service = get_content_service(db, user)
    content = await service.move_content(content_id, data.collection_id)
    cache.invalidate(user.user_id)
    return success(_content(content), "移动成功")


@router.delete("/contents/{content_id}")
async def delete_content(
    content_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user),
    cache: CollectionListCache = Depends(get_collection_cache)
):
    """删除内容"""
    service = get_content_service(db, user)
    await service.delete_content(content_id)
    cache.invalidate(user.user_id)
    return success(message="删除成功")


@router.get("/contents/{content_id}/file")
async def download_content_file(
    content_id: int,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """下载上传的文件"""
    service = get_content_service(db, user)
    record = await service.get_file(content_id)
    path = get_storage_manager().get_file_path(record.storage_path)
    if path is None:
        raise NotFoundException("文件", content_id)
    return FileResponse(
        path,
        filename=record.filename,
        media_type=record.mime_type or "application/octet-stream"
    )


# ============ 检索接口 ============

@router.get("/search")
async def search_contents(
    query: Optional[str] = None,
    content_type: SearchType = Query("all", alias="type"),
    sort_by: SearchSort = "relevance",
    collection_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """检索标题和描述"""
    service = SearchService(db, user.user_id)
    result = await service.search(query, content_type, sort_by, collection_id)
    return success(result.model_dump())


# ============ 分享接口 ============

@router.get("/share")
async def get_share_info(
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """获取分享链接与公开状态"""
    info = await ShareService(db, user.user_id).get_share_info()
    return success(info.model_dump())


@router.put("/share/visibility")
async def set_share_visibility(
    data: VisibilityUpdate,
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """公开或隐藏知识库"""
    info = await ShareService(db, user.user_id).set_visibility(data.is_public)
    return success(info.model_dump(), "已公开" if data.is_public else "已设为私有")


@router.post("/share/regenerate")
async def regenerate_share_link(
    db: AsyncSession = Depends(get_db),
    user: TokenData = Depends(get_current_user)
):
    """重新生成分享链接（旧链接失效）"""
    info = await ShareService(db, user.user_id).regenerate_link()
    return success(info.model_dump(), "分享链接已重置")


@router.get("/public/{brain_link}")
async def get_public_brain(brain_link: str, db: AsyncSession = Depends(get_db)):
    """浏览公开的知识库（无需登录）"""
    brain = await ShareService.get_public_brain(db, brain_link)
    return success(brain.model_dump())
