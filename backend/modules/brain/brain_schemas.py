"""
知识库数据验证模式
"""

from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, StrictBool, field_validator

from .brain_models import DEFAULT_COLLECTION_ICON, DEFAULT_COLLECTION_COLOR


ContentType = Literal["link", "file"]
SearchType = Literal["all", "link", "file"]
SearchSort = Literal["relevance", "date", "title"]
DeleteMode = Literal["promote", "cascade"]


def _strip_required(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label}不能为空")
    return value


# ============ 收藏夹 ============

class CollectionCreate(BaseModel):
    """创建收藏夹"""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    icon: str = Field(default=DEFAULT_COLLECTION_ICON, max_length=20)
    color: str = Field(default=DEFAULT_COLLECTION_COLOR, max_length=20)
    parent_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return _strip_required(v, "收藏夹名称")


class CollectionUpdate(BaseModel):
    """更新收藏夹（只修改请求中出现的字段，父收藏夹不可修改）"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    icon: Optional[str] = Field(None, max_length=20)
    color: Optional[str] = Field(None, max_length=20)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is None:
            return v
        return _strip_required(v, "收藏夹名称")


class CollectionInfo(BaseModel):
    """收藏夹信息"""
    id: int
    name: str
    description: Optional[str] = None
    icon: str = DEFAULT_COLLECTION_ICON
    color: str = DEFAULT_COLLECTION_COLOR
    is_default: bool = False
    parent_id: Optional[int] = None
    content_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CollectionTreeNode(CollectionInfo):
    """收藏夹树节点"""
    depth: int = 0
    children: List["CollectionTreeNode"] = []


CollectionTreeNode.model_rebuild()


class ParentOption(BaseModel):
    """父收藏夹下拉选项"""
    id: int
    name: str
    depth: int
    label: str


class DeleteImpact(BaseModel):
    """删除前的影响评估"""
    has_children: bool
    child_count: int
    descendant_count: int
    content_count: int
    subtree_content_count: int


class DeleteResult(BaseModel):
    """删除结果"""
    mode: DeleteMode
    deleted_collection_ids: List[int] = []
    promoted_collection_ids: List[int] = []
    uncategorized_content_count: int = 0
    deleted_content_count: int = 0
    storage_paths: List[str] = Field(default=[], exclude=True)


# ============ 内容 ============

class ContentCreate(BaseModel):
    """创建内容"""
    title: str = Field(..., min_length=1, max_length=255)
    type: ContentType = "link"
    link: Optional[str] = Field(None, max_length=1000)
    description: Optional[str] = None
    tags: List[str] = []
    collection_id: Optional[int] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        return _strip_required(v, "标题")


class ContentUpdate(BaseModel):
    """
    更新内容

    未出现的字段保持不变；collection_id 显式传 null 表示移到未分类
    """
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    link: Optional[str] = Field(None, max_length=1000)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    collection_id: Optional[int] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        if v is None:
            return v
        return _strip_required(v, "标题")


class ContentMove(BaseModel):
    """移动内容"""
    collection_id: Optional[int] = None  # None 表示移到未分类


class ContentInfo(BaseModel):
    """内容信息"""
    id: int
    title: str
    type: str
    link: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = []
    collection_id: Optional[int] = None
    file_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @field_validator("tags", mode="before")
    @classmethod
    def default_tags(cls, v):
        return v or []


class ContentStats(BaseModel):
    """内容统计"""
    total: int = 0
    link: int = 0
    file: int = 0
    uncategorized: int = 0


# ============ 搜索 ============

class SearchResultItem(ContentInfo):
    """搜索结果项"""
    score: Optional[int] = None


class SearchResult(BaseModel):
    """搜索结果"""
    query: str
    count: int
    items: List[SearchResultItem] = []


# ============ 分享 ============

class ShareInfo(BaseModel):
    """分享设置"""
    brain_link: str
    is_brain_public: bool


class VisibilityUpdate(BaseModel):
    """切换公开状态"""
    is_public: StrictBool


class PublicBrain(BaseModel):
    """公开的知识库"""
    username: str
    contents: List[ContentInfo] = []
