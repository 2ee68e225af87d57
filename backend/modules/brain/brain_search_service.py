"""
知识库检索
标题/描述子串匹配 + 相关度排序

相关度打分（不区分大小写，可叠加）：
    标题完全相同      +1000
    标题以关键词开头   +100
    标题包含关键词     +50
    描述以关键词开头   +20
    描述包含关键词     +10
"""

from typing import List, Optional, Tuple

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ValidationException

from .brain_models import BrainContent
from .brain_schemas import SearchResult, SearchResultItem, SearchSort, SearchType

SCORE_TITLE_EXACT = 1000
SCORE_TITLE_PREFIX = 100
SCORE_TITLE_CONTAINS = 50
SCORE_DESC_PREFIX = 20
SCORE_DESC_CONTAINS = 10


def score_content(title: Optional[str], description: Optional[str], query: str) -> int:
    """计算单条内容的相关度"""
    q = query.lower()
    title = (title or "").lower()
    description = (description or "").lower()

    score = 0
    if title == q:
        score += SCORE_TITLE_EXACT
    if title.startswith(q):
        score += SCORE_TITLE_PREFIX
    if q in title:
        score += SCORE_TITLE_CONTAINS
    if description.startswith(q):
        score += SCORE_DESC_PREFIX
    if q in description:
        score += SCORE_DESC_CONTAINS
    return score


def rank_by_relevance(contents: List[BrainContent], query: str) -> List[Tuple[BrainContent, int]]:
    """按相关度降序；稳定排序，同分保持输入（新建在前）顺序"""
    scored = [(content, score_content(content.title, content.description, query)) for content in contents]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


class SearchService:
    """检索服务"""

    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def _match(
        self,
        query: str,
        content_type: SearchType,
        collection_id: Optional[int]
    ) -> List[BrainContent]:
        needle = query.lower()
        conditions = [
            BrainContent.user_id == self.user_id,
            or_(
                func.lower(BrainContent.title).contains(needle, autoescape=True),
                func.lower(func.coalesce(BrainContent.description, "")).contains(needle, autoescape=True)
            )
        ]
        if content_type != "all":
            conditions.append(BrainContent.type == content_type)
        if collection_id is not None:
            # 只匹配该收藏夹本身，不包含子收藏夹
            conditions.append(BrainContent.collection_id == collection_id)

        result = await self.db.execute(
            select(BrainContent)
            .where(and_(*conditions))
            .order_by(BrainContent.created_at.desc(), BrainContent.id.desc())
        )
        return list(result.scalars().all())

    async def search(
        self,
        query: Optional[str],
        content_type: SearchType = "all",
        sort_by: SearchSort = "relevance",
        collection_id: Optional[int] = None
    ) -> SearchResult:
        """
        检索当前用户的内容

        Args:
            query: 关键词（必填，去除首尾空白后不能为空）
            content_type: all / link / file
            sort_by: relevance（默认）/ date / title
            collection_id: 限定在某个收藏夹内
        """
        query = (query or "").strip()
        if not query:
            raise ValidationException("请输入搜索关键词")

        contents = await self._match(query, content_type, collection_id)

        if sort_by == "relevance":
            items = []
            for content, score in rank_by_relevance(contents, query):
                item = SearchResultItem.model_validate(content)
                item.score = score
                items.append(item)
        else:
            if sort_by == "title":
                contents.sort(key=lambda c: c.title)
            # date：数据库已按创建时间降序返回
            items = [SearchResultItem.model_validate(c) for c in contents]

        return SearchResult(query=query, count=len(items), items=items)
