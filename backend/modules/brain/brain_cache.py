"""
收藏夹列表缓存
按用户缓存收藏夹列表（含内容数量），供侧边栏、树视图等高频读取使用

- 有效期内直接返回缓存
- 任何写操作后由路由层调用 invalidate() 使该用户缓存失效
- 重新加载失败时回退到最近一次成功的结果（若有），否则抛出原异常
"""

import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from cachetools import LRUCache, TTLCache

from .brain_schemas import CollectionInfo

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[List[CollectionInfo]]]


class CollectionListCache:
    """收藏夹列表缓存（进程内，按用户隔离）"""

    def __init__(
        self,
        ttl: float = 300,
        maxsize: int = 1024,
        timer: Callable[[], float] = time.monotonic
    ):
        self.ttl = ttl
        self._fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        # 最近一次成功加载的结果，不受有效期限制
        self._last_good: LRUCache = LRUCache(maxsize=maxsize)
        self._stats: Dict[str, int] = {"hits": 0, "misses": 0, "fallbacks": 0}

    async def get(self, user_id: int, loader: Loader, force_refresh: bool = False) -> List[CollectionInfo]:
        """
        获取用户的收藏夹列表

        Args:
            user_id: 用户ID
            loader: 缓存未命中时调用的加载函数
            force_refresh: 忽略有效期，强制重新加载
        """
        if not force_refresh:
            cached = self._fresh.get(user_id)
            if cached is not None:
                self._stats["hits"] += 1
                return list(cached)

        self._stats["misses"] += 1
        try:
            collections = await loader()
        except Exception as e:
            stale = self._last_good.get(user_id)
            if stale is None:
                raise
            self._stats["fallbacks"] += 1
            logger.warning(f"收藏夹列表加载失败，使用过期缓存 (user_id: {user_id}): {e}")
            return list(stale)

        self.put(user_id, collections)
        return list(collections)

    def put(self, user_id: int, collections: List[CollectionInfo]) -> None:
        """写入缓存"""
        snapshot = tuple(collections)
        self._fresh[user_id] = snapshot
        self._last_good[user_id] = snapshot

    def peek(self, user_id: int) -> Optional[List[CollectionInfo]]:
        """读取未过期的缓存，不触发加载"""
        cached = self._fresh.get(user_id)
        return list(cached) if cached is not None else None

    def invalidate(self, user_id: Optional[int] = None) -> None:
        """
        使缓存失效

        只清除有效期缓存，保留最近一次结果用于加载失败时兜底；
        user_id 为空时清除所有用户
        """
        if user_id is None:
            self._fresh.clear()
        else:
            self._fresh.pop(user_id, None)

    def clear(self) -> None:
        """彻底清空（包括兜底数据）"""
        self._fresh.clear()
        self._last_good.clear()

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)
