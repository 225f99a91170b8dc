"""订阅源解析结果的内存缓存。"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

DEFAULT_TTL_SECONDS = 10 * 60


@dataclass
class _CacheItem:
    value: Any
    stored_at: float
    expires_at: float


class FeedCache:
    """按 key 保存数据，过期只在读取时惰性检查。

    仅在进程内有效，没有容量淘汰。clock 可注入以便测试。
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._items: dict[str, _CacheItem] = {}

    def get(self, key: str) -> Optional[Any]:
        item = self._items.get(key)
        if item is None:
            return None
        if self._clock() > item.expires_at:
            del self._items[key]
            return None
        return item.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        now = self._clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._items[key] = _CacheItem(value=value, stored_at=now, expires_at=now + ttl)

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._items.clear()
        else:
            self._items.pop(key, None)

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._items), "keys": list(self._items)}

    def __len__(self) -> int:
        return len(self._items)
