"""按优先级依次尝试的字段取值链。

订阅源里同一个字段可能出现在多个位置（iTunes 扩展、RSS 原生元素、Atom 链接等），
这里把每条回退顺序写成一组有序的取值函数，便于单独测试。
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Callable, Iterable

Getter = Callable[[Any], Any]


def is_present(value: Any) -> bool:
    """None 与空白字符串视为缺失。"""

    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def key_path(*keys: str | int) -> Getter:
    """构造沿嵌套字典/列表逐级取值的函数，任一级缺失即返回 None。"""

    def getter(source: Any) -> Any:
        current = source
        for key in keys:
            if isinstance(key, int):
                if not isinstance(current, Sequence) or isinstance(current, str):
                    return None
                if not -len(current) <= key < len(current):
                    return None
                current = current[key]
            else:
                if not isinstance(current, Mapping):
                    return None
                current = current.get(key)
            if current is None:
                return None
        return current

    return getter


def first_present(source: Any, getters: Iterable[Getter], default: Any = None) -> Any:
    """返回第一个非空结果，全部缺失时返回 default。"""

    for getter in getters:
        value = getter(source)
        if is_present(value):
            return value
    return default


def _typed_href(collection: str, prefix: str) -> Getter:
    def getter(source: Any) -> Any:
        items = source.get(collection) if isinstance(source, Mapping) else None
        for item in items or []:
            if isinstance(item, Mapping) and str(item.get("type", "")).startswith(prefix):
                href = item.get("href") or item.get("url")
                if is_present(href):
                    return href
        return None

    return getter


# 频道级字段
FEED_TITLE: tuple[Getter, ...] = (key_path("title"),)
# channel_description / itunes_summary 由 rss._channel_text 从原始 XML 补入；
# subtitle 可能是 <itunes:subtitle> 短标语，也可能是 Atom 的 <subtitle>，放在最后
FEED_DESCRIPTION: tuple[Getter, ...] = (
    key_path("channel_description"),
    key_path("itunes_summary"),
    key_path("summary"),
    key_path("subtitle"),
)
FEED_IMAGE: tuple[Getter, ...] = (
    key_path("image", "href"),
    key_path("image", "url"),
)
FEED_AUTHOR: tuple[Getter, ...] = (
    key_path("author"),
    key_path("author_detail", "name"),
    key_path("publisher_detail", "name"),
    key_path("publisher"),
)

# 条目级字段
EPISODE_TITLE: tuple[Getter, ...] = (key_path("title"),)
EPISODE_DESCRIPTION: tuple[Getter, ...] = (
    key_path("summary"),
    key_path("description"),
    key_path("content", 0, "value"),
)
EPISODE_AUDIO: tuple[Getter, ...] = (
    _typed_href("enclosures", "audio"),
    key_path("enclosures", 0, "href"),
    key_path("enclosures", 0, "url"),
    _typed_href("links", "audio"),
)
EPISODE_DURATION: tuple[Getter, ...] = (key_path("itunes_duration"),)
EPISODE_GUID: tuple[Getter, ...] = (
    key_path("id"),
    key_path("guid"),
    key_path("link"),
    lambda entry: first_present(entry, EPISODE_AUDIO),
)
EPISODE_IMAGE: tuple[Getter, ...] = (
    key_path("image", "href"),
    key_path("image", "url"),
)
EPISODE_PUBLISHED: tuple[Getter, ...] = (
    key_path("published_parsed"),
    key_path("updated_parsed"),
)
