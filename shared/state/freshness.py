"""进程内的“新鲜度”缓存：按 key 记录最近一次出现时间，用于通知去重。

`is_*_fresh` 只查询：key 在 ttl 内出现过（elapsed <= ttl）返回 True；
从未出现过返回 False。刷新时间戳需要显式调用 `touch_*`，
这样冷却期从“上一次真正通知”开始计算，而不是被连续的探测无限延长。
"""

from __future__ import annotations

import time
from typing import Any, Callable


class FreshnessCache:
    """
    Parameters
    ----------
    clock:
        返回秒级时间戳的函数，默认 `time.time`；测试里可注入假时钟。
    """

    def __init__(self, clock: Callable[[], float] | None = None):
        self._clock = clock or time.time
        self._texts: dict[str, float] = {}
        # id(obj) -> (obj, ts)；保留对象引用，避免 id 被回收后复用
        self._objects: dict[int, tuple[Any, float]] = {}

    def now(self) -> float:
        return self._clock()

    def is_text_fresh(self, text: str, ttl: float) -> bool:
        ts = self._texts.get(text)
        return ts is not None and self.now() - ts <= ttl

    def is_object_fresh(self, obj: Any, ttl: float) -> bool:
        entry = self._objects.get(id(obj))
        return entry is not None and self.now() - entry[1] <= ttl

    def touch_text(self, text: str) -> None:
        self._texts[text] = self.now()

    def touch_object(self, obj: Any) -> None:
        self._objects[id(obj)] = (obj, self.now())

    def should_notify(self, text: str, obj: Any, *, text_ttl: float, object_ttl: float) -> bool:
        """文本与对象两道闸门都“仍新鲜”时才抑制；否则放行并刷新两者的时间戳。"""
        if self.is_text_fresh(text, text_ttl) and self.is_object_fresh(obj, object_ttl):
            return False
        self.touch_text(text)
        self.touch_object(obj)
        return True

    def __len__(self) -> int:
        return len(self._texts) + len(self._objects)
