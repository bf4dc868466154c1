"""二分搜索进度的数据模型。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(slots=True)
class ProgressUpdate:
    """一次质量试探完成后的进度。

    ``total`` 为本次搜索的试探预算；最后一次试探时收缩为实际次数。
    """

    total: int
    completed: int
    quality: Optional[int] = None
    score: Optional[float] = None
    message: Optional[str] = None
    status: str = "running"

    @property
    def finished(self) -> bool:
        return self.status == "done"


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
