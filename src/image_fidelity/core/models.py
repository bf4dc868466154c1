"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np

from image_fidelity.core.config import Method
from image_fidelity.core.exceptions import InvalidConfigurationError, InvalidInputError


@dataclass(slots=True)
class PixelBuffer:
    """按行存储的 8 位像素缓冲区，行跨度 ``stride`` 可以大于有效宽度。"""

    data: np.ndarray
    width: int
    height: int
    stride: int
    components: int = 1

    def __post_init__(self) -> None:
        self.data = np.ascontiguousarray(np.asarray(self.data, dtype=np.uint8).reshape(-1))
        if self.width <= 0 or self.height <= 0:
            raise InvalidInputError(f"非法的图像尺寸: {self.width}x{self.height}")
        if self.components not in (1, 3):
            raise InvalidInputError(f"不支持的通道数: {self.components}")
        row_bytes = self.width * self.components
        if self.stride < row_bytes:
            raise InvalidInputError(f"stride ({self.stride}) 小于行宽 ({row_bytes})")
        required = self.stride * (self.height - 1) + row_bytes
        if self.data.size < required:
            raise InvalidInputError(f"像素数据不足: 需要 {required} 字节，实际 {self.data.size}")

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """由 (h, w) 或 (h, w, 3) 的数组构造紧凑缓冲区。"""

        array = np.asarray(array)
        if array.ndim == 2:
            height, width = array.shape
            components = 1
        elif array.ndim == 3 and array.shape[2] in (1, 3):
            height, width, components = array.shape
        else:
            raise InvalidInputError(f"无法识别的像素数组形状: {array.shape}")
        packed = np.clip(np.rint(array), 0, 255) if array.dtype.kind == "f" else array
        return cls(
            data=packed.astype(np.uint8).reshape(-1),
            width=width,
            height=height,
            stride=width * components,
            components=components,
        )

    def to_array(self) -> np.ndarray:
        """返回按 stride 读取的 (h, w) 或 (h, w, c) 视图。"""

        row_bytes = self.width * self.components
        total = self.stride * self.height
        flat = self.data
        if flat.size < total:
            # 最后一行可以不带行尾填充
            flat = np.pad(flat, (0, total - flat.size))
        rows = flat[:total].reshape(self.height, self.stride)[:, :row_bytes]
        if self.components == 1:
            return rows
        return rows.reshape(self.height, self.width, self.components)

    def plane(self) -> np.ndarray:
        """以 float64 返回像素，供指标计算使用。"""

        return self.to_array().astype(np.float64)

    def same_shape(self, other: "PixelBuffer") -> bool:
        return (
            self.width == other.width
            and self.height == other.height
            and self.components == other.components
        )

    @property
    def shape(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class Kernel:
    """滤波核；``normalized`` 表示权重之和为 1。"""

    weights: np.ndarray
    normalized: bool = True
    boundary: str = "symmetric"

    def __post_init__(self) -> None:
        weights = np.array(self.weights, dtype=np.float64, copy=True)
        if weights.ndim != 2 or 0 in weights.shape:
            raise InvalidConfigurationError("滤波核必须是非空二维矩阵")
        if self.boundary != "symmetric":
            raise InvalidConfigurationError(f"不支持的边界策略: {self.boundary}")
        weights.setflags(write=False)
        object.__setattr__(self, "weights", weights)

    @property
    def width(self) -> int:
        return self.weights.shape[1]

    @property
    def height(self) -> int:
        return self.weights.shape[0]

    def effective_weights(self) -> np.ndarray:
        """非归一化的核按 1/sum 缩放后返回。"""

        total = float(self.weights.sum())
        if self.normalized or total == 0.0:
            return self.weights.copy()
        return self.weights / total


@dataclass(slots=True)
class ImageHash:
    """感知哈希位阵列，按行优先排列。"""

    bits: np.ndarray
    size: int

    def to_string(self) -> str:
        return "".join("1" if bit else "0" for bit in self.bits.reshape(-1))


@dataclass(slots=True)
class SearchAttempt:
    """二分搜索中的一次试探。"""

    quality: int
    score: float
    size: int
    final: bool = False


@dataclass(slots=True)
class RecompressResult:
    """重压缩成功时的产出。"""

    data: bytes
    original_size: int
    quality: Optional[int] = None
    attempts: list[SearchAttempt] = field(default_factory=list)
    copied: bool = False
    note: Optional[str] = None
    metadata_size: int = 0

    @property
    def final_size(self) -> int:
        return len(self.data)

    @property
    def percent_of_original(self) -> int:
        if self.original_size == 0:
            return 0
        return self.final_size * 100 // self.original_size

    @property
    def saved_bytes(self) -> int:
        return max(self.original_size - self.final_size, 0)


@dataclass(slots=True)
class RecompressOutcome:
    """记录单个文件的重压缩结果（用于日志与退出码）。"""

    source_path: Path
    status: str
    status_code: int = 0
    output_path: Optional[Path] = None
    message: Optional[str] = None
    result: Optional[RecompressResult] = None

    @property
    def succeeded(self) -> bool:
        return self.status_code == 0


@dataclass(slots=True)
class ComparisonResult:
    """两张图片的比较结果。"""

    method: Method
    score: float

    def format(self) -> str:
        if self.method is Method.FAST:
            return str(int(self.score))
        return f"{self.method.value.upper()}: {self.score:f}"
