"""基于水平梯度的感知哈希。

图像先最近邻缩放到 N x N，再逐格比较与右侧相邻格的大小。哈希只编码相对梯度，
因此对曝光、白平衡与等比缩放不敏感。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np

from image_fidelity.core.config import FileType
from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import ImageHash, PixelBuffer
from image_fidelity.processing.codec import MODE_LUMA, Codec
from image_fidelity.processing.image_loader import load_pixels
from image_fidelity.processing.pixel_prep import scale_nearest

LOGGER = logging.getLogger(__name__)

DEFAULT_HASH_SIZE = 16


def generate_hash(gray: PixelBuffer, size: int = DEFAULT_HASH_SIZE) -> ImageHash:
    """生成 ``size * size`` 位哈希；每行最后一列没有右邻居，恒为 0。"""

    if gray.components != 1:
        raise InvalidInputError("感知哈希只接受单通道（亮度）图像")
    if size < 2:
        raise InvalidInputError("哈希尺寸必须至少为 2")

    grid = scale_nearest(gray, size, size).to_array()
    bits = np.zeros((size, size), dtype=np.uint8)
    bits[:, :-1] = grid[:, :-1] < grid[:, 1:]
    return ImageHash(bits=bits.reshape(-1), size=size)


def hamming_distance(first: Union[ImageHash, str], second: Union[ImageHash, str]) -> int:
    """不同位的个数；两个哈希长度必须一致。"""

    a = _as_bits(first)
    b = _as_bits(second)
    if a.size != b.size:
        raise InvalidInputError(f"哈希长度不一致: {a.size} vs {b.size}")
    return int(np.count_nonzero(a != b))


def similarity_score(first: ImageHash, second: ImageHash) -> int:
    """将汉明距离映射到 0~99：``distance * 100 // (N * N)``。"""

    if first.size != second.size:
        raise InvalidInputError(f"哈希尺寸不一致: {first.size} vs {second.size}")
    return hamming_distance(first, second) * 100 // (first.size * first.size)


def hash_file(
    path: Union[str, Path],
    size: int = DEFAULT_HASH_SIZE,
    filetype: FileType = FileType.AUTO,
    codec: Optional[Codec] = None,
) -> ImageHash:
    gray = load_pixels(path, filetype, MODE_LUMA, codec)
    LOGGER.debug("计算哈希: %s (%dx%d)", path, gray.width, gray.height)
    return generate_hash(gray, size)


def _as_bits(value: Union[ImageHash, str]) -> np.ndarray:
    if isinstance(value, ImageHash):
        return np.asarray(value.bits).reshape(-1).astype(bool)
    return np.frombuffer(value.encode("ascii"), dtype=np.uint8) == ord("1")
