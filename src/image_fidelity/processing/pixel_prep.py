"""像素预处理：灰度提取、最近邻缩放与鱼眼校正。"""

from __future__ import annotations

import logging
import math

import numpy as np

from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import PixelBuffer

LOGGER = logging.getLogger(__name__)

# ITU-R BT.601 亮度系数
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def clamp(low: float, value: float, high: float) -> float:
    return low if value < low else (high if value > high else value)


def grayscale(pixels: PixelBuffer) -> PixelBuffer:
    """RGB 转亮度，``Y = 0.299R + 0.587G + 0.114B + 0.5`` 后截断取整。"""

    if pixels.components == 1:
        return PixelBuffer.from_array(pixels.to_array().copy())

    rgb = pixels.plane()
    luma = rgb[..., 0] * LUMA_WEIGHTS[0] + rgb[..., 1] * LUMA_WEIGHTS[1] + rgb[..., 2] * LUMA_WEIGHTS[2] + 0.5
    return PixelBuffer.from_array(np.floor(luma).astype(np.uint8))


def _bilinear(plane: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    x1 = np.floor(xs).astype(np.intp)
    y1 = np.floor(ys).astype(np.intp)
    x2 = np.ceil(xs).astype(np.intp)
    y2 = np.ceil(ys).astype(np.intp)
    px = xs - x1
    py = ys - y1

    top = plane[y1, x1] * (1.0 - px) + plane[y1, x2] * px
    bottom = plane[y2, x1] * (1.0 - px) + plane[y2, x2] * px
    return top * (1.0 - py) + bottom * py


def interpolate(pixels: PixelBuffer, x: float, y: float, channel: int = 0) -> int:
    """双线性插值读取 ``(x, y)`` 处的通道值，结果截断为整数。"""

    if not 0 <= channel < pixels.components:
        raise InvalidInputError(f"通道 {channel} 超出范围 (components={pixels.components})")
    if not (0 <= x <= pixels.width - 1 and 0 <= y <= pixels.height - 1):
        raise InvalidInputError(f"坐标 ({x}, {y}) 超出图像 {pixels.width}x{pixels.height}")

    array = pixels.plane()
    plane = array if pixels.components == 1 else array[..., channel]
    value = _bilinear(plane, np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64))
    return int(value)


def scale_nearest(pixels: PixelBuffer, new_width: int, new_height: int) -> PixelBuffer:
    """最近邻缩放：``old = int(new / N * dim + 0.5)``，越界时取最后一个样本。"""

    if new_width <= 0 or new_height <= 0:
        raise InvalidInputError(f"非法的目标尺寸: {new_width}x{new_height}")

    rows = (np.arange(new_height, dtype=np.float64) / new_height * pixels.height + 0.5).astype(np.intp)
    cols = (np.arange(new_width, dtype=np.float64) / new_width * pixels.width + 0.5).astype(np.intp)
    rows = np.minimum(rows, pixels.height - 1)
    cols = np.minimum(cols, pixels.width - 1)

    source = pixels.to_array()
    return PixelBuffer.from_array(source[rows[:, None], cols[None, :]])


def defish(pixels: PixelBuffer, strength: float, zoom: float = 1.0) -> PixelBuffer:
    """径向鱼眼校正，按 ``atan(r) / r`` 重映射坐标后双线性采样。

    例如 APS-C 机身上 10mm 的鱼眼镜头，``strength=2.6, zoom=1.2`` 效果较好。
    """

    width, height = pixels.width, pixels.height
    cx = width // 2
    cy = height // 2
    diagonal = math.sqrt(width * width + height * height)

    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    dx = (cx - xs) * zoom
    dy = (cy - ys) * zoom
    radius = np.sqrt(dx * dx + dy * dy) / diagonal * strength
    theta = np.ones_like(radius)
    nonzero = radius != 0.0
    theta[nonzero] = np.arctan(radius[nonzero]) / radius[nonzero]

    src_x = np.clip(width / 2.0 - theta * dx, 0.0, width - 1)
    src_y = np.clip(height / 2.0 - theta * dy, 0.0, height - 1)

    array = pixels.plane()
    if pixels.components == 1:
        remapped = _bilinear(array, src_x, src_y)
    else:
        remapped = np.stack(
            [_bilinear(array[..., channel], src_x, src_y) for channel in range(pixels.components)],
            axis=-1,
        )
    LOGGER.debug("鱼眼校正完成: strength=%s zoom=%s", strength, zoom)
    return PixelBuffer.from_array(np.trunc(remapped).astype(np.uint8))
