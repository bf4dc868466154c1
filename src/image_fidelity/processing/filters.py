"""窗口滤波、抽取与多尺度金字塔。

所有滤波均采用对称边界延拓（越界读取以最近的边缘为镜面反射，边缘像素重复一次），
与 OpenCV 的 ``BORDER_REFLECT`` 一致。偶数尺寸的核锚定在 ``(kw // 2, kh // 2)``，
即覆盖 ``[x - kw/2, x + kw/2 - 1]``。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, Optional

import cv2
import numpy as np

from image_fidelity.core.config import SSIMWindow
from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import Kernel

LOGGER = logging.getLogger(__name__)

GAUSSIAN_LEN = 11
GAUSSIAN_SIGMA = 1.5
LINEAR_LEN = 8

# CDF 9/7 双正交小波分析低通滤波器（和为 sqrt(2)）。
_CDF97_LOWPASS = (
    0.037828455506995,
    -0.023849465019380,
    -0.110624404418423,
    0.377402855612654,
    0.852698679009404,
    0.377402855612654,
    -0.110624404418423,
    -0.023849465019380,
    0.037828455506995,
)


@lru_cache(maxsize=None)
def gaussian_window() -> Kernel:
    """11x11 高斯窗口 (sigma=1.5)，权重保留六位小数。"""

    column = cv2.getGaussianKernel(GAUSSIAN_LEN, GAUSSIAN_SIGMA, cv2.CV_64F)
    return Kernel(np.round(column @ column.T, 6), normalized=True)


@lru_cache(maxsize=None)
def linear_window() -> Kernel:
    """8x8 均值窗口。"""

    return Kernel(np.full((LINEAR_LEN, LINEAR_LEN), 1.0 / (LINEAR_LEN * LINEAR_LEN)), normalized=True)


@lru_cache(maxsize=None)
def wavelet_lowpass() -> Kernel:
    """MS-SSIM 下采样使用的 9x9 低通核。"""

    taps = np.asarray(_CDF97_LOWPASS, dtype=np.float64)
    taps /= taps.sum()
    return Kernel(np.outer(taps, taps), normalized=True)


def box_kernel(size: int) -> Kernel:
    if size < 1:
        raise ValueError("box kernel size must be positive")
    return Kernel(np.full((size, size), 1.0 / (size * size)), normalized=True)


def window_for(window: SSIMWindow) -> Kernel:
    return gaussian_window() if window is SSIMWindow.GAUSSIAN else linear_window()


def filter_image(img: np.ndarray, kernel: Kernel, out: Optional[np.ndarray] = None) -> np.ndarray:
    """对二维采样网格滤波，输出与输入同尺寸。

    ``out`` 可以就是 ``img`` 本身（原地滤波）。
    """

    src = np.array(img, dtype=np.float64)
    if src.ndim != 2:
        raise InvalidInputError(f"滤波只支持二维网格，实际维度 {src.ndim}")
    filtered = cv2.filter2D(src, cv2.CV_64F, kernel.effective_weights(), borderType=cv2.BORDER_REFLECT)
    if out is None:
        return filtered
    if out.shape != filtered.shape:
        raise InvalidInputError(f"输出缓冲区尺寸 {out.shape} 与输入 {filtered.shape} 不一致")
    out[...] = filtered
    return out


def convolve_valid(img: np.ndarray, kernel: Kernel) -> np.ndarray:
    """只保留核完全落在图像内部的位置，输出尺寸为 ``(h-kh+1, w-kw+1)``。"""

    height, width = np.shape(img)
    out_h = height - kernel.height + 1
    out_w = width - kernel.width + 1
    if out_h <= 0 or out_w <= 0:
        raise InvalidInputError(
            f"图像 {width}x{height} 小于窗口 {kernel.width}x{kernel.height}"
        )
    top = kernel.height // 2
    left = kernel.width // 2
    return filter_image(img, kernel)[top : top + out_h, left : left + out_w]


def decimate(img: np.ndarray, factor: int = 2, kernel: Optional[Kernel] = None) -> np.ndarray:
    """先低通滤波再每隔 ``factor`` 取一个样本，尺寸为 ``ceil(dim / factor)``。"""

    if factor < 1:
        raise ValueError("decimation factor must be positive")
    filtered = filter_image(img, kernel) if kernel is not None else np.asarray(img, dtype=np.float64)
    return filtered[::factor, ::factor]


def plan_levels(width: int, height: int, min_size: int, max_levels: int, factor: int = 2) -> list[tuple[int, int]]:
    """计算金字塔各层尺寸；任一边小于 ``min_size`` 时停止下探。"""

    if min(width, height) < min_size:
        return []
    levels = [(width, height)]
    while len(levels) < max_levels:
        cur_w, cur_h = levels[-1]
        next_w, next_h = math.ceil(cur_w / factor), math.ceil(cur_h / factor)
        if min(next_w, next_h) < min_size:
            break
        levels.append((next_w, next_h))
    return levels


@dataclass(slots=True)
class PyramidLevel:
    index: int
    width: int
    height: int
    ref: np.ndarray
    cmp: np.ndarray
    coarsest: bool


class DecimationPyramid:
    """参考图与对比图同步下采样的金字塔。

    层数在构造时确定一次；每次迭代都从原图重新开始，且只持有当前一层的缓冲区。
    """

    def __init__(
        self,
        ref: np.ndarray,
        cmp: np.ndarray,
        *,
        kernel: Kernel,
        min_size: int,
        max_levels: int,
        factor: int = 2,
    ) -> None:
        if np.shape(ref) != np.shape(cmp):
            raise InvalidInputError(f"金字塔输入尺寸不一致: {np.shape(ref)} vs {np.shape(cmp)}")
        height, width = np.shape(ref)
        self._ref = ref
        self._cmp = cmp
        self.kernel = kernel
        self.factor = factor
        self.dimensions = plan_levels(width, height, min_size, max_levels, factor)
        LOGGER.debug("金字塔层级: %s", self.dimensions)

    def __len__(self) -> int:
        return len(self.dimensions)

    def __iter__(self) -> Iterator[PyramidLevel]:
        ref, cmp = self._ref, self._cmp
        last = len(self.dimensions) - 1
        for index, (width, height) in enumerate(self.dimensions):
            if index:
                ref = decimate(ref, self.factor, self.kernel)
                cmp = decimate(cmp, self.factor, self.kernel)
            yield PyramidLevel(index, width, height, ref, cmp, coarsest=index == last)
