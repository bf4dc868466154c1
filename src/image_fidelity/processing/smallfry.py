"""smallfry 指标：归一化 PSNR 因子与 8x8 块边界伪影（AAE）因子的加权组合。"""

from __future__ import annotations

import logging
import math

import numpy as np

from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import PixelBuffer

LOGGER = logging.getLogger(__name__)

PSNR_WEIGHT = 37.1891885161239
AAE_WEIGHT = 78.5328607296973

BLOCK_SIZE = 8
_FULL_PENALTY = 5.0
_PARTIAL_PENALTY = 2.0


def _psnr_factor(ref: np.ndarray, cmp: np.ndarray, peak: int) -> float:
    mse = float(np.mean((ref - cmp) ** 2))
    # 完全相同时 PSNR 为无穷大，暗图曲线的分母为负，因子截断到 0
    ret = math.inf if mse == 0.0 else 10.0 * math.log10(65025.0 / mse)
    if peak > 128:
        ret /= 50.0
    else:
        ret /= 0.0016 * (peak * peak) - (0.38 * peak + 72.5)
    return max(min(ret, 1.0), 0.0)


def _boundary_penalty(diff: np.ndarray) -> tuple[float, int]:
    """沿最后一个轴扫描块边界，返回 (惩罚总和, 边界样本数)。

    边界位于 7, 15, 23 ... 且右侧至少还有一个样本的位置；
    越过末尾的第二个样本按对称边界取最后一个样本。
    """

    length = diff.shape[-1]
    edges = np.arange(BLOCK_SIZE - 1, length - 1, BLOCK_SIZE)
    if not edges.size:
        return 0.0, 0
    diff = np.pad(diff, [(0, 0)] * (diff.ndim - 1) + [(0, 1)], mode="symmetric")

    step = np.abs(diff[..., edges] - diff[..., edges + 1])
    before = np.abs(diff[..., edges - 1] - diff[..., edges])
    after = np.abs(diff[..., edges + 1] - diff[..., edges + 2])
    ratio = step / ((before + after + 0.0001) / 2.0)

    penalty = np.where(
        ratio > _FULL_PENALTY,
        1.0,
        np.where(ratio > _PARTIAL_PENALTY, (ratio - _PARTIAL_PENALTY) / (_FULL_PENALTY - _PARTIAL_PENALTY), 0.0),
    )
    return float(penalty.sum()), int(penalty.size)


def _aae_factor(ref: np.ndarray, cmp: np.ndarray, peak: int) -> float:
    diff = np.abs(ref - cmp)
    vertical_sum, vertical_cnt = _boundary_penalty(diff)
    horizontal_sum, horizontal_cnt = _boundary_penalty(diff.T)
    total = vertical_sum + horizontal_sum
    count = vertical_cnt + horizontal_cnt
    if count == 0:
        height, width = ref.shape
        raise InvalidInputError(f"图像 {width}x{height} 过小，不存在 8x8 块边界")

    ret = 1.0 - total / count
    if peak > 128:
        cfmax = 0.65
    else:
        cfmax = 0.65 + 0.35 * ((128.0 - peak) / 128.0)

    if total == 0.0:
        correction = 1.0
    else:
        correction = max(cfmax, min(1.0, 0.25 + (1000.0 * count) / total))
    return ret * correction


def smallfry(ref: PixelBuffer, cmp: PixelBuffer) -> float:
    """计算 smallfry 分数，越高越相似；轻度压缩的自然图像通常落在 95~115。"""

    if ref.components != 1 or cmp.components != 1:
        raise InvalidInputError("smallfry 只接受单通道（亮度）图像")
    if not ref.same_shape(cmp):
        raise InvalidInputError(f"图像尺寸不一致: {ref.shape} vs {cmp.shape}")

    ref_plane = ref.plane()
    cmp_plane = cmp.plane()
    peak = int(ref_plane.max())

    p = _psnr_factor(ref_plane, cmp_plane, peak)
    a = _aae_factor(ref_plane, cmp_plane, peak)
    LOGGER.debug("smallfry: psnr_factor=%f aae_factor=%f peak=%d", p, a, peak)
    return p * PSNR_WEIGHT + a * AAE_WEIGHT
