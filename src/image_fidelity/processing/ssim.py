"""结构相似度（SSIM）与多尺度结构相似度（MS-SSIM）。

两者都只在窗口完全落在图像内部的位置上求局部统计量，
结果为所有有效位置的平均值。
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from image_fidelity.core.config import MSSSIMParams, SSIMParams, SSIMWindow
from image_fidelity.core.exceptions import InvalidConfigurationError, InvalidInputError
from image_fidelity.core.models import Kernel, PixelBuffer
from image_fidelity.processing.filters import (
    DecimationPyramid,
    box_kernel,
    convolve_valid,
    decimate,
    wavelet_lowpass,
    window_for,
)

LOGGER = logging.getLogger(__name__)

ImageInput = Union[PixelBuffer, np.ndarray]


@dataclass(slots=True)
class SSIMComponents:
    """逐位置的亮度、对比度与结构分量。"""

    luminance: np.ndarray
    contrast: np.ndarray
    structure: np.ndarray


@dataclass(slots=True)
class _LocalStats:
    mu1: np.ndarray
    mu2: np.ndarray
    sigma1_sq: np.ndarray
    sigma2_sq: np.ndarray
    sigma12: np.ndarray


def _as_plane(image: ImageInput) -> np.ndarray:
    if isinstance(image, PixelBuffer):
        if image.components != 1:
            raise InvalidInputError("SSIM 只接受单通道（亮度）图像")
        return image.plane()
    plane = np.asarray(image, dtype=np.float64)
    if plane.ndim != 2:
        raise InvalidInputError(f"SSIM 只接受二维灰度网格，实际形状 {plane.shape}")
    return plane


def _check_pair(ref: np.ndarray, cmp: np.ndarray) -> None:
    if ref.shape != cmp.shape:
        raise InvalidInputError(f"图像尺寸不一致: {ref.shape[::-1]} vs {cmp.shape[::-1]}")


def _check_window(kernel: Kernel) -> None:
    if not kernel.normalized:
        raise InvalidConfigurationError("SSIM 窗口必须是归一化的滤波核")


def _signed_pow(value: np.ndarray, exponent: float) -> np.ndarray:
    """保留符号的幂运算，避免负底数与小数指数得到 NaN。"""

    if exponent == 1.0:
        return value
    return np.sign(value) * np.abs(value) ** exponent


def _auto_downsample(width: int, height: int) -> int:
    # 四舍五入（远离零），与 C 的 round() 一致
    return max(1, int(math.floor(min(width, height) / 256.0 + 0.5)))


def _local_stats(ref: np.ndarray, cmp: np.ndarray, window: Kernel) -> _LocalStats:
    mu1 = convolve_valid(ref, window)
    mu2 = convolve_valid(cmp, window)
    sigma1_sq = convolve_valid(ref * ref, window) - mu1 * mu1
    sigma2_sq = convolve_valid(cmp * cmp, window) - mu2 * mu2
    sigma12 = convolve_valid(ref * cmp, window) - mu1 * mu2
    return _LocalStats(mu1, mu2, sigma1_sq, sigma2_sq, sigma12)


def _classic_map(stats: _LocalStats, c1: float, c2: float) -> np.ndarray:
    numerator = (2.0 * stats.mu1 * stats.mu2 + c1) * (2.0 * stats.sigma12 + c2)
    denominator = (stats.mu1 ** 2 + stats.mu2 ** 2 + c1) * (stats.sigma1_sq + stats.sigma2_sq + c2)
    return numerator / denominator


def _components(stats: _LocalStats, c1: float, c2: float) -> SSIMComponents:
    """按分量公式计算 l、c、s；常数为 0 时按约定处理分母为 0 的位置。"""

    c3 = c2 / 2.0
    mu1_sq = stats.mu1 ** 2
    mu2_sq = stats.mu2 ** 2
    sigma1_sq = np.maximum(stats.sigma1_sq, 0.0)
    sigma2_sq = np.maximum(stats.sigma2_sq, 0.0)
    sigma_root = np.sqrt(sigma1_sq * sigma2_sq)

    with np.errstate(divide="ignore", invalid="ignore"):
        luminance = (2.0 * stats.mu1 * stats.mu2 + c1) / (mu1_sq + mu2_sq + c1)
        contrast = (2.0 * sigma_root + c2) / (sigma1_sq + sigma2_sq + c2)
        structure = (stats.sigma12 + c3) / (sigma_root + c3)

    if c1 == 0.0:
        luminance = np.where((mu1_sq == 0.0) & (mu2_sq == 0.0), 1.0, luminance)
    if c2 == 0.0:
        contrast = np.where(sigma1_sq + sigma2_sq == 0.0, 1.0, contrast)
    if c3 == 0.0:
        both_flat = (sigma1_sq == 0.0) & (sigma2_sq == 0.0)
        structure = np.where(sigma_root == 0.0, np.where(both_flat, 1.0, 0.0), structure)

    return SSIMComponents(luminance, contrast, structure)


def ssim(
    ref: ImageInput,
    cmp: ImageInput,
    window: Optional[SSIMWindow] = None,
    params: Optional[SSIMParams] = None,
) -> float:
    """计算两张灰度图的平均 SSIM。

    未提供 ``params`` 时使用默认常数 (K1=0.01, K2=0.03, L=255) 和经典的合并公式；
    提供 ``params`` 且任一指数不为 1 时改用 ``l^α · c^β · s^γ`` 的分量公式。
    ``window`` 显式给出时优先于 ``params.window``。
    """

    ref_plane = _as_plane(ref)
    cmp_plane = _as_plane(cmp)
    _check_pair(ref_plane, cmp_plane)

    settings = params or SSIMParams()
    kernel = window_for(window or settings.window)
    _check_window(kernel)

    height, width = ref_plane.shape
    factor = settings.downsample or _auto_downsample(width, height)
    if factor > 1:
        lowpass = box_kernel(factor)
        ref_plane = decimate(ref_plane, factor, lowpass)
        cmp_plane = decimate(cmp_plane, factor, lowpass)
        LOGGER.debug("SSIM 预缩放: factor=%d, %dx%d -> %dx%d", factor, width, height, ref_plane.shape[1], ref_plane.shape[0])

    stats = _local_stats(ref_plane, cmp_plane, kernel)
    c1, c2 = settings.c1, settings.c2
    classic = settings.alpha == settings.beta == settings.gamma == 1.0 and c1 > 0.0 and c2 > 0.0
    if classic:
        ssim_map = _classic_map(stats, c1, c2)
    else:
        parts = _components(stats, c1, c2)
        ssim_map = (
            _signed_pow(parts.luminance, settings.alpha)
            * _signed_pow(parts.contrast, settings.beta)
            * _signed_pow(parts.structure, settings.gamma)
        )
    return float(ssim_map.mean())


def ms_ssim(ref: ImageInput, cmp: ImageInput, params: Optional[MSSSIMParams] = None) -> float:
    """多尺度 SSIM，默认使用 Rouse/Hemami 的 MS-SSIM* 参数。

    最短边小于窗口尺寸时直接返回 ``inf``（视为相同）。金字塔在下一层的最短边
    小于窗口尺寸时停止下探，到达的最粗一层带亮度项并使用最后一组权重。
    宽高顺序不影响结果。
    """

    settings = params or MSSSIMParams()
    ref_plane = _as_plane(ref)
    cmp_plane = _as_plane(cmp)
    _check_pair(ref_plane, cmp_plane)

    window = window_for(settings.window)
    _check_window(window)
    min_size = max(window.width, window.height)

    pyramid = DecimationPyramid(
        ref_plane,
        cmp_plane,
        kernel=wavelet_lowpass(),
        min_size=min_size,
        max_levels=settings.scales,
    )
    if not len(pyramid):
        LOGGER.debug("图像 %dx%d 小于 MS-SSIM 窗口，返回 inf", ref_plane.shape[1], ref_plane.shape[0])
        return math.inf

    result = 1.0
    for level in pyramid:
        level_params = settings.level_params(level.index, level.coarsest)
        stats = _local_stats(level.ref, level.cmp, window)
        parts = _components(stats, level_params.c1, level_params.c2)

        value = float(parts.contrast.mean()) ** level_params.beta
        value *= abs(float(parts.structure.mean())) ** level_params.gamma
        if level.coarsest:
            value *= float(parts.luminance.mean()) ** level_params.alpha
        LOGGER.debug("MS-SSIM 第 %d 层 (%dx%d): %f", level.index, level.width, level.height, value)
        result *= value

    return result
