"""像素域指标与按方法分发的统一入口。"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from image_fidelity.core.config import Method, MSSSIMParams, SSIMParams
from image_fidelity.core.exceptions import InvalidConfigurationError, InvalidInputError
from image_fidelity.core.models import PixelBuffer
from image_fidelity.processing.smallfry import smallfry
from image_fidelity.processing.ssim import ms_ssim, ssim

MAX_SAMPLE = 255.0


def _pair(ref: PixelBuffer, cmp: PixelBuffer) -> tuple[np.ndarray, np.ndarray]:
    if not ref.same_shape(cmp):
        raise InvalidInputError(
            f"图像尺寸不一致: {ref.width}x{ref.height}x{ref.components} "
            f"vs {cmp.width}x{cmp.height}x{cmp.components}"
        )
    return ref.plane(), cmp.plane()


def mse(ref: PixelBuffer, cmp: PixelBuffer) -> float:
    """均方误差，覆盖全部通道。"""

    a, b = _pair(ref, cmp)
    return float(np.mean((a - b) ** 2))


def psnr(ref: PixelBuffer, cmp: PixelBuffer) -> float:
    """峰值信噪比；两图完全相同时为 ``inf``。"""

    error = mse(ref, cmp)
    if error == 0.0:
        return math.inf
    return 10.0 * math.log10(MAX_SAMPLE * MAX_SAMPLE / error)


def mean_pixel_error(ref: PixelBuffer, cmp: PixelBuffer) -> float:
    """平均绝对像素误差，越低越好。"""

    a, b = _pair(ref, cmp)
    return float(np.mean(np.abs(a - b)))


def higher_is_better(method: Method) -> bool:
    return method is not Method.MPE


def score(
    method: Method,
    ref: PixelBuffer,
    cmp: PixelBuffer,
    *,
    ssim_params: Optional[SSIMParams] = None,
    ms_ssim_params: Optional[MSSSIMParams] = None,
) -> float:
    """按方法计算两张图的相似度分数。"""

    if method is Method.PSNR:
        return psnr(ref, cmp)
    if method is Method.SSIM:
        return ssim(ref, cmp, params=ssim_params)
    if method is Method.MS_SSIM:
        return ms_ssim(ref, cmp, ms_ssim_params)
    if method is Method.SMALLFRY:
        return smallfry(ref, cmp)
    if method is Method.MPE:
        return mean_pixel_error(ref, cmp)
    raise InvalidConfigurationError(f"方法 {method.value} 不是像素域指标")
