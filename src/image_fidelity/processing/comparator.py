"""两张图片的相似度比较入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from image_fidelity.core.config import CompareOptions, Method
from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import ComparisonResult
from image_fidelity.processing.codec import MODE_LUMA, MODE_RGB, Codec, PillowCodec
from image_fidelity.processing.image_loader import load_pixels
from image_fidelity.processing.metrics import score
from image_fidelity.processing.phash import hash_file, similarity_score

LOGGER = logging.getLogger(__name__)


def compare_files(
    first: Union[str, Path],
    second: Union[str, Path],
    options: Optional[CompareOptions] = None,
    codec: Optional[Codec] = None,
) -> ComparisonResult:
    """比较两张图片。

    fast 模式比较感知哈希，结果为 0~99 的整数（越小越相似）；
    其余模式要求两张图尺寸一致，PSNR 使用 RGB，其余使用亮度。
    """

    options = options or CompareOptions()
    codec = codec or PillowCodec()

    if options.method is Method.FAST:
        hash1 = hash_file(first, options.hash_size, options.first_filetype, codec)
        hash2 = hash_file(second, options.hash_size, options.second_filetype, codec)
        return ComparisonResult(Method.FAST, float(similarity_score(hash1, hash2)))

    mode = MODE_RGB if options.method is Method.PSNR else MODE_LUMA
    image1 = load_pixels(first, options.first_filetype, mode, codec)
    image2 = load_pixels(second, options.second_filetype, mode, codec)

    if not image1.same_shape(image2):
        raise InvalidInputError(
            f"images must be identical sizes: {image1.width}x{image1.height} vs {image2.width}x{image2.height}"
        )

    value = score(
        options.method,
        image1,
        image2,
        ssim_params=options.ssim,
        ms_ssim_params=options.ms_ssim,
    )
    LOGGER.debug("%s(%s, %s) = %f", options.method.value, first, second, value)
    return ComparisonResult(options.method, value)
