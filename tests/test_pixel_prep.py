"""灰度提取、插值、最近邻缩放与鱼眼校正。"""

from __future__ import annotations

import numpy as np
import pytest

from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import PixelBuffer
from image_fidelity.processing.pixel_prep import clamp, defish, grayscale, interpolate, scale_nearest


def test_clamp() -> None:
    assert clamp(0.0, -10.0, 100.0) == 0.0
    assert clamp(0.0, 32.5, 100.0) == 32.5
    assert clamp(0.0, 150.3, 100.0) == 100.0


def test_interpolate_bilinear_truncates() -> None:
    image = PixelBuffer.from_array(np.array([[0, 255], [127, 66]], dtype=np.uint8))

    assert interpolate(image, 0.3, 0.6) == 95
    assert interpolate(image, 1.0, 0.0) == 255


def test_interpolate_rgb_channel_and_bounds() -> None:
    rgb = np.zeros((2, 2, 3), dtype=np.uint8)
    rgb[..., 1] = [[0, 100], [100, 200]]
    image = PixelBuffer.from_array(rgb)

    assert interpolate(image, 0.5, 0.5, channel=1) == 100
    assert interpolate(image, 0.5, 0.5, channel=0) == 0
    with pytest.raises(InvalidInputError):
        interpolate(image, 2.0, 0.0)
    with pytest.raises(InvalidInputError):
        interpolate(image, 0.0, 0.0, channel=3)


def test_scale_nearest_picks_rounded_source() -> None:
    image = PixelBuffer.from_array(np.arange(16, dtype=np.uint8).reshape(4, 4))

    scaled = scale_nearest(image, 2, 2)
    flat = scaled.to_array().reshape(-1)

    assert scaled.shape == (2, 2)
    assert flat[1] == 2
    assert flat[2] == 8


def test_scale_nearest_upscale_clamps_to_last_sample() -> None:
    image = PixelBuffer.from_array(np.array([[1, 2], [3, 4]], dtype=np.uint8))

    scaled = scale_nearest(image, 3, 3).to_array()

    assert scaled.max() == 4
    assert scaled[-1, -1] == 4


def test_grayscale_weights_and_rounding() -> None:
    rgb = np.array(
        [[[255, 0, 0], [0, 255, 0], [0, 0, 255], [255, 255, 255], [10, 20, 30]]],
        dtype=np.uint8,
    )
    gray = grayscale(PixelBuffer.from_array(rgb))

    assert gray.components == 1
    # int(R*0.299 + G*0.587 + B*0.114 + 0.5)
    assert gray.to_array().tolist() == [[76, 150, 29, 255, 18]]


def test_grayscale_reads_through_stride() -> None:
    # 宽 2 像素、stride 8 字节（每行 2 字节填充）
    data = np.array([255, 0, 0, 0, 255, 0, 9, 9, 0, 0, 255, 255, 255, 255, 9, 9], dtype=np.uint8)
    buf = PixelBuffer(data=data, width=2, height=2, stride=8, components=3)

    assert grayscale(buf).to_array().tolist() == [[76, 150], [29, 255]]


def test_pixel_buffer_rejects_short_stride() -> None:
    with pytest.raises(InvalidInputError):
        PixelBuffer(data=np.zeros(12, dtype=np.uint8), width=2, height=2, stride=4, components=3)


def test_defish_zero_strength_keeps_interior() -> None:
    ys, xs = np.mgrid[0:20, 0:30]
    image = PixelBuffer.from_array(((xs * 7 + ys * 5) % 256).astype(np.uint8))

    result = defish(image, 0.0)

    assert result.shape == image.shape
    # 中心点映射回自身
    assert result.to_array()[10, 15] == image.to_array()[10, 15]


def test_defish_rgb_keeps_components_and_bounds() -> None:
    rgb = np.full((12, 16, 3), 200, dtype=np.uint8)
    rgb[..., 2] = 50
    image = PixelBuffer.from_array(rgb)

    result = defish(image, 2.6, 1.2)

    assert result.components == 3
    assert result.shape == (16, 12)
    # 常数图像在任何重映射下基本不变（截断取整最多差 1）
    assert np.all(np.abs(result.to_array()[..., 0].astype(int) - 200) <= 1)
    assert np.all(np.abs(result.to_array()[..., 2].astype(int) - 50) <= 1)
