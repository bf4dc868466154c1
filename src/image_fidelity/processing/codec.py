"""编解码适配层：JPEG 通过 Pillow 编解码，PPM (P6) 自行解析。"""

from __future__ import annotations

import io
import logging
import re
from typing import Protocol

import numpy as np
from PIL import Image, UnidentifiedImageError

from image_fidelity.core.config import FileType, Subsampling
from image_fidelity.core.exceptions import CodecRoundTripError, InvalidInputError
from image_fidelity.core.models import PixelBuffer
from image_fidelity.processing.pixel_prep import grayscale

LOGGER = logging.getLogger(__name__)

MODE_LUMA = "L"
MODE_RGB = "RGB"

_PPM_TOKEN = re.compile(rb"\s*(\d+)")


class Codec(Protocol):
    """重压缩与比较所需的最小编解码接口。"""

    def decode(self, data: bytes, filetype: FileType, mode: str) -> PixelBuffer:
        ...

    def encode(
        self,
        pixels: PixelBuffer,
        quality: int,
        *,
        progressive: bool = False,
        optimize: bool = False,
        subsampling: Subsampling = Subsampling.DEFAULT,
    ) -> bytes:
        ...


def decode_ppm(data: bytes) -> PixelBuffer:
    """解析二进制 P6：只支持 maxval 255，且像素数据长度必须与头部一致。"""

    if len(data) < 2 or data[:2] != b"P6":
        raise InvalidInputError("不是有效的 PPM (P6) 图像")

    pos = data.find(b"\n")
    if pos < 0:
        raise InvalidInputError("PPM 头部不完整")
    pos += 1
    # 跳过注释行
    while data[pos : pos + 1] == b"#":
        end = data.find(b"\n", pos)
        if end < 0:
            raise InvalidInputError("PPM 头部不完整")
        pos = end + 1

    values = []
    for _ in range(3):
        match = _PPM_TOKEN.match(data, pos)
        if match is None:
            raise InvalidInputError("PPM 头部不完整")
        values.append(int(match.group(1)))
        pos = match.end()
    width, height, depth = values

    if depth != 255:
        raise InvalidInputError(f"不支持的位深 {depth}")
    if width <= 0 or height <= 0:
        raise InvalidInputError(f"非法的 PPM 尺寸: {width}x{height}")
    # 位深之后恰好一个空白字符
    pos += 1

    expected = width * height * 3
    if pos + expected != len(data):
        raise InvalidInputError(f"PPM 数据长度不正确: {len(data)} vs. {pos + expected}")

    pixels = np.frombuffer(data, dtype=np.uint8, count=expected, offset=pos)
    return PixelBuffer(data=pixels.copy(), width=width, height=height, stride=width * 3, components=3)


class PillowCodec:
    """基于 Pillow 的 JPEG 编解码实现。"""

    def decode(self, data: bytes, filetype: FileType, mode: str = MODE_RGB) -> PixelBuffer:
        if mode not in (MODE_LUMA, MODE_RGB):
            raise InvalidInputError(f"不支持的像素格式: {mode}")

        if filetype is FileType.PPM:
            rgb = decode_ppm(data)
            return grayscale(rgb) if mode == MODE_LUMA else rgb

        try:
            with Image.open(io.BytesIO(data)) as img:
                if img.format != "JPEG":
                    raise InvalidInputError(f"不是 JPEG 图像: {img.format}")
                if mode == MODE_LUMA:
                    # 直接取解码器输出的 Y 通道，不经 RGB 转换
                    img.draft(MODE_LUMA, img.size)
                img.load()
                converted = img if img.mode == mode else img.convert(mode)
                array = np.asarray(converted, dtype=np.uint8)
        except (UnidentifiedImageError, OSError) as exc:
            LOGGER.debug("JPEG 解码失败: %s", exc)
            raise InvalidInputError("无法解码 JPEG 数据") from exc

        return PixelBuffer.from_array(array)

    def encode(
        self,
        pixels: PixelBuffer,
        quality: int,
        *,
        progressive: bool = False,
        optimize: bool = False,
        subsampling: Subsampling = Subsampling.DEFAULT,
    ) -> bytes:
        image = Image.fromarray(np.ascontiguousarray(pixels.to_array()))
        params = {
            "format": "JPEG",
            "quality": quality,
            "progressive": progressive,
            "optimize": optimize,
        }
        if subsampling is Subsampling.DISABLE:
            params["subsampling"] = 0  # 4:4:4

        buffer = io.BytesIO()
        try:
            image.save(buffer, **params)
        except (OSError, ValueError) as exc:
            raise CodecRoundTripError(f"JPEG 编码失败 (q={quality})") from exc
        finally:
            image.close()
        return buffer.getvalue()
