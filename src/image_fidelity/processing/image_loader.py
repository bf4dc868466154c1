"""图片读取与类型识别。"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from image_fidelity.core.config import FileType
from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import PixelBuffer
from image_fidelity.core.output_manager import is_stdio
from image_fidelity.processing.codec import Codec, PillowCodec

LOGGER = logging.getLogger(__name__)


class ImageLoadingError(InvalidInputError):
    """图片读取或解码失败。"""


def read_image_bytes(path: Union[str, Path]) -> bytes:
    """读取整个文件；``-`` 表示从标准输入读取。"""

    if is_stdio(path):
        data = sys.stdin.buffer.read()
    else:
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            LOGGER.debug("无法读取文件 %s: %s", path, exc)
            raise ImageLoadingError(f"无法读取文件: {path}") from exc

    if not data:
        raise ImageLoadingError(f"文件为空: {path}")
    return data


def detect_filetype(data: bytes) -> FileType:
    """根据文件头魔数判断类型，无法识别时报错。"""

    if data[:2] == b"\xff\xd8":
        return FileType.JPEG
    if data[:2] == b"P6":
        return FileType.PPM
    raise ImageLoadingError("无法识别的文件类型（仅支持 JPEG 与 PPM）")


def resolve_filetype(data: bytes, hint: FileType = FileType.AUTO) -> FileType:
    return detect_filetype(data) if hint is FileType.AUTO else hint


def load_pixels(
    path: Union[str, Path],
    filetype: FileType = FileType.AUTO,
    mode: str = "RGB",
    codec: Optional[Codec] = None,
) -> PixelBuffer:
    """读取并解码单张图片。"""

    data = read_image_bytes(path)
    codec = codec or PillowCodec()
    try:
        return codec.decode(data, resolve_filetype(data, filetype), mode)
    except InvalidInputError as exc:
        raise ImageLoadingError(f"无法加载图像: {path} ({exc})") from exc
