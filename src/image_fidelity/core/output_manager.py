"""输出写入模块。"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Union

from image_fidelity.core.exceptions import ImageFidelityError

LOGGER = logging.getLogger(__name__)

STDIO_MARKER = "-"


class ImageWriteError(ImageFidelityError):
    """输出写入失败。"""

    status = "error-write"


def is_stdio(destination: Union[str, Path]) -> bool:
    return str(destination) == STDIO_MARKER


def save_bytes(data: bytes, destination: Union[str, Path]) -> None:
    """写出编码后的字节；``-`` 表示标准输出。"""

    if is_stdio(destination):
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
        return

    path = Path(destination)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as exc:
        raise ImageWriteError(f"写入文件失败: {path}") from exc
    LOGGER.debug("已写出 %d 字节到 %s", len(data), path)
