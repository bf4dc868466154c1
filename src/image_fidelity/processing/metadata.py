"""JPEG 元数据段扫描与输出注释段构造。

只遍历 SOS 之前的标记段，不解析熵编码数据。
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

COMMENT = "Compressed by jpeg-recompress"

SOI = b"\xff\xd8"
APP0 = b"\xff\xe0"
COM_MARKER = 0xFFFE
SOS_MARKER = 0xFFDA
DRI_MARKER = 0xFFDD
MAX_SEGMENTS = 20


@dataclass(slots=True)
class JpegMetadata:
    """保留下来的 APP1~APP15 与 COM 段（原样拼接）。"""

    payload: bytes = b""
    already_processed: bool = False
    segment_count: int = 0

    @property
    def size(self) -> int:
        return len(self.payload)


def has_jpeg_magic(data: bytes) -> bool:
    return data[:2] == SOI


def has_app0_after_soi(data: bytes) -> bool:
    return has_jpeg_magic(data) and data[2:4] == APP0 and len(data) >= 6


def _is_saved_marker(marker: int) -> bool:
    return 0xFFE1 <= marker <= 0xFFEF or marker == COM_MARKER


def extract_metadata(data: bytes, comment: str = COMMENT) -> JpegMetadata:
    """扫描 JPEG 头部，收集 EXIF/IPTC/XMP 等 APPn 段以及 COM 段。

    COM 段内容以 ``comment`` 开头时说明文件已经被处理过，立即返回。
    最多保留 20 个段；截断的段不会越界读取。
    """

    sentinel = comment.encode("ascii") if comment else b""
    segments: list[bytes] = []
    pos = 0
    total = len(data)

    while pos + 1 < total and len(segments) < MAX_SEGMENTS:
        marker = (data[pos] << 8) + data[pos + 1]

        if marker == SOS_MARKER:
            break
        if marker == DRI_MARKER:
            pos += 2 + 4
            continue
        if 0xFFD0 <= marker <= 0xFFD9:
            pos += 2
            continue
        if pos + 3 >= total:
            LOGGER.debug("标记 %#06x 缺少长度字段，停止扫描", marker)
            break

        size = (data[pos + 2] << 8) + data[pos + 3]
        if _is_saved_marker(marker):
            if marker == COM_MARKER and sentinel and data[pos + 4 : pos + 4 + len(sentinel)] == sentinel:
                LOGGER.debug("在偏移 %d 处发现处理标记", pos)
                return JpegMetadata(already_processed=True)
            segments.append(data[pos : pos + size + 2])
        pos += 2 + size

    payload = b"".join(segments)
    LOGGER.debug("保留 %d 个元数据段，共 %d 字节", len(segments), len(payload))
    return JpegMetadata(payload=payload, segment_count=len(segments))


def build_comment_segment(comment: str = COMMENT) -> bytes:
    """COM 段：``FF FE`` + 两字节大端长度 (len + 2) + 注释文本（不含结尾 NUL）。"""

    body = comment.encode("ascii")
    return b"\xff\xfe" + struct.pack(">H", len(body) + 2) + body
