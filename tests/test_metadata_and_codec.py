"""JPEG 元数据段扫描、PPM 解析与 Pillow 编解码。"""

from __future__ import annotations

import io
import struct
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from image_fidelity.core.config import FileType, Subsampling
from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import PixelBuffer
from image_fidelity.processing.codec import PillowCodec, decode_ppm
from image_fidelity.processing.image_loader import ImageLoadingError, detect_filetype, load_pixels
from image_fidelity.processing.metadata import COMMENT, build_comment_segment, extract_metadata


def segment(marker: int, payload: bytes) -> bytes:
    return struct.pack(">HH", marker, len(payload) + 2) + payload


def fake_jpeg(*segments: bytes) -> bytes:
    return b"\xff\xd8" + segment(0xFFE0, b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00") + b"".join(segments) + b"\xff\xda\x00\x02\x01\x02"


def test_comment_segment_layout() -> None:
    data = build_comment_segment()

    assert data[:2] == b"\xff\xfe"
    assert struct.unpack(">H", data[2:4])[0] == len(COMMENT) + 2
    assert data[4:] == COMMENT.encode("ascii")


def test_extract_keeps_app_and_comment_segments() -> None:
    exif = segment(0xFFE1, b"Exif\x00\x00" + b"\x01" * 20)
    xmp = segment(0xFFE1, b"http://ns.adobe.com/xap/1.0/\x00<x/>")
    comment = segment(0xFFFE, b"hello")
    quant = segment(0xFFDB, b"\x00" * 65)

    metadata = extract_metadata(fake_jpeg(exif, quant, xmp, comment))

    assert not metadata.already_processed
    assert metadata.payload == exif + xmp + comment
    assert metadata.size == len(exif) + len(xmp) + len(comment)
    assert metadata.segment_count == 3


def test_extract_detects_processed_marker() -> None:
    data = fake_jpeg(segment(0xFFE1, b"Exif\x00\x00"), build_comment_segment())

    assert extract_metadata(data).already_processed


def test_extract_stops_at_sos_and_caps_segment_count() -> None:
    many = [segment(0xFFED, bytes([index])) for index in range(25)]
    metadata = extract_metadata(fake_jpeg(*many))

    assert metadata.segment_count == 20

    after_sos = fake_jpeg() + segment(0xFFE1, b"late")
    assert extract_metadata(after_sos).payload == b""


def test_extract_skips_restart_and_dri_markers() -> None:
    data = b"\xff\xd8" + b"\xff\xdd\x00\x04\x00\x10" + b"\xff\xd0" + segment(0xFFE2, b"icc") + b"\xff\xda"

    assert extract_metadata(data).payload == segment(0xFFE2, b"icc")


def test_decode_ppm() -> None:
    data = b"P6\n2 2\n255\n" + bytes(range(1, 13))

    pixels = decode_ppm(data)

    assert (pixels.width, pixels.height, pixels.components) == (2, 2, 3)
    assert pixels.data[0] == 1
    assert pixels.data[11] == 12


def test_decode_ppm_with_comment_line() -> None:
    data = b"P6\n# made by hand\n1 1\n255\n" + b"\x0a\x14\x1e"

    assert decode_ppm(data).to_array().tolist() == [[[10, 20, 30]]]


@pytest.mark.parametrize(
    "data",
    [
        b"P5\n2 2\n255\n" + bytes(4),
        b"P6\n2 2\n65535\n" + bytes(24),
        b"P6\n2 2\n255\n" + bytes(11),
        b"P6\n2 2\n255\n" + bytes(13),
    ],
)
def test_decode_ppm_rejects_invalid(data: bytes) -> None:
    with pytest.raises(InvalidInputError):
        decode_ppm(data)


def test_detect_filetype() -> None:
    assert detect_filetype(b"\xff\xd8\xff\xe0") is FileType.JPEG
    assert detect_filetype(b"P6\n1 1\n255\n") is FileType.PPM
    with pytest.raises(ImageLoadingError):
        detect_filetype(b"GIF89a")


def test_pillow_codec_round_trip_starts_with_soi_app0() -> None:
    codec = PillowCodec()
    ys, xs = np.mgrid[0:32, 0:48]
    rgb = np.stack([xs * 5, ys * 7, (xs + ys) * 2], axis=-1).astype(np.uint8)

    encoded = codec.encode(PixelBuffer.from_array(rgb), 80, progressive=True, optimize=True, subsampling=Subsampling.DISABLE)

    assert encoded[:4] == b"\xff\xd8\xff\xe0"
    luma = codec.decode(encoded, FileType.JPEG, "L")
    color = codec.decode(encoded, FileType.JPEG, "RGB")
    assert (luma.width, luma.height, luma.components) == (48, 32, 1)
    assert color.components == 3


def test_pillow_codec_decodes_grayscale_jpeg_as_rgb() -> None:
    buffer = io.BytesIO()
    Image.new("L", (16, 16), 90).save(buffer, format="JPEG")

    rgb = PillowCodec().decode(buffer.getvalue(), FileType.JPEG, "RGB")

    assert rgb.components == 3
    assert abs(int(rgb.to_array()[8, 8, 0]) - 90) <= 1


def test_pillow_codec_rejects_non_jpeg_payload() -> None:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="PNG")

    with pytest.raises(InvalidInputError):
        PillowCodec().decode(buffer.getvalue(), FileType.JPEG, "L")


def test_load_pixels_converts_ppm_to_luma(tmp_path: Path) -> None:
    path = tmp_path / "pixel.ppm"
    path.write_bytes(b"P6\n1 1\n255\n" + bytes([255, 0, 0]))

    gray = load_pixels(path, FileType.AUTO, "L")

    assert gray.components == 1
    assert gray.to_array().tolist() == [[76]]


def test_load_pixels_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ImageLoadingError):
        load_pixels(tmp_path / "missing.jpg")
