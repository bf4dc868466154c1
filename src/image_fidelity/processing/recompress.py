"""重压缩：二分搜索满足目标相似度的最低 JPEG 质量。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from image_fidelity.core.config import FileType, RecompressOptions
from image_fidelity.core.exceptions import (
    AlreadyProcessedError,
    CodecRoundTripError,
    ImageFidelityError,
    InvalidInputError,
    SizeRegressionError,
    StructuralIntegrityError,
)
from image_fidelity.core.models import PixelBuffer, RecompressOutcome, RecompressResult, SearchAttempt
from image_fidelity.core.output_manager import ImageWriteError, save_bytes
from image_fidelity.core.progress import ProgressCallback, ProgressUpdate
from image_fidelity.processing.codec import MODE_LUMA, MODE_RGB, Codec, PillowCodec
from image_fidelity.processing.image_loader import ImageLoadingError, read_image_bytes, resolve_filetype
from image_fidelity.processing.metadata import (
    COMMENT,
    JpegMetadata,
    build_comment_segment,
    extract_metadata,
    has_app0_after_soi,
    has_jpeg_magic,
)
from image_fidelity.processing.metrics import higher_is_better, score
from image_fidelity.processing.pixel_prep import clamp, defish, grayscale

LOGGER = logging.getLogger(__name__)


def probe_quality(low: int, high: int, options: RecompressOptions) -> int:
    """区间中点（向零截断，偏向低质量），并限制在配置的质量范围内。"""

    quality = low + int((high - low) / 2)
    return int(clamp(options.quality_min, quality, options.quality_max))


def recompress(
    source: bytes,
    options: Optional[RecompressOptions] = None,
    codec: Optional[Codec] = None,
    progress_callback: ProgressCallback = None,
) -> RecompressResult:
    """对单个文件的字节内容执行重压缩，失败时抛出带状态码的异常。"""

    options = options or RecompressOptions()
    codec = codec or PillowCodec()
    log = _logger_for(options)

    filetype = resolve_filetype(source, options.input_filetype)
    target = options.resolved_target()

    metadata = JpegMetadata()
    if filetype is FileType.JPEG:
        # 读取 EXIF / IPTC / XMP 等元数据段
        metadata = extract_metadata(source, COMMENT)
        if metadata.already_processed:
            if options.copy_files:
                log("File already processed by jpeg-recompress!")
                return RecompressResult(
                    data=source,
                    original_size=len(source),
                    copied=True,
                    note="already processed",
                )
            raise AlreadyProcessedError("File already processed by jpeg-recompress!")

    try:
        original = codec.decode(source, filetype, MODE_RGB)
    except InvalidInputError as exc:
        raise InvalidInputError(f"invalid input file: {exc}") from exc

    if options.defish_strength:
        log("Defishing...")
        original = defish(original, options.defish_strength, options.defish_zoom)
    original_gray = grayscale(original)

    if options.strip:
        metadata = JpegMetadata()
    else:
        log("Metadata size is %ukb", metadata.size // 1024)

    attempts: list[SearchAttempt] = []
    compressed = b""
    quality = options.quality_min
    low, high = options.quality_min, options.quality_max
    for remaining in range(options.attempts - 1, -1, -1):
        quality = probe_quality(low, high, options)
        final = remaining == 0 or low >= high

        compressed = codec.encode(
            original,
            quality,
            progressive=final and not options.no_progressive,
            optimize=options.accurate or final,
            subsampling=options.subsample,
        )
        candidate = _decode_candidate(codec, compressed, original_gray)
        value = score(options.method, original_gray, candidate)
        del candidate

        attempts.append(SearchAttempt(quality=quality, score=value, size=len(compressed), final=final))
        if final:
            log("Final optimized %s at q=%i: %f", options.method.value, quality, value)
        else:
            log("%s at q=%i (%i - %i): %f", options.method.value, quality, low, high, value)
        _emit_progress(
            progress_callback,
            completed=len(attempts),
            total=len(attempts) if final else options.attempts,
            quality=quality,
            value=value,
            message=f"q={quality} {options.method.value}={value:f}",
            status="done" if final else "running",
        )

        # 试探结果不小于原文件时立即结束搜索
        if len(compressed) >= len(source):
            if options.copy_files:
                log("Output file would be larger than input!")
                return RecompressResult(
                    data=source,
                    original_size=len(source),
                    attempts=attempts,
                    copied=True,
                    note="output would be larger than input",
                )
            raise SizeRegressionError("Output file would be larger than input!")

        too_distorted = value < target if higher_is_better(options.method) else value >= target
        if too_distorted:
            low = quality + 1
        else:
            high = quality - 1

        if final:
            break

    percent = (len(compressed) + metadata.size) * 100 // len(source)
    saved = max(len(source) - len(compressed) - metadata.size, 0)
    log("New size is %i%% of original (saved %i kb)", percent, saved // 1024)

    output = assemble_output(compressed, metadata.payload)
    if len(compressed) >= len(source):
        raise SizeRegressionError("Output file is larger than input, aborting!")

    return RecompressResult(
        data=output,
        original_size=len(source),
        quality=quality,
        attempts=attempts,
        metadata_size=metadata.size,
    )


def assemble_output(compressed: bytes, metadata: bytes = b"") -> bytes:
    """SOI + APP0 原样保留，其后插入 COM 标记与元数据段，再接剩余的编码数据。"""

    if not has_jpeg_magic(compressed):
        raise StructuralIntegrityError("Missing SOI marker, aborting!")
    if not has_app0_after_soi(compressed):
        raise StructuralIntegrityError("Missing APP0 marker, aborting!")

    app0_end = 4 + (compressed[4] << 8) + compressed[5]
    if app0_end > len(compressed):
        raise StructuralIntegrityError("Truncated APP0 segment, aborting!")
    return compressed[:app0_end] + build_comment_segment(COMMENT) + metadata + compressed[app0_end:]


def recompress_file(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    options: Optional[RecompressOptions] = None,
    codec: Optional[Codec] = None,
    progress_callback: ProgressCallback = None,
) -> RecompressOutcome:
    """读取、重压缩并写出单个文件；失败不抛异常，而是记录在返回值中。"""

    source_path = Path(input_path)

    try:
        data = read_image_bytes(input_path)
    except ImageLoadingError as exc:
        return RecompressOutcome(
            source_path=source_path,
            status=exc.status,
            status_code=exc.status_code,
            message=str(exc),
        )

    try:
        result = recompress(data, options, codec, progress_callback)
    except ImageFidelityError as exc:
        LOGGER.debug("重压缩失败 %s: %s", input_path, exc)
        return RecompressOutcome(
            source_path=source_path,
            status=exc.status,
            status_code=exc.status_code,
            message=str(exc),
        )

    try:
        save_bytes(result.data, output_path)
    except ImageWriteError as exc:
        return RecompressOutcome(
            source_path=source_path,
            status=exc.status,
            status_code=exc.status_code,
            message=str(exc),
            result=result,
        )

    return RecompressOutcome(
        source_path=source_path,
        status="copied" if result.copied else "recompressed",
        output_path=Path(output_path),
        message=result.note,
        result=result,
    )


def _decode_candidate(codec: Codec, compressed: bytes, reference: PixelBuffer) -> PixelBuffer:
    try:
        candidate = codec.decode(compressed, FileType.JPEG, MODE_LUMA)
    except InvalidInputError as exc:
        raise CodecRoundTripError("Unable to decode file that was just encoded!") from exc
    if not candidate.same_shape(reference):
        raise CodecRoundTripError(
            f"解码结果尺寸 {candidate.width}x{candidate.height} 与原图 {reference.width}x{reference.height} 不一致"
        )
    return candidate


def _logger_for(options: RecompressOptions) -> Callable[..., None]:
    return LOGGER.debug if options.quiet else LOGGER.info


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    quality: Optional[int] = None,
    value: Optional[float] = None,
    message: Optional[str] = None,
    status: str = "running",
) -> None:
    if not callback:
        return
    callback(
        ProgressUpdate(
            total=total,
            completed=completed,
            quality=quality,
            score=value,
            message=message,
            status=status,
        )
    )
