"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from image_fidelity.core.config import (
    CompareOptions,
    FileType,
    Method,
    QualityPreset,
    RecompressOptions,
    Subsampling,
    parse_enum,
)
from image_fidelity.core.exceptions import ImageFidelityError
from image_fidelity.core.output_manager import is_stdio
from image_fidelity.core.progress import ProgressUpdate
from image_fidelity.processing.comparator import compare_files
from image_fidelity.processing.phash import DEFAULT_HASH_SIZE, hash_file
from image_fidelity.processing.recompress import recompress_file
from image_fidelity.utils.logging import setup_logging

app = typer.Typer(help="图片相似度比较、感知哈希与 JPEG 目标质量重压缩工具。")

LOGGER = logging.getLogger(__name__)


def _fail(exc: ImageFidelityError) -> typer.Exit:
    typer.echo(str(exc), err=True)
    return typer.Exit(code=exc.status_code)


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("搜索质量", total=update.total)
        description = "搜索质量" if update.quality is None else f"搜索质量 q={update.quality}"
        progress.update(task_id, total=update.total, completed=update.completed, description=description)
        if update.message:
            progress.log(update.message)

    return callback


@app.command("compare")
def compare_cli(
    image1: Path = typer.Argument(..., help="第一张图片，- 表示标准输入"),
    image2: Path = typer.Argument(..., help="第二张图片"),
    method: str = typer.Option("fast", "--method", "-m", help="比较方法 fast/psnr/ssim/ms-ssim/smallfry/mpe"),
    size: int = typer.Option(DEFAULT_HASH_SIZE, "--size", "-s", help="fast 模式的哈希尺寸"),
    first_type: str = typer.Option("auto", "--input-filetype-1", "-T", help="第一张图片类型 auto/jpeg/ppm"),
    second_type: str = typer.Option("auto", "--input-filetype-2", "-U", help="第二张图片类型 auto/jpeg/ppm"),
) -> None:
    """比较两张图片的相似度。"""

    setup_logging(logging.WARNING)

    try:
        options = CompareOptions(
            method=parse_enum(Method, method),
            hash_size=size,
            first_filetype=parse_enum(FileType, first_type),
            second_filetype=parse_enum(FileType, second_type),
        )
        result = compare_files(image1, image2, options)
    except ImageFidelityError as exc:
        raise _fail(exc) from exc

    typer.echo(result.format())


@app.command("hash")
def hash_cli(
    image: Path = typer.Argument(..., help="待计算哈希的图片"),
    size: int = typer.Option(DEFAULT_HASH_SIZE, "--size", "-s", help="哈希尺寸"),
) -> None:
    """输出图片的感知哈希（'1'/'0' 字符串，按行排列）。"""

    setup_logging(logging.WARNING)

    try:
        image_hash = hash_file(image, size)
    except ImageFidelityError as exc:
        raise _fail(exc) from exc

    typer.echo(image_hash.to_string())


@app.command("recompress")
def recompress_cli(  # noqa: PLR0913
    source: Path = typer.Argument(..., help="输入图片，- 表示标准输入"),
    output: Path = typer.Argument(..., help="输出 JPEG，- 表示标准输出"),
    target: float = typer.Option(0.0, "--target", "-t", help="目标分数，0 表示按质量档位取值"),
    quality: str = typer.Option("medium", "--quality", "-q", help="质量档位 low/medium/high/veryhigh"),
    method: str = typer.Option("ssim", "--method", "-m", help="比较方法 ssim/ms-ssim/smallfry/mpe"),
    quality_min: int = typer.Option(40, "--min", "-n", help="最低 JPEG 质量"),
    quality_max: int = typer.Option(95, "--max", "-x", help="最高 JPEG 质量"),
    loops: int = typer.Option(6, "--loops", "-l", help="二分搜索次数"),
    strip: bool = typer.Option(False, "--strip", "-s", help="不保留元数据"),
    no_progressive: bool = typer.Option(False, "--no-progressive", "-p", help="最终输出不使用渐进式编码"),
    defish_strength: float = typer.Option(0.0, "--defish", "-d", help="鱼眼校正强度"),
    defish_zoom: float = typer.Option(1.0, "--zoom", "-z", help="鱼眼校正缩放"),
    input_type: str = typer.Option("auto", "--input-filetype", "-T", help="输入类型 auto/jpeg/ppm"),
    no_copy: bool = typer.Option(False, "--no-copy", "-c", help="无法压缩时不复制原文件"),
    accurate: bool = typer.Option(False, "--accurate", "-a", help="每次试探都做完整优化（更慢但更准确）"),
    subsample: str = typer.Option("default", "--subsample", "-S", help="色度抽样 default/disable"),
    quiet: bool = typer.Option(False, "--quiet", "-Q", help="只输出错误信息"),
) -> None:
    """二分搜索满足目标相似度的最低 JPEG 质量并写出结果。"""

    setup_logging(quiet=quiet)
    LOGGER.debug("CLI 参数解析完成")

    try:
        options = RecompressOptions(
            method=parse_enum(Method, method),
            attempts=loops,
            target=target or None,
            preset=parse_enum(QualityPreset, quality),
            quality_min=quality_min,
            quality_max=quality_max,
            strip=strip,
            no_progressive=no_progressive,
            defish_strength=defish_strength,
            defish_zoom=defish_zoom,
            input_filetype=parse_enum(FileType, input_type),
            copy_files=not no_copy,
            accurate=accurate,
            subsample=parse_enum(Subsampling, subsample),
            quiet=quiet,
        )
    except ImageFidelityError as exc:
        raise _fail(exc) from exc

    # 输出可能是 stdout 上的二进制数据，进度条固定画在 stderr
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=Console(stderr=True),
        disable=quiet,
    )

    with progress:
        outcome = recompress_file(source, output, options, progress_callback=_build_progress_callback(progress))

    if not outcome.succeeded:
        typer.echo(outcome.message or outcome.status, err=True)
        raise typer.Exit(code=outcome.status_code)

    if not quiet and outcome.result is not None:
        summary = outcome.result
        if summary.copied:
            message = f"已复制原文件：{outcome.message}"
        else:
            message = (
                f"处理完成：质量 {summary.quality}，大小为原文件的 {summary.percent_of_original}%，"
                f"节省 {summary.saved_bytes // 1024} kb。"
            )
        typer.echo(message, err=is_stdio(output))


if __name__ == "__main__":
    app()
