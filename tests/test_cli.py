"""命令行入口。"""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image
from typer.testing import CliRunner

from image_fidelity.cli.main import app
from image_fidelity.processing.metadata import extract_metadata

runner = CliRunner()


def make_image(path: Path, quality: int = 100) -> Path:
    ys, xs = np.mgrid[0:96, 0:128]
    gray = 128 + 80 * np.sin(xs / 6.0) * np.cos(ys / 5.0)
    rgb = np.stack([gray, gray[::-1], 255 - gray], axis=-1)
    Image.fromarray(np.clip(rgb, 0, 255).astype(np.uint8)).save(path, format="JPEG", quality=quality)
    return path


def test_compare_command_prints_score(tmp_path: Path) -> None:
    image = make_image(tmp_path / "a.jpg")

    fast = runner.invoke(app, ["compare", str(image), str(image)])
    assert fast.exit_code == 0
    assert fast.stdout.strip() == "0"

    ssim = runner.invoke(app, ["compare", "-m", "ssim", str(image), str(image)])
    assert ssim.exit_code == 0
    assert ssim.stdout.strip() == "SSIM: 1.000000"


def test_compare_command_rejects_unknown_method(tmp_path: Path) -> None:
    image = make_image(tmp_path / "a.jpg")

    result = runner.invoke(app, ["compare", "-m", "butteraugli", str(image), str(image)])

    assert result.exit_code == 255


def test_compare_command_size_mismatch_exits_with_error(tmp_path: Path) -> None:
    image = make_image(tmp_path / "a.jpg")
    other = tmp_path / "b.jpg"
    Image.new("RGB", (10, 10)).save(other, format="JPEG")

    result = runner.invoke(app, ["compare", "-m", "psnr", str(image), str(other)])

    assert result.exit_code == 1


def test_hash_command(tmp_path: Path) -> None:
    image = make_image(tmp_path / "a.jpg")

    result = runner.invoke(app, ["hash", "-s", "8", str(image)])

    assert result.exit_code == 0
    assert len(result.stdout.strip()) == 64
    assert set(result.stdout.strip()) <= {"0", "1"}


def test_recompress_command_writes_marked_output(tmp_path: Path) -> None:
    source = make_image(tmp_path / "source.jpg")
    output = tmp_path / "result.jpg"

    result = runner.invoke(app, ["recompress", "-Q", "-m", "mpe", "-q", "low", str(source), str(output)])

    assert result.exit_code == 0
    data = output.read_bytes()
    assert len(data) < source.stat().st_size
    assert extract_metadata(data).already_processed


def test_recompress_command_exit_codes(tmp_path: Path) -> None:
    source = make_image(tmp_path / "source.jpg")
    first = tmp_path / "first.jpg"
    runner.invoke(app, ["recompress", "-Q", str(source), str(first)])

    rejected = runner.invoke(app, ["recompress", "-Q", "--no-copy", str(first), str(tmp_path / "second.jpg")])
    assert rejected.exit_code == 2

    bad_method = runner.invoke(app, ["recompress", "-m", "fast", str(source), str(tmp_path / "x.jpg")])
    assert bad_method.exit_code == 255

    bad_range = runner.invoke(app, ["recompress", "-n", "90", "-x", "80", str(source), str(tmp_path / "x.jpg")])
    assert bad_range.exit_code == 255

    missing = runner.invoke(app, ["recompress", "-Q", str(tmp_path / "none.jpg"), str(tmp_path / "x.jpg")])
    assert missing.exit_code == 1
    assert not (tmp_path / "x.jpg").exists()
