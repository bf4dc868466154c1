"""感知哈希与汉明距离。"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image, ImageEnhance

from image_fidelity.core.exceptions import InvalidInputError
from image_fidelity.core.models import PixelBuffer
from image_fidelity.processing.image_loader import ImageLoadingError
from image_fidelity.processing.phash import generate_hash, hamming_distance, hash_file, similarity_score


def checker_source() -> PixelBuffer:
    # [ 0 15  2 13 / 4 11  6  9 / 8  7 10  5 / 12  3 14  1 ]
    values = [(16 - x) if x % 2 else x for x in range(16)]
    return PixelBuffer.from_array(np.array(values, dtype=np.uint8).reshape(4, 4))


def make_photo(path: Path, size: tuple[int, int] = (160, 120)) -> Image.Image:
    width, height = size
    ys, xs = np.mgrid[0:height, 0:width]
    red = (xs * 255 // width).astype(np.uint8)
    green = (ys * 255 // height).astype(np.uint8)
    blue = ((xs + ys) % 64 * 4).astype(np.uint8)
    image = Image.fromarray(np.stack([red, green, blue], axis=-1))
    image.save(path, format="JPEG", quality=90)
    return image


def test_hash_bits_follow_horizontal_gradient() -> None:
    image_hash = generate_hash(checker_source(), size=4)
    bits = image_hash.bits

    assert bits[0] == 1
    assert bits[1] == 0
    assert bits[5] == 0
    assert bits[9] == 1
    # 每行最后一列没有右邻居
    assert [bits[3], bits[7], bits[11], bits[15]] == [0, 0, 0, 0]


def test_hash_string_is_row_major() -> None:
    image_hash = generate_hash(checker_source(), size=4)

    assert image_hash.to_string() == "1010101001000100"
    assert len(image_hash.to_string()) == 16


def test_hamming_distance_on_strings() -> None:
    assert hamming_distance("101010", "111011") == 2
    with pytest.raises(InvalidInputError):
        hamming_distance("1010", "10101")


def test_hamming_distance_is_symmetric_and_zero_on_self(tmp_path: Path) -> None:
    first = tmp_path / "first.jpg"
    second = tmp_path / "second.jpg"
    make_photo(first)
    Image.new("RGB", (160, 120), "white").save(second, format="JPEG")

    hash_a = hash_file(first)
    hash_b = hash_file(second)

    assert hamming_distance(hash_a, hash_a) == 0
    assert hamming_distance(hash_a, hash_b) == hamming_distance(hash_b, hash_a)
    assert similarity_score(hash_a, hash_b) > 0


def test_hash_ignores_exposure_and_uniform_scaling(tmp_path: Path) -> None:
    original = tmp_path / "original.jpg"
    brighter = tmp_path / "brighter.jpg"
    smaller = tmp_path / "smaller.jpg"
    image = make_photo(original)
    ImageEnhance.Brightness(image).enhance(1.15).save(brighter, format="JPEG", quality=90)
    image.resize((80, 60)).save(smaller, format="JPEG", quality=90)

    reference = hash_file(original)

    assert similarity_score(reference, hash_file(brighter)) < 10
    assert similarity_score(reference, hash_file(smaller)) < 10


def test_similarity_score_requires_same_size(tmp_path: Path) -> None:
    path = tmp_path / "photo.jpg"
    make_photo(path)

    with pytest.raises(InvalidInputError):
        similarity_score(hash_file(path, 8), hash_file(path, 16))


def test_hash_file_rejects_non_image(tmp_path: Path) -> None:
    path = tmp_path / "notes.jpg"
    path.write_text("not an image")

    with pytest.raises(ImageLoadingError):
        hash_file(path)
