import pytest
import requests
from PIL import Image

from conftest import png_bytes
from mdrender.images import POINTS_PER_PIXEL, ImageLoader, decode_image


def test_rgb_image_keeps_samples():
    image = decode_image(png_bytes("RGB", (4, 3), (10, 20, 30)), source="a.png")
    assert (image.width, image.height, image.mode) == (4, 3, "RGB")
    assert image.data[:3] == bytes([10, 20, 30])
    assert len(image.data) == 4 * 3 * 3
    assert image.alpha is None


def test_rgba_image_splits_alpha_plane():
    image = decode_image(png_bytes("RGBA", (2, 2), (255, 0, 0, 128)))
    assert image.mode == "RGB"
    assert image.alpha == bytes([128]) * 4


def test_palette_and_bilevel_are_normalized():
    assert decode_image(png_bytes("P", (3, 3), 1)).mode == "RGB"
    assert decode_image(png_bytes("1", (3, 3), 1)).mode == "L"


def test_digest_identifies_equal_pixels():
    first = decode_image(png_bytes(), source="one.png")
    second = decode_image(png_bytes(), source="two.png")
    other = decode_image(png_bytes(color=(0, 0, 0)))
    assert first.digest == second.digest
    assert first.digest != other.digest


def test_size_in_points():
    image = decode_image(png_bytes("RGB", (96, 48)))
    assert image.size_in_points == (72.0, 48 * POINTS_PER_PIXEL)


def test_loader_reads_relative_paths_and_caches(tmp_path):
    (tmp_path / "img dir").mkdir()
    Image.new("L", (5, 5), 77).save(tmp_path / "img dir" / "pic.png")
    loader = ImageLoader(base_dir=tmp_path)
    image = loader.load("img%20dir/pic.png")
    assert image.mode == "L" and image.width == 5
    assert loader.load("img%20dir/pic.png") is image


def test_try_load_missing_file_returns_none(tmp_path, caplog):
    loader = ImageLoader(base_dir=tmp_path)
    assert loader.try_load("missing.png") is None
    assert "missing.png" in caplog.text


def test_try_load_rejects_non_image_data(tmp_path):
    (tmp_path / "notes.png").write_text("not an image", encoding="utf-8")
    assert ImageLoader(base_dir=tmp_path).try_load("notes.png") is None


def test_try_load_refuses_oversized_images(tmp_path, monkeypatch, caplog):
    Image.new("L", (20, 20), 0).save(tmp_path / "huge.png")
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
    assert ImageLoader(base_dir=tmp_path).try_load("huge.png") is None
    assert "huge.png" in caplog.text


def test_remote_images_use_requests(monkeypatch):
    calls = []

    class FakeResponse:
        content = png_bytes("RGB", (2, 2))

        def raise_for_status(self):
            return None

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return FakeResponse()

    monkeypatch.setattr(requests, "get", fake_get)
    image = ImageLoader(timeout=5).load("https://example.com/a.png")
    assert image.width == 2
    assert calls == [("https://example.com/a.png", 5)]


def test_remote_failure_falls_back(monkeypatch):
    def failing_get(url, timeout):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(requests, "get", failing_get)
    assert ImageLoader().try_load("https://example.com/a.png") is None


def test_remote_images_can_be_disabled():
    with pytest.raises(OSError):
        ImageLoader(allow_remote=False).read("https://example.com/a.png")
