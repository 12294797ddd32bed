"""
tests/unit/test_media.py — Image Preparation & Local Image Host Tests

Covers:
  - magic-byte sniffing for PNG / JPEG / GIF
  - other Pillow-readable formats re-encoded to PNG, garbage rejected
  - ImageHost serves registered images over HTTP and forgets them on close
"""

from __future__ import annotations

import io

import httpx
import pytest
from PIL import Image

from miraiclient.media.image_host import ImageHost
from miraiclient.media.images import convert_to_png, normalize_image, sniff_image_format

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16
GIF = b"GIF89a" + b"\x00" * 16


def _get(url: str) -> httpx.Response:
    with httpx.Client(trust_env=False) as http:
        return http.get(url)


def _bmp(size=(3, 2), color=(200, 10, 10)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="BMP")
    return buffer.getvalue()


# ─────────────────────────────────────────────────────────────────────────────
# Formats
# ─────────────────────────────────────────────────────────────────────────────

class TestImageSniffing:
    def test_formats(self):
        assert sniff_image_format(PNG) == "png"
        assert sniff_image_format(JPEG) == "jpeg"
        assert sniff_image_format(GIF) == "gif"

    def test_unknown(self):
        with pytest.raises(ValueError):
            sniff_image_format(b"BM\x00\x00")


class TestNormalize:
    def test_supported_formats_pass_through(self):
        assert normalize_image(JPEG) == (JPEG, "jpeg")
        assert normalize_image(GIF) == (GIF, "gif")

    def test_bmp_becomes_png(self):
        content, fmt = normalize_image(_bmp())
        assert fmt == "png"
        assert sniff_image_format(content) == "png"
        with Image.open(io.BytesIO(content)) as img:
            assert img.size == (3, 2)
            assert img.getpixel((0, 0))[:3] == (200, 10, 10)

    def test_cmyk_converted(self):
        buffer = io.BytesIO()
        Image.new("CMYK", (2, 2)).save(buffer, format="TIFF")
        assert convert_to_png(buffer.getvalue()).startswith(b"\x89PNG")

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            normalize_image(b"definitely not an image")


# ─────────────────────────────────────────────────────────────────────────────
# ImageHost
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def image_host():
    host = ImageHost()
    yield host
    host.close()


class TestImageHost:
    def test_not_started_until_first_image(self, image_host):
        assert not image_host.running
        assert image_host.port is None

    def test_serves_registered_image(self, image_host):
        url = image_host.register(PNG, "image/png")

        assert url.startswith(f"http://127.0.0.1:{image_host.port}/fetch?guid=")
        response = _get(url)
        assert response.status_code == 200
        assert response.content == PNG
        assert response.headers["content-type"] == "image/png"

    def test_images_can_be_fetched_twice(self, image_host):
        url = image_host.register(GIF, "image/gif")
        assert _get(url).content == GIF
        assert _get(url).content == GIF

    def test_unknown_guid_is_404(self, image_host):
        image_host.register(PNG, "image/png")
        response = _get(f"http://127.0.0.1:{image_host.port}/fetch?guid=nope")
        assert response.status_code == 404

    def test_other_path_is_404(self, image_host):
        url = image_host.register(PNG, "image/png")
        assert _get(url.replace("/fetch", "/other")).status_code == 404

    def test_public_host_used_in_url(self):
        host = ImageHost(public_host="bot.lan")
        try:
            url = host.register(PNG, "image/png")
            assert url.startswith(f"http://bot.lan:{host.port}/fetch?guid=")
        finally:
            host.close()

    def test_close_forgets_images(self, image_host):
        image_host.register(PNG, "image/png")
        assert len(image_host) == 1
        image_host.close()
        image_host.close()
        assert not image_host.running
        assert len(image_host) == 0
