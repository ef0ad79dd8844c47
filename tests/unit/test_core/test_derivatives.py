"""
test_derivatives.py - primary / derivative 인코딩 테스트

DoD:
- primary: 폭 2000 상한, 확대 금지, 비율 유지, WebP
- derivative: 정확히 WxH (cover fit), WebP
- 디코딩 불가 → EncodeError, 잘못된 size → InvalidSizeError
"""

import io
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from src.core.derivatives import (
    generate_derivative,
    parse_size,
    render_derivative,
    render_primary,
)
from src.domain.errors import EncodeError, InvalidSizeError


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


# =============================================================================
# parse_size 테스트
# =============================================================================


class TestParseSize:
    """size spec 파싱 테스트."""

    def test_valid(self):
        """WIDTHxHEIGHT → (w, h)."""
        assert parse_size("400x300") == (400, 300)

    @pytest.mark.parametrize(
        "size",
        ["", "400", "400X300", "400x", "x300", "-1x3", "0x300", "400x0", "../x", "4 00x300"],
    )
    def test_invalid(self, size: str):
        """형식 불일치, 0 크기 → InvalidSizeError."""
        with pytest.raises(InvalidSizeError):
            parse_size(size)


# =============================================================================
# render_primary 테스트
# =============================================================================


class TestRenderPrimary:
    """primary rendition 테스트."""

    def test_output_is_webp(self, png_bytes: bytes):
        """WebP 로 인코딩."""
        assert _open(render_primary(png_bytes)).format == "WEBP"

    def test_small_image_not_upscaled(self, png_bytes: bytes):
        """상한보다 작으면 원래 크기."""
        assert _open(render_primary(png_bytes)).size == (64, 48)

    def test_wide_image_capped(self, image_factory: Callable[..., bytes]):
        """폭 상한 초과 시 비율 유지 축소."""
        data = image_factory(400, 100)
        assert _open(render_primary(data, max_width=200)).size == (200, 50)

    def test_default_cap_is_2000(self, image_factory: Callable[..., bytes]):
        """기본 상한 2000."""
        data = image_factory(2400, 600, fmt="JPEG")
        assert _open(render_primary(data)).size == (2000, 500)

    def test_transparency_kept(self):
        """알파 채널 유지 (RGBA)."""
        buffer = io.BytesIO()
        Image.new("RGBA", (10, 10), (255, 0, 0, 128)).save(buffer, format="PNG")
        assert _open(render_primary(buffer.getvalue())).mode == "RGBA"

    def test_palette_image_converted(self):
        """팔레트 이미지도 인코딩 가능."""
        buffer = io.BytesIO()
        Image.new("P", (10, 10)).save(buffer, format="GIF")
        assert _open(render_primary(buffer.getvalue())).format == "WEBP"

    @pytest.mark.parametrize("data", [b"", b"not an image", b"\x89PNG\r\n\x1a\n broken"])
    def test_undecodable_raises(self, data: bytes):
        """디코딩 불가 → EncodeError."""
        with pytest.raises(EncodeError) as exc_info:
            render_primary(data)
        assert exc_info.value.code == "ENCODE_FAILED"


# =============================================================================
# render_derivative / generate_derivative 테스트
# =============================================================================


class TestRenderDerivative:
    """cover fit derivative 테스트."""

    @pytest.mark.parametrize("size", ["400x300", "32x32", "10x90"])
    def test_exact_dimensions(self, png_bytes: bytes, size: str):
        """결과는 항상 정확히 WxH (확대 포함)."""
        width, height = parse_size(size)
        assert _open(render_derivative(png_bytes, size)).size == (width, height)

    def test_invalid_size(self, png_bytes: bytes):
        """잘못된 size → InvalidSizeError."""
        with pytest.raises(InvalidSizeError):
            render_derivative(png_bytes, "big")

    def test_generate_writes_under_size_dir(self, tmp_path: Path, jpeg_bytes: bytes):
        """folder/{size}/{filename} 에 기록."""
        target = generate_derivative(tmp_path, "a-1234abcd.webp", jpeg_bytes, "40x30")

        assert target == tmp_path / "40x30" / "a-1234abcd.webp"
        assert _open(target.read_bytes()).size == (40, 30)

    def test_generate_overwrites(self, tmp_path: Path, jpeg_bytes: bytes):
        """재실행 시 같은 위치에 덮어씀."""
        first = generate_derivative(tmp_path, "a.webp", jpeg_bytes, "20x20")
        first.write_bytes(b"stale")
        second = generate_derivative(tmp_path, "a.webp", jpeg_bytes, "20x20")

        assert first == second
        assert _open(second.read_bytes()).size == (20, 20)
