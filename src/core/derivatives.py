"""
이미지 인코딩: primary rendition + size derivative

규칙:
- primary: 가로 최대 2000px (확대 금지), WebP quality 85
- derivative: WIDTHxHEIGHT 고정, cover fit (비율 유지 crop, 여백 없음), WebP quality 80
- derivative는 항상 원본 바이트에서 생성 (primary 재인코딩 금지)
- 디코딩 불가 바이트 → EncodeError (해당 파일만 실패)
- 같은 입력 재실행 시 같은 위치에 덮어쓰기 (멱등)
"""

import io
import logging
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from src.domain.constants import (
    DERIVATIVE_QUALITY,
    PRIMARY_MAX_WIDTH,
    PRIMARY_QUALITY,
    SIZE_DIR_PATTERN,
)
from src.domain.errors import EncodeError, ErrorCodes, InvalidSizeError

logger = logging.getLogger(__name__)


def parse_size(size: str) -> tuple[int, int]:
    """
    "WIDTHxHEIGHT" → (width, height).

    Raises:
        InvalidSizeError: 형식 불일치 또는 0 크기
    """
    if not isinstance(size, str) or not SIZE_DIR_PATTERN.fullmatch(size):
        raise InvalidSizeError(ErrorCodes.INVALID_SIZE, size=size)

    width, height = (int(part) for part in size.split("x"))
    if width == 0 or height == 0:
        raise InvalidSizeError(ErrorCodes.INVALID_SIZE, size=size)

    return width, height


def _open_image(data: bytes) -> Image.Image:
    """바이트 → 디코딩 완료된 Image."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise EncodeError(
            ErrorCodes.ENCODE_FAILED,
            size_bytes=len(data),
            error=str(e),
        ) from e
    return image


def _to_webp_mode(image: Image.Image) -> Image.Image:
    """WebP가 받는 RGB/RGBA로 변환 (투명도 있으면 RGBA)."""
    if image.mode in ("RGB", "RGBA"):
        return image
    if "A" in image.getbands() or "transparency" in image.info:
        return image.convert("RGBA")
    return image.convert("RGB")


def _encode_webp(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="WEBP", quality=quality)
    return buffer.getvalue()


def render_primary(
    data: bytes,
    max_width: int = PRIMARY_MAX_WIDTH,
    quality: int = PRIMARY_QUALITY,
) -> bytes:
    """
    primary rendition 인코딩.

    Args:
        data: 원본 바이트
        max_width: 가로 상한 (작은 이미지는 확대하지 않음)
        quality: WebP quality

    Returns:
        WebP 바이트

    Raises:
        EncodeError: 디코딩 불가
    """
    image = _to_webp_mode(_open_image(data))

    if image.width > max_width:
        height = max(1, round(image.height * max_width / image.width))
        image = image.resize((max_width, height), Image.Resampling.LANCZOS)

    return _encode_webp(image, quality)


def render_derivative(
    data: bytes,
    size: str,
    quality: int = DERIVATIVE_QUALITY,
) -> bytes:
    """
    고정 크기 derivative 인코딩 (cover fit, 중앙 crop).

    Raises:
        InvalidSizeError: size 형식 오류
        EncodeError: 디코딩 불가
    """
    width, height = parse_size(size)
    image = _to_webp_mode(_open_image(data))
    fitted = ImageOps.fit(
        image,
        (width, height),
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )
    return _encode_webp(fitted, quality)


def generate_derivative(
    folder_dir: Path,
    filename: str,
    source_bytes: bytes,
    size: str,
    quality: int = DERIVATIVE_QUALITY,
) -> Path:
    """
    folder/{size}/{filename} 에 derivative 기록.

    Args:
        folder_dir: 폴더 절대 경로
        filename: primary rendition 파일명 (derivative도 같은 이름)
        source_bytes: 원본 바이트
        size: "WIDTHxHEIGHT"
        quality: WebP quality

    Returns:
        기록된 파일 경로
    """
    encoded = render_derivative(source_bytes, size, quality)

    target_dir = folder_dir / size
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / filename
    target.write_bytes(encoded)

    logger.debug(f"Derivative written: {target}")
    return target
