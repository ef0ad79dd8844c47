"""
Pytest fixtures for the asset store tests.

구성:
- storage root 는 tmp_path 하위 (테스트 간 격리)
- 이미지 바이트는 Pillow 로 메모리에서 생성 (실제 인코딩 경로 사용)
"""

import io
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from src.core.store import AssetStore
from src.domain.schemas import StoreSettings

# =============================================================================
# Path / Config Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """프로젝트 루트 경로."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_config_path(project_root: Path) -> Path:
    """default.yaml 경로."""
    return project_root / "default.yaml"


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """빈 storage root."""
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def settings(storage_root: Path) -> StoreSettings:
    """테스트용 설정 (락 timeout 짧게)."""
    return StoreSettings(root=storage_root, lock_timeout=2.0)


@pytest.fixture
def store(settings: StoreSettings) -> AssetStore:
    """tmp storage root 위의 AssetStore."""
    return AssetStore(settings)


# =============================================================================
# Image Fixtures
# =============================================================================

def make_image_bytes(
    width: int = 64,
    height: int = 48,
    color: tuple[int, int, int] = (200, 30, 30),
    fmt: str = "PNG",
) -> bytes:
    """단색 이미지 바이트 생성."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def image_factory() -> Callable[..., bytes]:
    """make_image_bytes 팩토리 (크기/색/포맷 지정)."""
    return make_image_bytes


@pytest.fixture
def png_bytes() -> bytes:
    """64x48 PNG."""
    return make_image_bytes()


@pytest.fixture
def jpeg_bytes() -> bytes:
    """80x60 JPEG."""
    return make_image_bytes(80, 60, color=(20, 120, 220), fmt="JPEG")
