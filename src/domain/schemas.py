"""
Data schemas for the asset store.

규칙:
- index.json 키와 필드명 동일: order, sizes (title은 선택)
- order = 표시 순서의 진실 원천, webp/ 디렉터리 = 존재 여부의 진실 원천
- 보조 단계 결과는 StepResult로 남김 (부재 vs 실제 I/O 실패 구분)
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from src.domain.constants import (
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_ORIGINAL_EXTENSION,
    DERIVATIVE_QUALITY,
    PRIMARY_MAX_WIDTH,
    PRIMARY_QUALITY,
)

# =============================================================================
# Folder Schemas
# =============================================================================

@dataclass
class FolderMetadata:
    """
    폴더 메타데이터 (index.json).

    sidecar가 없으면 기본값(빈 order, 빈 sizes) - 부재는 에러가 아님.
    """
    order: list[str] = field(default_factory=list)  # primary rendition 파일명
    sizes: list[str] = field(default_factory=list)  # ["400x300", ...]
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON 직렬화용."""
        data: dict[str, Any] = {}
        if self.title is not None:
            data["title"] = self.title
        data["order"] = list(self.order)
        data["sizes"] = list(self.sizes)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FolderMetadata":
        order = data.get("order")
        sizes = data.get("sizes")
        title = data.get("title")
        if not isinstance(order, list):
            order = []
        if not isinstance(sizes, list):
            sizes = []

        return cls(
            order=[name for name in order if isinstance(name, str)],
            sizes=[size for size in sizes if isinstance(size, str)],
            title=title if isinstance(title, str) else None,
        )


@dataclass
class FolderNode:
    """폴더 트리 노드 (네비게이션용)."""
    name: str
    path: str  # root 기준 상대 경로, "/" 구분
    children: list["FolderNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class FolderContent:
    """
    폴더 내용 조회 결과.

    images는 항상 reconcile된 metadata order 순서 (파일시스템 순서 아님).
    """
    path: str
    images: list[str] = field(default_factory=list)
    sizes: list[str] = field(default_factory=list)
    subfolders: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "images": list(self.images),
            "sizes": list(self.sizes),
            "subfolders": list(self.subfolders),
        }


# =============================================================================
# Step Result Schemas
# =============================================================================

class StepOutcome(str, Enum):
    """보조(best-effort) 단계 결과."""
    DONE = "done"        # 정상 처리
    ABSENT = "absent"    # 대상 산출물 없음 (허용)
    FAILED = "failed"    # 실제 I/O 실패 (경고 후 흡수)


@dataclass
class StepResult:
    """
    보조 파일 작업 1건의 결과.

    original, derivative 처리처럼 실패해도 작업 전체를 중단하지 않는 단계용.
    """
    step: str  # 예: "original", "derivative:400x300"
    outcome: StepOutcome
    path: Path | None = None
    errno_code: int | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        """부재는 실패로 보지 않음."""
        return self.outcome != StepOutcome.FAILED


# =============================================================================
# Settings
# =============================================================================

@dataclass
class StoreSettings:
    """AssetStore 설정 (default.yaml의 storage/images 섹션)."""
    root: Path
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    primary_max_width: int = PRIMARY_MAX_WIDTH
    primary_quality: int = PRIMARY_QUALITY
    derivative_quality: int = DERIVATIVE_QUALITY
    default_original_ext: str = DEFAULT_ORIGINAL_EXTENSION

    @classmethod
    def from_config(cls, config: dict) -> "StoreSettings":
        """
        설정 dict에서 생성.

        STORAGE_ROOT 환경변수가 storage.root보다 우선.
        """
        storage = config.get("storage") or {}
        images = config.get("images") or {}
        root = os.environ.get("STORAGE_ROOT") or storage.get("root", "./storage")

        return cls(
            root=Path(root).resolve(),
            lock_timeout=float(storage.get("lock_timeout", DEFAULT_LOCK_TIMEOUT)),
            primary_max_width=int(images.get("primary_max_width", PRIMARY_MAX_WIDTH)),
            primary_quality=int(images.get("primary_quality", PRIMARY_QUALITY)),
            derivative_quality=int(
                images.get("derivative_quality", DERIVATIVE_QUALITY)
            ),
            default_original_ext=images.get(
                "default_original_ext", DEFAULT_ORIGINAL_EXTENSION
            ),
        )
