"""
업로드 서비스: 중복 검사 + replace 정책 + 일괄 저장

역할:
- 업로드 전 slug 중복 검사 (replace / skip 선택은 UI 몫)
- replace=True 면 새 이미지 저장 성공 후 같은 slug 의 기존 이미지 삭제
- 파일 1건의 EncodeError 는 해당 파일만 실패 처리, 나머지는 계속
- ⚠️ 저장소 정합성 로직 없음 (core.store 에 위임)
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from src.core.store import AssetStore
from src.domain.errors import EncodeError

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """업로드 1건 결과."""
    filename: str  # 업로드 원본 파일명
    saved_as: str | None = None  # primary 파일명
    replaced: list[str] = field(default_factory=list)
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "saved_as": self.saved_as,
            "replaced": list(self.replaced),
            "error": self.error,
        }


class UploadService:
    """
    업로드 처리 서비스.

    흐름:
    - check_duplicates → UI 에서 replace 여부 확인
    - ingest(replace=...) → 순차 저장
    """

    def __init__(self, store: AssetStore):
        self.store = store

    def check_duplicates(self, folder_path: str, filenames: list[str]) -> list[str]:
        """업로드 예정 파일명 중 기존 이미지와 slug 가 겹치는 것."""
        return self.store.find_duplicates(folder_path, filenames)

    def ingest(
        self,
        folder_path: str,
        uploads: list[tuple[str, bytes]],
        replace: bool = False,
    ) -> list[UploadResult]:
        """
        업로드 목록 순차 저장.

        Args:
            folder_path: 대상 폴더
            uploads: (원본 파일명, 바이트) 목록, 빈 파일은 건너뜀
            replace: 같은 slug 기존 이미지 삭제 여부

        Returns:
            UploadResult 목록 (빈 파일 제외)
        """
        results: list[UploadResult] = []

        for filename, data in uploads:
            if not data:
                logger.debug(f"Skipping empty upload {filename!r}")
                continue

            result = UploadResult(filename=filename)

            existing = (
                self.store.images_with_slug(folder_path, filename) if replace else []
            )

            try:
                result.saved_as = self.store.process_and_save_image(
                    folder_path, data, filename
                )
            except EncodeError as e:
                logger.warning(f"Upload {filename!r} rejected: {e}")
                result.error = e.to_dict()
                results.append(result)
                continue

            # 새 이미지 저장 성공 후에만 교체 (같은 내용이면 stem 동일 → 유지)
            for old in existing:
                if old == result.saved_as:
                    continue
                self.store.delete_image(folder_path, old)
                result.replaced.append(old)

            results.append(result)

        return results
