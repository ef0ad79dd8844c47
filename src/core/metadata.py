"""
폴더 메타데이터 관리: index.json

규칙:
- index.json = 표시 순서(order)와 derivative 사이즈(sizes)의 원천
- sidecar 없음 = 빈 기본값 (에러 아님)
- 읽을 때마다 webp/ 실제 파일과 reconcile
  (디스크 = 존재 여부 기준, 메타데이터 = 순서 기준)
- 쓰기: read → mutate → write 를 폴더별 파일 락 안에서 수행
- 원자적 쓰기: temp → rename + fsync

파일시스템 안정성 (best-effort):
- fsync 실패 시 경고 남기고 계속 진행
- 파싱 불가 sidecar는 경고 후 기본값으로 취급 (order는 reconcile로 복구)
"""

import json
import logging
import os
import tempfile
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from src.domain.constants import (
    DEFAULT_LOCK_TIMEOUT,
    METADATA_FILENAME,
    METADATA_LOCK_FILENAME,
    PRIMARY_EXTENSION,
    WEBP_DIR,
)
from src.domain.errors import ErrorCodes, LockTimeoutError
from src.domain.schemas import FolderMetadata

logger = logging.getLogger(__name__)

# =============================================================================
# Lock Management
# =============================================================================


@contextmanager
def metadata_lock(
    folder_dir: Path, timeout: float = DEFAULT_LOCK_TIMEOUT
) -> Generator[Path, None, None]:
    """
    폴더 메타데이터 접근을 위한 파일 락.

    사용법:
        with metadata_lock(folder_dir):
            # index.json 읽기/쓰기

    같은 폴더에 대한 동시 업로드가 order append를 잃어버리지 않도록
    프로세스/스레드 간 직렬화.

    Args:
        folder_dir: 폴더 절대 경로 (존재해야 함)
        timeout: 락 대기 시간 (초)

    Yields:
        lock_path: 락 파일 경로

    Raises:
        LockTimeoutError: METADATA_LOCK_TIMEOUT
    """
    lock_path = folder_dir / METADATA_LOCK_FILENAME
    lock = FileLock(lock_path, timeout=timeout)

    try:
        lock.acquire()
    except Timeout as e:
        raise LockTimeoutError(
            ErrorCodes.METADATA_LOCK_TIMEOUT,
            folder=str(folder_dir),
            timeout=timeout,
        ) from e

    try:
        yield lock_path
    finally:
        lock.release()


# =============================================================================
# Atomic Write
# =============================================================================


def _fsync_dir(dir_path: Path) -> None:
    """
    디렉토리 fsync (가능한 환경에서).

    rename 후 디렉토리 엔트리까지 내구성을 강화하려면 필요.
    """
    try:
        dir_fd = os.open(str(dir_path), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (OSError, AttributeError) as e:
        # O_DIRECTORY 미지원, 권한 문제 등
        logger.warning(
            f"Directory fsync failed for {dir_path}: {e}. "
            f"Rename durability may not be guaranteed."
        )


def atomic_write_json(path: Path, data: dict) -> None:
    """
    원자적 JSON 쓰기 (indent 2).

    동작:
    - 중간 상태 없음: temp → rename
    - 파일 fsync + 디렉토리 fsync, 실패 시 경고만
    - 실패 시 temp 파일 삭제, 기존 파일 보존

    Args:
        path: 저장할 파일 경로
        data: JSON 직렬화할 데이터
    """
    dir_path = path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=dir_path,
            prefix=".",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as f:
            temp_path = Path(f.name)
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError as e:
                logger.warning(
                    f"File fsync failed for {path}: {e}. "
                    f"Data may not be durable on power loss."
                )

        os.replace(temp_path, path)
        _fsync_dir(dir_path)

    except Exception:
        if temp_path and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass
        raise


# =============================================================================
# Metadata Operations
# =============================================================================


def read_metadata(folder_dir: Path) -> FolderMetadata:
    """
    index.json 로드.

    Args:
        folder_dir: 폴더 절대 경로

    Returns:
        FolderMetadata (sidecar 없거나 파싱 실패 시 기본값)
    """
    meta_path = folder_dir / METADATA_FILENAME

    try:
        raw = meta_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return FolderMetadata()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Unreadable metadata {meta_path}: {e}. Using defaults.")
        return FolderMetadata()

    if not isinstance(data, dict):
        logger.warning(f"Unexpected metadata shape in {meta_path}. Using defaults.")
        return FolderMetadata()

    return FolderMetadata.from_dict(data)


def write_metadata(folder_dir: Path, metadata: FolderMetadata) -> None:
    """index.json 전체 덮어쓰기 (원자적)."""
    atomic_write_json(folder_dir / METADATA_FILENAME, metadata.to_dict())


def update_metadata(
    folder_dir: Path,
    mutator: Callable[[FolderMetadata], None],
    timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> FolderMetadata:
    """
    read → mutate → write 를 하나의 단위로 수행.

    mutator는 락을 쥔 상태에서 추가 I/O(derivative 생성 등)를 해도 됨.
    mutator가 예외를 던지면 쓰기 없이 그대로 전파.

    Args:
        folder_dir: 폴더 절대 경로
        mutator: FolderMetadata를 제자리에서 수정하는 함수
        timeout: 락 대기 시간 (초)

    Returns:
        기록된 FolderMetadata

    Raises:
        FileNotFoundError: 폴더 없음
        LockTimeoutError: METADATA_LOCK_TIMEOUT
    """
    if not folder_dir.is_dir():
        raise FileNotFoundError(f"Folder not found: {folder_dir}")

    with metadata_lock(folder_dir, timeout):
        metadata = read_metadata(folder_dir)
        mutator(metadata)
        write_metadata(folder_dir, metadata)

    return metadata


# =============================================================================
# Reconciliation
# =============================================================================


def list_primary_files(folder_dir: Path) -> list[str]:
    """webp/ 안의 primary rendition 파일명 (이름순). 디렉터리 없으면 빈 목록."""
    webp_dir = folder_dir / WEBP_DIR
    try:
        entries = list(webp_dir.iterdir())
    except (FileNotFoundError, NotADirectoryError):
        return []

    return sorted(
        entry.name
        for entry in entries
        if entry.is_file() and entry.suffix.lower() == PRIMARY_EXTENSION
    )


def reconcile_order(order: list[str], on_disk: list[str]) -> list[str]:
    """
    메타데이터 order와 실제 파일 목록 정렬.

    - 디스크에 없는 항목 제거
    - 중복 항목 제거 (첫 위치 유지)
    - 디스크에만 있는 파일은 뒤에 추가

    Args:
        order: index.json의 order
        on_disk: webp/ 실제 파일명

    Returns:
        reconcile된 order (on_disk의 모든 파일이 정확히 1번씩)
    """
    existing = set(on_disk)
    seen: set[str] = set()
    reconciled: list[str] = []

    for name in order:
        if name in existing and name not in seen:
            reconciled.append(name)
            seen.add(name)

    reconciled.extend(name for name in on_disk if name not in seen)
    return reconciled
