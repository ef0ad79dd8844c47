"""
test_metadata.py - index.json 관리 테스트

DoD:
1. sidecar 없음/손상 → 기본값 (에러 아님)
2. 원자적 쓰기 (indent 2, temp 파일 잔존 없음, 실패 시 기존 파일 보존)
3. 폴더별 파일 락: 동시 append 유실 없음, timeout → LockTimeoutError
4. reconcile: 디스크 기준 존재, order 기준 순서
"""

import json
import os
import threading
from pathlib import Path
from unittest.mock import patch

import pytest
from filelock import FileLock

from src.core.metadata import (
    atomic_write_json,
    list_primary_files,
    metadata_lock,
    read_metadata,
    reconcile_order,
    update_metadata,
    write_metadata,
)
from src.domain.errors import ErrorCodes, LockTimeoutError
from src.domain.schemas import FolderMetadata

# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def folder_dir(tmp_path: Path) -> Path:
    """빈 폴더."""
    folder = tmp_path / "gallery"
    folder.mkdir()
    return folder


def _touch_primary(folder_dir: Path, *names: str) -> None:
    webp_dir = folder_dir / "webp"
    webp_dir.mkdir(exist_ok=True)
    for name in names:
        (webp_dir / name).write_bytes(b"webp")


# =============================================================================
# read / write 테스트
# =============================================================================


class TestReadMetadata:
    """index.json 로드 테스트."""

    def test_missing_sidecar_defaults(self, folder_dir: Path):
        """sidecar 없음 → 빈 기본값."""
        metadata = read_metadata(folder_dir)
        assert metadata.order == []
        assert metadata.sizes == []
        assert metadata.title is None

    def test_reads_existing(self, folder_dir: Path):
        """title, order, sizes 로드."""
        (folder_dir / "index.json").write_text(
            json.dumps({"title": "Summer", "order": ["a.webp"], "sizes": ["400x300"]})
        )
        metadata = read_metadata(folder_dir)
        assert metadata.title == "Summer"
        assert metadata.order == ["a.webp"]
        assert metadata.sizes == ["400x300"]

    def test_corrupt_sidecar_defaults(self, folder_dir: Path):
        """파싱 불가 → 기본값."""
        (folder_dir / "index.json").write_text("{not json")
        assert read_metadata(folder_dir) == FolderMetadata()

    def test_unexpected_shape_defaults(self, folder_dir: Path):
        """dict 아닌 JSON → 기본값."""
        (folder_dir / "index.json").write_text("[1, 2, 3]")
        assert read_metadata(folder_dir) == FolderMetadata()

    def test_non_string_entries_dropped(self, folder_dir: Path):
        """문자열 아닌 항목 제거."""
        (folder_dir / "index.json").write_text(
            json.dumps({"order": ["a.webp", 3, None], "sizes": "400x300"})
        )
        metadata = read_metadata(folder_dir)
        assert metadata.order == ["a.webp"]
        assert metadata.sizes == []


class TestAtomicWrite:
    """원자적 쓰기 테스트."""

    def test_indent_two(self, folder_dir: Path):
        """2칸 들여쓰기 JSON."""
        path = folder_dir / "index.json"
        atomic_write_json(path, {"order": [], "sizes": []})
        assert path.read_text(encoding="utf-8") == json.dumps(
            {"order": [], "sizes": []}, indent=2
        )

    def test_no_temp_files_left(self, folder_dir: Path):
        """쓰기 후 temp 파일 없음."""
        atomic_write_json(folder_dir / "index.json", {"order": ["a"]})
        assert sorted(p.name for p in folder_dir.iterdir()) == ["index.json"]

    def test_failure_preserves_existing(self, folder_dir: Path):
        """replace 실패 시 기존 파일 보존 + temp 정리."""
        path = folder_dir / "index.json"
        path.write_text('{"order": ["keep.webp"]}')

        with patch("src.core.metadata.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                atomic_write_json(path, {"order": []})

        assert json.loads(path.read_text()) == {"order": ["keep.webp"]}
        assert [p.name for p in folder_dir.iterdir()] == ["index.json"]

    def test_title_omitted_when_unset(self, folder_dir: Path):
        """title 없으면 키 자체를 쓰지 않음."""
        write_metadata(folder_dir, FolderMetadata(order=["a.webp"], sizes=[]))
        data = json.loads((folder_dir / "index.json").read_text())
        assert data == {"order": ["a.webp"], "sizes": []}


# =============================================================================
# 락 / update 테스트
# =============================================================================


class TestMetadataLock:
    """폴더 락 테스트."""

    def test_lock_file_inside_folder(self, folder_dir: Path):
        """락 파일은 폴더 안 숨김 파일."""
        with metadata_lock(folder_dir) as lock_path:
            assert lock_path == folder_dir / ".index.json.lock"

    def test_lock_timeout_raises_error(self, folder_dir: Path):
        """다른 holder 가 쥐고 있으면 timeout → LockTimeoutError."""
        holder = FileLock(folder_dir / ".index.json.lock")
        ready = threading.Event()
        release = threading.Event()

        def hold() -> None:
            with holder:
                ready.set()
                release.wait(5)

        thread = threading.Thread(target=hold)
        thread.start()
        try:
            ready.wait(5)
            with pytest.raises(LockTimeoutError) as exc_info:
                with metadata_lock(folder_dir, timeout=0.05):
                    pass
            assert exc_info.value.code == ErrorCodes.METADATA_LOCK_TIMEOUT
        finally:
            release.set()
            thread.join()


class TestUpdateMetadata:
    """read → mutate → write 테스트."""

    def test_mutation_persisted(self, folder_dir: Path):
        """mutator 결과가 기록됨."""
        def add(meta: FolderMetadata) -> None:
            meta.order.append("a.webp")
            meta.sizes.append("400x300")

        result = update_metadata(folder_dir, add)

        assert result.order == ["a.webp"]
        assert read_metadata(folder_dir).sizes == ["400x300"]

    def test_mutator_error_skips_write(self, folder_dir: Path):
        """mutator 예외 → 쓰기 없이 전파."""
        def boom(meta: FolderMetadata) -> None:
            meta.order.append("a.webp")
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            update_metadata(folder_dir, boom)

        assert not (folder_dir / "index.json").exists()

    def test_missing_folder(self, tmp_path: Path):
        """폴더 없음 → FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            update_metadata(tmp_path / "nope", lambda meta: None)

    def test_concurrent_appends_not_lost(self, folder_dir: Path):
        """여러 스레드의 동시 append 가 모두 남음."""
        names = [f"img-{i:02d}.webp" for i in range(12)]
        barrier = threading.Barrier(len(names))
        errors: list[BaseException] = []

        def append(name: str) -> None:
            try:
                barrier.wait(5)
                update_metadata(
                    folder_dir, lambda meta: meta.order.append(name), timeout=10
                )
            except BaseException as e:
                errors.append(e)

        threads = [threading.Thread(target=append, args=(name,)) for name in names]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(read_metadata(folder_dir).order) == names


# =============================================================================
# reconcile 테스트
# =============================================================================


class TestReconcileOrder:
    """order 정합성 테스트."""

    def test_drops_missing_entries(self):
        """디스크에 없는 항목 제거."""
        assert reconcile_order(["a", "gone", "b"], ["a", "b"]) == ["a", "b"]

    def test_appends_disk_only_files(self):
        """order 에 없는 파일은 뒤에 (이름순)."""
        assert reconcile_order(["b"], ["a", "b", "c"]) == ["b", "a", "c"]

    def test_dedupes_keeping_first(self):
        """중복은 첫 위치만 유지."""
        assert reconcile_order(["b", "a", "b"], ["a", "b"]) == ["b", "a"]

    def test_each_disk_file_exactly_once(self):
        """결과 = 디스크 파일 집합, 각 1번."""
        on_disk = ["x", "y", "z"]
        result = reconcile_order(["z", "q", "z", "x"], on_disk)
        assert sorted(result) == on_disk
        assert len(result) == len(set(result))

    def test_list_primary_files(self, folder_dir: Path):
        """webp/ 의 .webp 만 이름순."""
        _touch_primary(folder_dir, "b.webp", "a.webp")
        (folder_dir / "webp" / "notes.txt").write_text("x")
        (folder_dir / "webp" / "sub.webp").mkdir()

        assert list_primary_files(folder_dir) == ["a.webp", "b.webp"]

    def test_list_primary_files_without_webp_dir(self, folder_dir: Path):
        """webp/ 없음 → 빈 목록."""
        assert list_primary_files(folder_dir) == []


def test_lock_file_not_counted_as_image(folder_dir: Path):
    """락 파일/sidecar 는 이미지 목록에 섞이지 않음."""
    _touch_primary(folder_dir, "a.webp")
    update_metadata(folder_dir, lambda meta: None)

    assert os.path.exists(folder_dir / "index.json")
    assert list_primary_files(folder_dir) == ["a.webp"]
