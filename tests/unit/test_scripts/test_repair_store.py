"""
test_repair_store.py - repair_store.py 스크립트 테스트

테스트 케이스:
- TC1: order 의 유령/누락 항목 → reconcile 결과 저장
- TC2: 빠진 derivative → original 에서 재생성
- TC3: original 없는 이미지는 건너뜀
- TC4: dry-run 모드 (실제 변경 없음)
- TC5: 하위 폴더까지 순회
"""

import json
import sys
from pathlib import Path

# scripts 모듈 임포트를 위한 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent / "scripts"))

from repair_store import RepairResult, iter_folder_paths, repair_folder, repair_store

from src.core.store import AssetStore, find_original
from src.domain.schemas import StoreSettings


def _order(folder_dir: Path) -> list[str]:
    return json.loads((folder_dir / "index.json").read_text())["order"]


class TestRepairOrder:
    """TC1: order 복구."""

    def test_order_persisted(self, store: AssetStore, png_bytes: bytes):
        """유령 제거 + 디스크 전용 파일 추가 후 저장."""
        filename = store.process_and_save_image("gallery", png_bytes, "cat.png")
        gallery = store.root / "gallery"
        (gallery / "index.json").write_text(
            json.dumps({"order": ["ghost-00000000.webp"], "sizes": []})
        )

        result = RepairResult()
        repair_folder(store, "gallery", execute=True, result=result)

        assert result.reordered_folders == 1
        assert _order(gallery) == [filename]

    def test_consistent_folder_untouched(self, store: AssetStore, png_bytes: bytes):
        """이미 정합한 폴더는 카운트하지 않음."""
        store.process_and_save_image("gallery", png_bytes, "cat.png")

        result = RepairResult()
        repair_folder(store, "gallery", execute=True, result=result)

        assert result.reordered_folders == 0
        assert result.scanned_images == 1


class TestRepairDerivatives:
    """TC2/TC3: derivative 재생성."""

    def test_missing_derivative_regenerated(self, store: AssetStore, png_bytes: bytes):
        """move 후 대상 폴더 전용 size 보충."""
        store.create_folder("", "b")
        store.add_size_to_folder("b", "40x30")
        filename = store.process_and_save_image("a", png_bytes, "cat.png")
        store.move_image("a", filename, "b")
        assert not (store.root / "b" / "40x30" / filename).exists()

        result = repair_store(store, execute=True)

        assert result.regenerated_derivatives == 1
        assert (store.root / "b" / "40x30" / filename).is_file()

    def test_missing_original_skipped(self, store: AssetStore, png_bytes: bytes):
        """original 없음 → skipped."""
        filename = store.process_and_save_image("gallery", png_bytes, "cat.png")
        gallery = store.root / "gallery"
        store.add_size_to_folder("gallery", "40x30")
        (gallery / "40x30" / filename).unlink()
        find_original(gallery, filename).unlink()

        result = RepairResult()
        repair_folder(store, "gallery", execute=True, result=result)

        assert result.skipped_derivatives == 1
        assert result.regenerated_derivatives == 0
        assert result.errors == []

    def test_undecodable_original_reported(self, store: AssetStore, png_bytes: bytes):
        """original 디코딩 실패 → errors."""
        filename = store.process_and_save_image("gallery", png_bytes, "cat.png")
        gallery = store.root / "gallery"
        store.add_size_to_folder("gallery", "40x30")
        (gallery / "40x30" / filename).unlink()
        find_original(gallery, filename).write_bytes(b"corrupt")

        result = RepairResult()
        repair_folder(store, "gallery", execute=True, result=result)

        assert len(result.errors) == 1


class TestDryRun:
    """TC4: dry-run."""

    def test_no_changes(self, store: AssetStore, png_bytes: bytes):
        """카운트만 하고 파일/메타데이터 유지."""
        filename = store.process_and_save_image("gallery", png_bytes, "cat.png")
        gallery = store.root / "gallery"
        (gallery / "index.json").write_text(json.dumps({"order": [], "sizes": ["40x30"]}))

        result = repair_store(store, execute=False)

        assert result.reordered_folders == 1
        assert result.regenerated_derivatives == 1
        assert _order(gallery) == []
        assert not (gallery / "40x30" / filename).exists()


class TestTraversal:
    """TC5: 폴더 순회."""

    def test_walks_nested_folders(self, store: AssetStore):
        """root + 모든 하위 폴더."""
        store.create_folder("", "a/b")
        store.create_folder("", "c")

        result = repair_store(store, execute=False)

        assert result.scanned_folders == 4

    def test_iter_folder_paths(self, store: AssetStore):
        """깊이 우선 상대 경로."""
        store.create_folder("", "a/b")
        store.create_folder("", "c")

        assert iter_folder_paths(store.get_folder_tree()) == ["a", "a/b", "c"]

    def test_missing_root(self, tmp_path: Path):
        """root 없음 → 빈 결과."""
        store = AssetStore(StoreSettings(root=tmp_path / "absent"))
        assert repair_store(store, execute=True).scanned_folders == 0
