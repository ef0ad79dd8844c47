#!/usr/bin/env python3
"""
repair_store.py - 저장소 정합성 복구 스크립트

storage root 하위 모든 폴더에 대해:
1. index.json 의 order 를 webp/ 실제 파일과 reconcile 한 결과로 저장
2. 설정된 size 중 빠진 derivative 를 original 에서 재생성
   (move_image 가 대상 폴더 전용 size 를 채우지 않으므로 여기서 보충)

original 이 없거나 디코딩 불가한 이미지는 건너뜀 (경고).

사용법:
    # 기본 실행 (dry-run)
    uv run python scripts/repair_store.py

    # 실제 복구
    uv run python scripts/repair_store.py --execute

    # 특정 폴더 하위만
    uv run python scripts/repair_store.py --folder gallery --execute
"""

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from src.app.main import load_config
from src.core.derivatives import generate_derivative, parse_size
from src.core.metadata import (
    list_primary_files,
    read_metadata,
    reconcile_order,
    update_metadata,
)
from src.core.store import AssetStore, find_original
from src.domain.errors import EncodeError, InvalidSizeError
from src.domain.schemas import FolderMetadata, FolderNode, StoreSettings

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@dataclass
class RepairResult:
    """Repair 결과."""
    scanned_folders: int = 0
    scanned_images: int = 0

    reordered_folders: int = 0
    regenerated_derivatives: int = 0
    skipped_derivatives: int = 0

    errors: list[str] = field(default_factory=list)


def iter_folder_paths(nodes: list[FolderNode]) -> list[str]:
    """트리 → 상대 경로 목록 (깊이 우선)."""
    paths: list[str] = []
    for node in nodes:
        paths.append(node.path)
        paths.extend(iter_folder_paths(node.children))
    return paths


def repair_folder(
    store: AssetStore,
    folder_path: str,
    execute: bool,
    result: RepairResult,
) -> None:
    """단일 폴더 복구."""
    folder_dir = store.locate_folder(folder_path)
    label = folder_path or "(root)"

    metadata = read_metadata(folder_dir)
    on_disk = list_primary_files(folder_dir)
    images = reconcile_order(metadata.order, on_disk)

    result.scanned_folders += 1
    result.scanned_images += len(images)

    if images != metadata.order:
        if execute:
            def persist(meta: FolderMetadata) -> None:
                meta.order = reconcile_order(meta.order, list_primary_files(folder_dir))

            update_metadata(folder_dir, persist, timeout=store.settings.lock_timeout)
            logger.info(f"order 복구: {label} ({len(images)}개)")
        else:
            logger.info(f"[DRY-RUN] order 복구 예정: {label} ({len(images)}개)")
        result.reordered_folders += 1

    for size in metadata.sizes:
        try:
            parse_size(size)
        except InvalidSizeError as e:
            result.errors.append(f"잘못된 size {label}: {e}")
            logger.error(f"잘못된 size {label}: {size!r}")
            continue

        for filename in images:
            if (folder_dir / size / filename).is_file():
                continue

            try:
                original = find_original(folder_dir, filename)
            except FileNotFoundError:
                logger.warning(f"original 없음, 건너뜀: {label}/{filename} ({size})")
                result.skipped_derivatives += 1
                continue

            if not execute:
                logger.info(f"[DRY-RUN] 생성 예정: {label}/{size}/{filename}")
                result.regenerated_derivatives += 1
                continue

            try:
                generate_derivative(
                    folder_dir,
                    filename,
                    original.read_bytes(),
                    size,
                    quality=store.settings.derivative_quality,
                )
            except EncodeError as e:
                result.errors.append(f"인코딩 실패 {label}/{filename}: {e}")
                logger.error(f"인코딩 실패 {label}/{filename}: {e}")
                continue

            logger.info(f"생성됨: {label}/{size}/{filename}")
            result.regenerated_derivatives += 1


def repair_store(
    store: AssetStore,
    execute: bool,
    start_folder: str = "",
) -> RepairResult:
    """start_folder 와 그 하위 전체 복구."""
    result = RepairResult()

    if not store.root.exists():
        logger.warning(f"storage root 없음: {store.root}")
        return result

    folder_paths = [start_folder, *iter_folder_paths(store.get_folder_tree(start_folder))]
    logger.info(f"스캔 대상 폴더: {len(folder_paths)}개")

    for folder_path in folder_paths:
        repair_folder(store, folder_path, execute, result)

    return result


def main():
    parser = argparse.ArgumentParser(
        description="저장소 정합성 복구 스크립트",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="실제 복구 실행 (기본: dry-run)",
    )
    parser.add_argument(
        "--folder",
        type=str,
        default="",
        help="특정 폴더 하위만 처리 (기본: 전체)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="default.yaml",
        help="설정 파일 경로 (기본: default.yaml)",
    )

    args = parser.parse_args()

    load_dotenv()
    project_root = Path(__file__).parent.parent
    config = load_config(project_root / args.config)
    level_name = str((config.get("logging") or {}).get("level", "INFO")).upper()
    logging.getLogger().setLevel(getattr(logging, level_name, logging.INFO))
    store = AssetStore(StoreSettings.from_config(config))
    logger.info(f"storage root: {store.root}")

    if not args.execute:
        logger.info("=" * 50)
        logger.info("DRY-RUN 모드 (실제 변경 없음)")
        logger.info("실제 실행: --execute 옵션 추가")
        logger.info("=" * 50)

    result = repair_store(store, execute=args.execute, start_folder=args.folder)

    logger.info("=" * 50)
    logger.info("결과 요약")
    logger.info(f"  스캔: 폴더 {result.scanned_folders}개, 이미지 {result.scanned_images}개")
    logger.info(f"  order 복구: {result.reordered_folders}개 폴더")
    logger.info(f"  derivative 생성: {result.regenerated_derivatives}개")
    logger.info(f"  건너뜀 (original 없음): {result.skipped_derivatives}개")
    if result.errors:
        logger.warning(f"  에러: {len(result.errors)}개")
        for err in result.errors:
            logger.warning(f"    - {err}")
    logger.info("=" * 50)

    return 0 if not result.errors else 1


if __name__ == "__main__":
    exit(main())
