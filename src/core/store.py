"""
Asset Store: 폴더 트리 + 이미지 3중 사본(original / primary / derivative) 관리

규칙:
- 이미지 정체성 = webp/ 의 primary 파일명 ({slug}-{hash}.webp)
- original, derivative 는 같은 stem 공유, 보조 산출물 취급 (부재 허용)
- 쓰기: 논리 작업 1건 → 파일 작업 여러 건 + 메타데이터 갱신 1건 (순차 실행)
- 롤백 없음: 중간 실패는 다음 조회 시 reconcile로 복구
- 권위 있는 단계(primary, order) 실패만 호출자에게 전파
- 모든 외부 경로/이름은 resolve_path + 예약어 검사 후 사용
"""

import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path

from src.core.derivatives import generate_derivative, parse_size, render_primary
from src.core.hashing import (
    build_canonical_stem,
    hash_of,
    primary_filename,
    slug_of,
    slugify,
    stem_of,
)
from src.core.metadata import (
    list_primary_files,
    read_metadata,
    reconcile_order,
    update_metadata,
)
from src.core.paths import (
    check_folder_name,
    check_reserved_names,
    is_internal_dir,
    resolve_path,
    split_segments,
    to_relative,
)
from src.domain.constants import ORIGINALS_DIR, WEBP_DIR
from src.domain.errors import (
    AlreadyExistsError,
    EncodeError,
    ErrorCodes,
    InvalidMoveError,
    InvalidNameError,
)
from src.domain.schemas import (
    FolderContent,
    FolderMetadata,
    FolderNode,
    StepOutcome,
    StepResult,
    StoreSettings,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Best-effort Steps
# =============================================================================

def run_step(step: str, path: Path | None, action: Callable[[], None]) -> StepResult:
    """
    보조 파일 작업 실행.

    - FileNotFoundError → ABSENT (debug 로그)
    - 그 외 OSError → FAILED (warning 로그, 전파하지 않음)

    Args:
        step: 단계 이름 (예: "original", "derivative:400x300")
        path: 대상 경로 (로그/결과용)
        action: 실제 작업

    Returns:
        StepResult
    """
    try:
        action()
    except FileNotFoundError:
        logger.debug(f"Step '{step}' skipped, artifact absent: {path}")
        return StepResult(step=step, outcome=StepOutcome.ABSENT, path=path)
    except OSError as e:
        logger.warning(f"Step '{step}' failed for {path}: {e}")
        return StepResult(
            step=step,
            outcome=StepOutcome.FAILED,
            path=path,
            errno_code=e.errno,
            error_message=str(e),
        )

    return StepResult(step=step, outcome=StepOutcome.DONE, path=path)


def find_original(folder_dir: Path, filename: str) -> Path:
    """
    primary 파일명과 같은 stem의 original 찾기.

    original 확장자는 업로드마다 다르므로 originals/ 를 스캔해서
    "{stem}." 으로 시작하는 파일을 찾음.

    Raises:
        FileNotFoundError: originals/ 가 없거나 일치하는 파일 없음
    """
    stem = stem_of(filename)
    originals_dir = folder_dir / ORIGINALS_DIR

    for entry in sorted(originals_dir.iterdir()):
        if entry.is_file() and (entry.name == stem or entry.name.startswith(f"{stem}.")):
            return entry

    raise FileNotFoundError(f"No original for {filename} in {originals_dir}")


def _check_filename(filename: str) -> None:
    """이미지 파일명은 단일 세그먼트여야 함 (폴더 밖 파일 접근 차단)."""
    if (
        not filename
        or filename in (".", "..")
        or "/" in filename
        or "\\" in filename
    ):
        raise InvalidNameError(ErrorCodes.INVALID_NAME, filename=filename)


# =============================================================================
# Asset Store
# =============================================================================

class AssetStore:
    """
    파일 기반 이미지 저장소.

    구조:
    {root}/{folder...}/
    ├── originals/{stem}{ext}
    ├── webp/{stem}.webp
    ├── {W}x{H}/{stem}.webp
    └── index.json

    동시성:
    - index.json read-modify-write 는 폴더별 파일 락으로 직렬화
    - 그 외 파일 작업은 락 없이 순차 실행
    """

    def __init__(self, settings: StoreSettings):
        """
        Args:
            settings: 저장소 설정 (root, 락 timeout, 인코딩 품질)
        """
        self.settings = settings
        self.root = Path(os.path.abspath(settings.root))

    def _folder(self, folder_path: str) -> Path:
        return resolve_path(self.root, folder_path)

    def _update(
        self, folder_dir: Path, mutator: Callable[[FolderMetadata], None]
    ) -> FolderMetadata:
        return update_metadata(folder_dir, mutator, timeout=self.settings.lock_timeout)

    def _protect_root(self, folder_dir: Path, folder_path: str) -> None:
        if folder_dir == self.root:
            raise InvalidMoveError(
                ErrorCodes.ROOT_FOLDER_PROTECTED,
                path=folder_path,
            )

    # =========================================================================
    # Read
    # =========================================================================

    def ensure_storage_root(self) -> Path:
        """root 디렉터리 생성 (멱등)."""
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def locate_folder(self, folder_path: str) -> Path:
        """
        폴더 절대 경로 (존재 확인 포함).

        Raises:
            PathEscapeError: root 밖 경로
            FileNotFoundError: 폴더 없음
        """
        folder_dir = self._folder(folder_path)
        if not folder_dir.is_dir():
            raise FileNotFoundError(f"Folder not found: {folder_path!r}")
        return folder_dir

    def _subfolders(self, folder_dir: Path) -> list[Path]:
        """내부 디렉터리/symlink 를 제외한 하위 폴더 (이름순)."""
        return sorted(
            (
                entry
                for entry in folder_dir.iterdir()
                if entry.is_dir()
                and not entry.is_symlink()
                and not is_internal_dir(entry.name)
            ),
            key=lambda entry: entry.name,
        )

    def get_folder_tree(self, folder_path: str = "") -> list[FolderNode]:
        """
        하위 폴더 트리 (깊이 우선, 전체 materialize).

        Args:
            folder_path: 시작 폴더 ("" = root)

        Returns:
            FolderNode 목록 (각 노드에 children 재귀 포함)

        Raises:
            FileNotFoundError: 폴더 없음
        """
        folder_dir = self._folder(folder_path)

        return [
            FolderNode(
                name=entry.name,
                path=to_relative(self.root, entry),
                children=self.get_folder_tree(to_relative(self.root, entry)),
            )
            for entry in self._subfolders(folder_dir)
        ]

    def get_folder_content(self, folder_path: str) -> FolderContent:
        """
        폴더 내용 조회.

        images 는 reconcile된 order 순서:
        - webp/ 에 없는 order 항목 제거
        - order 에 없는 webp/ 파일은 뒤에 추가

        Raises:
            FileNotFoundError: 폴더 없음
        """
        folder_dir = self._folder(folder_path)
        subfolders = [entry.name for entry in self._subfolders(folder_dir)]

        metadata = read_metadata(folder_dir)
        images = reconcile_order(metadata.order, list_primary_files(folder_dir))

        return FolderContent(
            path=to_relative(self.root, folder_dir),
            images=images,
            sizes=list(metadata.sizes),
            subfolders=subfolders,
        )

    def find_duplicates(self, folder_path: str, candidates: list[str]) -> list[str]:
        """
        업로드 후보 중 slug가 기존 이미지와 겹치는 파일명.

        폴더가 아직 없으면 중복 없음.

        Args:
            folder_path: 대상 폴더
            candidates: 업로드 예정 파일명 목록

        Returns:
            중복 후보 파일명 (입력 순서 유지)
        """
        try:
            images = self.get_folder_content(folder_path).images
        except FileNotFoundError:
            return []

        existing_slugs = {slug_of(name) for name in images}
        return [
            name for name in candidates
            if slugify(Path(name).stem) in existing_slugs
        ]

    def images_with_slug(self, folder_path: str, original_filename: str) -> list[str]:
        """업로드 파일명과 같은 slug를 가진 기존 이미지 목록."""
        try:
            images = self.get_folder_content(folder_path).images
        except FileNotFoundError:
            return []

        slug = slugify(Path(original_filename).stem)
        return [name for name in images if slug_of(name) == slug]

    # =========================================================================
    # Ingest
    # =========================================================================

    def process_and_save_image(
        self, folder_path: str, data: bytes, original_filename: str
    ) -> str:
        """
        업로드 1건 저장.

        순서:
        1. slug + hash 계산, primary 인코딩 (디코딩 실패 시 아무것도 쓰지 않음)
        2. original 저장 (originals/)
        3. primary 저장 (webp/)
        4. 폴더에 설정된 모든 size 의 derivative 생성 (업로드 바이트에서)
        5. order 에 추가

        같은 stem 이 이미 있으면 덮어씀 (content hash 기준이므로 같은 내용).

        Args:
            folder_path: 대상 폴더 (없으면 생성)
            data: 업로드 바이트
            original_filename: 업로드 원본 파일명

        Returns:
            primary rendition 파일명

        Raises:
            EncodeError: 디코딩 불가
            ReservedNameError: 폴더 경로에 내부 디렉터리명 포함
        """
        check_reserved_names(folder_path)
        folder_dir = self._folder(folder_path)

        stem = build_canonical_stem(original_filename, data)
        ext = Path(original_filename).suffix or self.settings.default_original_ext
        webp_filename = primary_filename(stem)

        encoded = render_primary(
            data,
            max_width=self.settings.primary_max_width,
            quality=self.settings.primary_quality,
        )

        originals_dir = folder_dir / ORIGINALS_DIR
        originals_dir.mkdir(parents=True, exist_ok=True)
        (originals_dir / f"{stem}{ext}").write_bytes(data)

        webp_dir = folder_dir / WEBP_DIR
        webp_dir.mkdir(parents=True, exist_ok=True)
        (webp_dir / webp_filename).write_bytes(encoded)

        def append(meta: FolderMetadata) -> None:
            for size in meta.sizes:
                generate_derivative(
                    folder_dir,
                    webp_filename,
                    data,
                    size,
                    quality=self.settings.derivative_quality,
                )
            if webp_filename not in meta.order:
                meta.order.append(webp_filename)

        self._update(folder_dir, append)

        logger.info(f"Ingested {original_filename!r} as {folder_path!r}/{webp_filename}")
        return webp_filename

    # =========================================================================
    # Image Mutations
    # =========================================================================

    def rename_image(self, folder_path: str, old_filename: str, new_name: str) -> str:
        """
        이미지 이름 변경 (hash 유지, slug만 교체).

        순서: primary → original(best-effort) → order → derivative(best-effort)

        Args:
            folder_path: 폴더
            old_filename: 기존 primary 파일명
            new_name: 새 이름 (slugify 됨)

        Returns:
            새 primary 파일명 (변화 없으면 기존 이름)

        Raises:
            FileNotFoundError: primary 없음
            AlreadyExistsError: 새 이름의 primary 가 이미 존재
        """
        _check_filename(old_filename)
        folder_dir = self._folder(folder_path)

        content_hash = hash_of(old_filename)
        slug = slugify(new_name)
        new_stem = f"{slug}-{content_hash}" if content_hash else slug
        new_filename = primary_filename(new_stem)

        if new_filename == old_filename:
            return old_filename

        webp_dir = folder_dir / WEBP_DIR
        new_primary = webp_dir / new_filename
        if new_primary.exists():
            raise AlreadyExistsError(
                ErrorCodes.ALREADY_EXISTS,
                folder=folder_path,
                filename=new_filename,
            )
        (webp_dir / old_filename).rename(new_primary)

        def rename_original() -> None:
            original = find_original(folder_dir, old_filename)
            original.rename(original.with_name(f"{new_stem}{original.suffix}"))

        run_step("original", folder_dir / ORIGINALS_DIR, rename_original)

        def replace(meta: FolderMetadata) -> None:
            meta.order = [
                new_filename if name == old_filename else name
                for name in meta.order
            ]

        metadata = self._update(folder_dir, replace)

        for size in metadata.sizes:
            size_dir = folder_dir / size
            run_step(
                f"derivative:{size}",
                size_dir / old_filename,
                lambda size_dir=size_dir: (size_dir / old_filename).rename(
                    size_dir / new_filename
                ),
            )

        logger.info(f"Renamed {folder_path!r}/{old_filename} -> {new_filename}")
        return new_filename

    def move_image(
        self, old_folder_path: str, filename: str, new_folder_path: str
    ) -> list[StepResult]:
        """
        이미지를 다른 폴더로 이동.

        derivative 처리:
        - 양쪽 폴더에 모두 있는 size → 이동
        - 원본 폴더에만 있는 size → 삭제 (대상 폴더 정책 채택)
        - 대상 폴더에만 있는 size → 생성하지 않음

        Returns:
            보조 단계 결과 목록 (같은 폴더면 빈 목록)

        Raises:
            ReservedNameError: 대상 경로에 내부 디렉터리명 포함
            FileNotFoundError: primary 없음
            AlreadyExistsError: 대상 폴더에 같은 primary 존재
        """
        _check_filename(filename)
        old_dir = self._folder(old_folder_path)
        new_dir = self._folder(new_folder_path)

        if old_dir == new_dir:
            return []

        check_reserved_names(new_folder_path)

        old_primary = old_dir / WEBP_DIR / filename
        new_primary = new_dir / WEBP_DIR / filename
        if not old_primary.is_file():
            raise FileNotFoundError(f"Image not found: {old_primary}")
        if new_primary.exists():
            raise AlreadyExistsError(
                ErrorCodes.ALREADY_EXISTS,
                folder=new_folder_path,
                filename=filename,
            )

        new_primary.parent.mkdir(parents=True, exist_ok=True)
        old_primary.rename(new_primary)

        results: list[StepResult] = []

        def move_original() -> None:
            original = find_original(old_dir, filename)
            target_dir = new_dir / ORIGINALS_DIR
            target_dir.mkdir(parents=True, exist_ok=True)
            original.rename(target_dir / original.name)

        results.append(run_step("original", old_dir / ORIGINALS_DIR, move_original))

        def remove(meta: FolderMetadata) -> None:
            meta.order = [name for name in meta.order if name != filename]

        old_sizes = list(self._update(old_dir, remove).sizes)

        def adopt(meta: FolderMetadata) -> None:
            if filename not in meta.order:
                meta.order.append(filename)

            for size in old_sizes:
                source = old_dir / size / filename
                if size in meta.sizes:
                    def relocate(source: Path = source, size: str = size) -> None:
                        (new_dir / size).mkdir(parents=True, exist_ok=True)
                        source.rename(new_dir / size / filename)

                    results.append(run_step(f"derivative:{size}", source, relocate))
                else:
                    results.append(
                        run_step(f"derivative:{size}", source, source.unlink)
                    )

        self._update(new_dir, adopt)

        logger.info(
            f"Moved {old_folder_path!r}/{filename} -> {new_folder_path!r}"
        )
        return results

    def delete_image(self, folder_path: str, filename: str) -> list[StepResult]:
        """
        이미지 삭제: primary, original, order 항목, 모든 derivative.

        primary 부재는 허용 (이미 삭제됨), 그 외 primary I/O 실패는 전파.

        Returns:
            단계 결과 목록 (primary 포함)
        """
        _check_filename(filename)
        folder_dir = self._folder(folder_path)

        results: list[StepResult] = []

        primary = folder_dir / WEBP_DIR / filename
        try:
            primary.unlink()
            results.append(StepResult("primary", StepOutcome.DONE, path=primary))
        except FileNotFoundError:
            results.append(StepResult("primary", StepOutcome.ABSENT, path=primary))

        def remove_original() -> None:
            find_original(folder_dir, filename).unlink()

        results.append(run_step("original", folder_dir / ORIGINALS_DIR, remove_original))

        def remove(meta: FolderMetadata) -> None:
            meta.order = [name for name in meta.order if name != filename]
            for size in meta.sizes:
                target = folder_dir / size / filename
                results.append(run_step(f"derivative:{size}", target, target.unlink))

        self._update(folder_dir, remove)

        logger.info(f"Deleted {folder_path!r}/{filename}")
        return results

    def reorder_images(self, folder_path: str, order: list[str]) -> None:
        """
        표시 순서 교체.

        존재하지 않는 항목/누락 항목은 다음 조회 시 reconcile 로 정리.
        """
        folder_dir = self._folder(folder_path)
        new_order = [name for name in order if isinstance(name, str)]

        def replace(meta: FolderMetadata) -> None:
            meta.order = new_order

        self._update(folder_dir, replace)
        logger.info(f"Reordered {folder_path!r} ({len(new_order)} entries)")

    def bulk_delete_images(self, folder_path: str, filenames: list[str]) -> None:
        """순차 삭제. 중간 실패 시 앞선 항목은 적용된 상태로 전파."""
        for filename in filenames:
            self.delete_image(folder_path, filename)

    def bulk_move_images(
        self, old_folder_path: str, filenames: list[str], new_folder_path: str
    ) -> None:
        """순차 이동. 중간 실패 시 앞선 항목은 적용된 상태로 전파."""
        for filename in filenames:
            self.move_image(old_folder_path, filename, new_folder_path)

    # =========================================================================
    # Size Profile
    # =========================================================================

    def add_size_to_folder(self, folder_path: str, size: str) -> int:
        """
        derivative size 추가 + 기존 이미지 전체에 대해 생성.

        - 이미 있는 size 면 no-op
        - original 에서 생성 (최고 품질), original 없는 이미지는 건너뜀
        - original 디코딩 실패도 건너뜀 (경고)

        Returns:
            생성된 derivative 수

        Raises:
            InvalidSizeError: WIDTHxHEIGHT 형식 아님
        """
        parse_size(size)
        folder_dir = self._folder(folder_path)
        on_disk = list_primary_files(folder_dir)
        generated = 0

        def add(meta: FolderMetadata) -> None:
            nonlocal generated
            if size in meta.sizes:
                return
            meta.sizes.append(size)

            for filename in reconcile_order(meta.order, on_disk):
                try:
                    original = find_original(folder_dir, filename)
                    source_bytes = original.read_bytes()
                except FileNotFoundError:
                    logger.debug(f"No original for {filename}, skipping {size}")
                    continue
                except OSError as e:
                    logger.warning(f"Cannot read original for {filename}, skipping {size}: {e}")
                    continue

                try:
                    generate_derivative(
                        folder_dir,
                        filename,
                        source_bytes,
                        size,
                        quality=self.settings.derivative_quality,
                    )
                except EncodeError as e:
                    logger.warning(f"Skipping {size} for {filename}: {e}")
                    continue
                generated += 1

        self._update(folder_dir, add)

        logger.info(f"Added size {size} to {folder_path!r} ({generated} derivatives)")
        return generated

    def remove_size_from_folder(self, folder_path: str, size: str) -> None:
        """
        derivative size 제거 + size 디렉터리 통째 삭제.

        디렉터리 삭제 실패는 경고 후 흡수.
        """
        parse_size(size)
        folder_dir = self._folder(folder_path)

        def remove(meta: FolderMetadata) -> None:
            meta.sizes = [s for s in meta.sizes if s != size]

        self._update(folder_dir, remove)

        run_step(f"size-dir:{size}", folder_dir / size,
                 lambda: shutil.rmtree(folder_dir / size))

        logger.info(f"Removed size {size} from {folder_path!r}")

    # =========================================================================
    # Folder Mutations
    # =========================================================================

    def create_folder(self, parent_path: str, name: str) -> str:
        """
        폴더 생성 (멱등, 중간 폴더 자동 생성).

        Returns:
            생성된 폴더 상대 경로
        """
        segments = split_segments(name.strip("/"))
        if not name.strip() or any(seg in ("", ".", "..") for seg in segments):
            raise InvalidNameError(ErrorCodes.INVALID_NAME, name=name)
        folder_path = f"{parent_path}/{name}" if parent_path else name
        check_reserved_names(folder_path)

        self._folder(parent_path)
        folder_dir = self._folder(folder_path)
        folder_dir.mkdir(parents=True, exist_ok=True)

        relative = to_relative(self.root, folder_dir)
        logger.info(f"Created folder {relative!r}")
        return relative

    def delete_folder(self, folder_path: str) -> None:
        """
        폴더 하위 전체 삭제.

        Raises:
            InvalidMoveError: root 삭제 시도
            ReservedNameError: 내부 디렉터리 직접 삭제 시도
        """
        check_reserved_names(folder_path)
        folder_dir = self._folder(folder_path)
        self._protect_root(folder_dir, folder_path)

        try:
            shutil.rmtree(folder_dir)
        except FileNotFoundError:
            logger.debug(f"Folder already gone: {folder_dir}")
            return

        logger.info(f"Deleted folder {folder_path!r}")

    def rename_folder(self, folder_path: str, new_name: str) -> str:
        """
        같은 부모 아래에서 폴더 이름 변경.

        Returns:
            새 상대 경로

        Raises:
            InvalidNameError / ReservedNameError: new_name 부적합
            ReservedNameError: 내부 디렉터리 이름 변경 시도
            AlreadyExistsError: 같은 이름 존재
            FileNotFoundError: 원본 폴더 없음
        """
        check_reserved_names(folder_path)
        check_folder_name(new_name)
        folder_dir = self._folder(folder_path)
        self._protect_root(folder_dir, folder_path)

        target = self._folder(to_relative(self.root, folder_dir.parent / new_name))
        if target == folder_dir:
            return to_relative(self.root, folder_dir)
        if target.exists():
            raise AlreadyExistsError(
                ErrorCodes.ALREADY_EXISTS,
                path=to_relative(self.root, target),
            )

        folder_dir.rename(target)

        relative = to_relative(self.root, target)
        logger.info(f"Renamed folder {folder_path!r} -> {relative!r}")
        return relative

    def move_folder(self, folder_path: str, new_parent_path: str) -> str:
        """
        폴더를 다른 부모 아래로 이동.

        존재 확인 후 rename (원자적이지 않음, 동시 요청 간 race 가능).

        Returns:
            새 상대 경로

        Raises:
            ReservedNameError: 원본 또는 대상 경로에 내부 디렉터리명 포함
            InvalidMoveError: 자기 자신/하위 폴더로 이동, root 이동
            AlreadyExistsError: 대상에 같은 이름 존재
        """
        check_reserved_names(folder_path)
        check_reserved_names(new_parent_path)
        folder_dir = self._folder(folder_path)
        self._protect_root(folder_dir, folder_path)

        new_parent = self._folder(new_parent_path)
        target = new_parent / folder_dir.name

        if target == folder_dir:
            return to_relative(self.root, folder_dir)

        if str(target).startswith(str(folder_dir) + os.sep):
            raise InvalidMoveError(
                ErrorCodes.MOVE_INTO_SELF,
                path=folder_path,
                new_parent=new_parent_path,
            )

        if target.exists():
            raise AlreadyExistsError(
                ErrorCodes.ALREADY_EXISTS,
                path=to_relative(self.root, target),
            )

        new_parent.mkdir(parents=True, exist_ok=True)
        folder_dir.rename(target)

        relative = to_relative(self.root, target)
        logger.info(f"Moved folder {folder_path!r} -> {relative!r}")
        return relative
