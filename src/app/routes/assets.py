"""
Assets Routes: 폴더/이미지 조회 및 변경 API.

- GET  /api/assets/tree              → 폴더 트리
- GET  /api/assets/folders           → 폴더 내용 (order 순서)
- POST /api/assets/folders           → 폴더 생성
- POST /api/assets/folders/rename    → 폴더 이름 변경
- POST /api/assets/folders/move      → 폴더 이동
- POST /api/assets/folders/delete    → 폴더 삭제
- POST /api/assets/images/upload     → 업로드 (replace 옵션)
- POST /api/assets/images/duplicates → slug 중복 검사
- POST /api/assets/images/rename     → 이미지 이름 변경
- POST /api/assets/images/delete     → 이미지 삭제 (단건/일괄)
- POST /api/assets/images/move       → 이미지 이동 (단건/일괄)
- POST /api/assets/images/reorder    → 표시 순서 변경
- POST /api/assets/sizes             → derivative size 추가
- POST /api/assets/sizes/remove      → derivative size 제거
- GET  /api/assets/download          → 폴더 ZIP (originals + index.json)

핸들러는 sync 로 정의 → FastAPI threadpool 에서 실행 (인코딩이 이벤트 루프를 막지 않음).
"""

import json
import zipfile
from collections.abc import Generator
from contextlib import contextmanager
from io import BytesIO
from pathlib import Path
from typing import Any

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from src.app.services.uploads import UploadService
from src.core.paths import is_internal_dir
from src.core.store import AssetStore
from src.domain.constants import ORIGINALS_DIR
from src.domain.errors import (
    AlreadyExistsError,
    EncodeError,
    LockTimeoutError,
    StoreError,
)

api_router = APIRouter()


def get_store(request: Request) -> AssetStore:
    """Request에서 AssetStore 가져오기."""
    return request.app.state.store


# =============================================================================
# Error Translation
# =============================================================================

def _status_for(error: StoreError) -> int:
    if isinstance(error, AlreadyExistsError):
        return 409
    if isinstance(error, EncodeError):
        return 422
    if isinstance(error, LockTimeoutError):
        return 503
    return 400


@contextmanager
def store_errors() -> Generator[None, None, None]:
    """StoreError / 파일 부재 → HTTPException ({code, message})."""
    try:
        yield
    except StoreError as e:
        raise HTTPException(
            status_code=_status_for(e),
            detail={"code": e.code, "message": str(e)},
        ) from e
    except (FileNotFoundError, NotADirectoryError) as e:
        raise HTTPException(
            status_code=404,
            detail={"code": "NOT_FOUND", "message": str(e)},
        ) from e


def _parse_json_list(raw: str, field_name: str) -> list[str]:
    """Form 으로 들어온 JSON 문자열 배열 파싱."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_JSON", "message": f"{field_name} must be valid JSON"},
        ) from None

    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_JSON", "message": f"{field_name} must be a list of strings"},
        )
    return value


# =============================================================================
# Read
# =============================================================================

@api_router.get("/tree")
def get_tree(request: Request, path: str = "") -> list[dict[str, Any]]:
    """폴더 트리 (네비게이션용)."""
    with store_errors():
        tree = get_store(request).get_folder_tree(path)
    return [node.to_dict() for node in tree]


@api_router.get("/folders")
def get_folder(request: Request, path: str = "") -> dict[str, Any]:
    """폴더 내용: images(order 순서), sizes, subfolders."""
    with store_errors():
        content = get_store(request).get_folder_content(path)
    return content.to_dict()


# =============================================================================
# Folders
# =============================================================================

@api_router.post("/folders")
def create_folder(
    request: Request,
    name: str = Form(...),
    parent: str = Form(""),
) -> dict[str, Any]:
    """폴더 생성."""
    with store_errors():
        created = get_store(request).create_folder(parent, name)
    return {"success": True, "path": created}


@api_router.post("/folders/rename")
def rename_folder(
    request: Request,
    path: str = Form(...),
    name: str = Form(...),
) -> dict[str, Any]:
    """폴더 이름 변경."""
    with store_errors():
        renamed = get_store(request).rename_folder(path, name)
    return {"success": True, "path": renamed}


@api_router.post("/folders/move")
def move_folder(
    request: Request,
    path: str = Form(...),
    new_parent: str = Form(""),
) -> dict[str, Any]:
    """폴더 이동."""
    with store_errors():
        moved = get_store(request).move_folder(path, new_parent)
    return {"success": True, "path": moved}


@api_router.post("/folders/delete")
def delete_folder(request: Request, path: str = Form(...)) -> dict[str, Any]:
    """폴더 하위 전체 삭제."""
    with store_errors():
        get_store(request).delete_folder(path)
    return {"success": True}


# =============================================================================
# Images
# =============================================================================

@api_router.post("/images/upload")
def upload_images(
    request: Request,
    images: list[UploadFile] = File(...),
    path: str = Form(""),
    replace: bool = Form(False),
) -> dict[str, Any]:
    """
    이미지 업로드.

    디코딩 불가 파일은 결과에 error 로 표시되고 나머지는 계속 저장됨.
    """
    uploads = [
        (upload.filename or "", upload.file.read())
        for upload in images
    ]

    with store_errors():
        results = UploadService(get_store(request)).ingest(path, uploads, replace=replace)

    return {
        "success": all(result.ok for result in results),
        "results": [result.to_dict() for result in results],
    }


@api_router.post("/images/duplicates")
def check_duplicates(
    request: Request,
    filenames: str = Form(...),  # JSON: ["a.jpg", ...]
    path: str = Form(""),
) -> dict[str, Any]:
    """업로드 예정 파일 중 slug 가 겹치는 것."""
    candidates = _parse_json_list(filenames, "filenames")
    duplicates = UploadService(get_store(request)).check_duplicates(path, candidates)
    return {"duplicates": duplicates}


@api_router.post("/images/rename")
def rename_image(
    request: Request,
    old_filename: str = Form(...),
    new_name: str = Form(...),
    path: str = Form(""),
) -> dict[str, Any]:
    """이미지 이름 변경 (hash 유지)."""
    with store_errors():
        filename = get_store(request).rename_image(path, old_filename, new_name)
    return {"success": True, "filename": filename}


@api_router.post("/images/delete")
def delete_images(
    request: Request,
    path: str = Form(""),
    filename: str | None = Form(None),
    filenames: str | None = Form(None),  # JSON: 일괄 삭제
) -> dict[str, Any]:
    """이미지 삭제 (filenames 가 있으면 일괄)."""
    targets = _parse_json_list(filenames, "filenames") if filenames else []
    if filename and not targets:
        targets = [filename]

    with store_errors():
        get_store(request).bulk_delete_images(path, targets)
    return {"success": True, "deleted": targets}


@api_router.post("/images/move")
def move_images(
    request: Request,
    old_path: str = Form(""),
    new_path: str = Form(""),
    filename: str | None = Form(None),
    filenames: str | None = Form(None),  # JSON: 일괄 이동
) -> dict[str, Any]:
    """이미지 이동 (filenames 가 있으면 일괄)."""
    targets = _parse_json_list(filenames, "filenames") if filenames else []
    if filename and not targets:
        targets = [filename]

    with store_errors():
        get_store(request).bulk_move_images(old_path, targets, new_path)
    return {"success": True, "moved": targets}


@api_router.post("/images/reorder")
def reorder_images(
    request: Request,
    order: str = Form(...),  # JSON: ["a-1234abcd.webp", ...]
    path: str = Form(""),
) -> dict[str, Any]:
    """표시 순서 변경."""
    new_order = _parse_json_list(order, "order")
    with store_errors():
        get_store(request).reorder_images(path, new_order)
    return {"success": True}


# =============================================================================
# Sizes
# =============================================================================

@api_router.post("/sizes")
def add_size(
    request: Request,
    size: str = Form(...),
    path: str = Form(""),
) -> dict[str, Any]:
    """derivative size 추가 + 기존 이미지 생성."""
    with store_errors():
        generated = get_store(request).add_size_to_folder(path, size)
    return {"success": True, "generated": generated}


@api_router.post("/sizes/remove")
def remove_size(
    request: Request,
    size: str = Form(...),
    path: str = Form(""),
) -> dict[str, Any]:
    """derivative size 제거."""
    with store_errors():
        get_store(request).remove_size_from_folder(path, size)
    return {"success": True}


# =============================================================================
# Download
# =============================================================================

def _is_archivable(relative: Path) -> bool:
    """webp/, WxH/ 하위와 숨김 파일(락, temp) 제외."""
    parts = relative.parts
    if any(part != ORIGINALS_DIR and is_internal_dir(part) for part in parts[:-1]):
        return False
    return not parts[-1].startswith(".")


@api_router.get("/download")
def download_folder(request: Request, path: str = "") -> StreamingResponse:
    """
    폴더 ZIP 다운로드.

    보안: symlink 제외, resolve 된 경로가 폴더 내부인 파일만 포함.
    """
    with store_errors():
        folder_dir = get_store(request).locate_folder(path)

    base = folder_dir.resolve()
    zip_buffer = BytesIO()
    with zipfile.ZipFile(zip_buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for f in sorted(folder_dir.rglob("*")):
            if not f.is_file() or f.is_symlink():
                continue
            relative = f.relative_to(folder_dir)
            if not _is_archivable(relative):
                continue
            try:
                f.resolve(strict=True).relative_to(base)
            except (ValueError, OSError):
                continue
            zf.write(f, arcname=relative.as_posix())

    zip_buffer.seek(0)
    folder_name = folder_dir.name if path.strip("/") else "root"

    return StreamingResponse(
        zip_buffer,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{folder_name}.zip"',
        },
    )
