"""
경로 검증: storage root 격리 + 내부 디렉터리명 가드

규칙:
- 외부에서 들어온 모든 경로는 파일시스템 호출 전에 resolve_path 통과 필수
- root 밖으로 벗어나면 PathEscapeError (재시도 금지)
- originals, webp, WxH 는 어떤 세그먼트에서도 사용자 폴더명 불가
- 예약어 검사는 create/rename/move 의 "새" 이름에만 적용
  (기존 내부 디렉터리는 목록 조회에서 건너뜀)
"""

import os
import re
from pathlib import Path

from src.domain.constants import INTERNAL_DIRS, SIZE_DIR_PATTERN
from src.domain.errors import (
    ErrorCodes,
    InvalidNameError,
    PathEscapeError,
    ReservedNameError,
)

# "/" 와 "\" 모두 세그먼트 구분자로 취급
_SEGMENT_SPLIT = re.compile(r"[/\\]")


def resolve_path(root: Path, relative_path: str) -> Path:
    """
    root 기준 상대 경로를 절대 경로로 변환.

    정규화는 문자열 기준 (symlink 해석 없음).

    Args:
        root: storage root (절대 경로)
        relative_path: 사용자 입력 경로 ("" = root)

    Returns:
        정규화된 절대 경로 (항상 root 하위 또는 root 자체)

    Raises:
        PathEscapeError: 정규화 결과가 root 밖을 가리킬 때
    """
    root_str = os.path.abspath(root)
    absolute = os.path.normpath(os.path.join(root_str, relative_path or ""))
    relative = os.path.relpath(absolute, root_str)

    if os.path.isabs(relative) or relative.split(os.sep)[0] == "..":
        raise PathEscapeError(ErrorCodes.PATH_ESCAPE, path=relative_path)

    return Path(absolute)


def to_relative(root: Path, absolute_path: Path) -> str:
    """
    절대 경로 → root 기준 상대 경로 ("/" 구분, root 자체는 "").
    """
    relative = os.path.relpath(absolute_path, os.path.abspath(root))
    if relative == ".":
        return ""
    return Path(relative).as_posix()


def is_internal_dir(name: str) -> bool:
    """originals, webp, WxH 형식이면 내부 디렉터리."""
    return name in INTERNAL_DIRS or SIZE_DIR_PATTERN.fullmatch(name) is not None


def check_reserved_names(path: str) -> None:
    """
    경로의 모든 세그먼트에 대해 내부 디렉터리명 사용 여부 검사.

    Args:
        path: 새로 만들거나 옮겨갈 경로 / 이름

    Raises:
        ReservedNameError: 세그먼트 중 하나라도 내부 디렉터리명일 때
    """
    for segment in split_segments(path):
        if is_internal_dir(segment):
            raise ReservedNameError(
                ErrorCodes.RESERVED_NAME,
                path=path,
                segment=segment,
            )


def split_segments(path: str) -> list[str]:
    """경로 문자열 → 세그먼트 목록 ("/" 와 "\\" 구분)."""
    return _SEGMENT_SPLIT.split(path or "")


def check_folder_name(name: str) -> None:
    """
    단일 폴더명 검증 (rename 용).

    Raises:
        InvalidNameError: 빈 이름, ".", "..", 구분자 포함
        ReservedNameError: 내부 디렉터리명
    """
    if not name or name in (".", "..") or _SEGMENT_SPLIT.search(name):
        raise InvalidNameError(ErrorCodes.INVALID_NAME, name=name)
    check_reserved_names(name)
