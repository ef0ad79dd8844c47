"""
Error definitions for the asset store.

규칙:
- 조용한 실패 금지 → 권위 있는 단계(order, primary rendition) 실패는 그대로 전파
- 보조 산출물(original, derivative) 부재는 호출 지점에서 흡수
- 파일시스템 에러는 OSError 계열 그대로 전파 (래핑하지 않음)
"""

from typing import Any


class StoreError(Exception):
    """
    저장소 정책 위반 시 발생하는 에러.

    사용자가 요청을 바꿔야만 해결되는 경우에만 사용:
    - 루트 밖으로 벗어나는 경로
    - 내부 디렉터리명 사용
    - 대상 위치 점유
    - 디코딩 불가능한 이미지

    Usage:
        raise ReservedNameError(ErrorCodes.RESERVED_NAME, path="a/webp")
    """

    def __init__(self, code: str, **context: Any) -> None:
        self.code = code
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"[{self.code}] {ctx_str}" if ctx_str else f"[{self.code}]"

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "code": self.code,
            **self.context,
        }


class PathEscapeError(StoreError):
    """resolve된 경로가 storage root 밖을 가리킴. 재시도 금지."""


class ReservedNameError(StoreError):
    """originals, webp, WxH 등 내부 디렉터리명과 충돌."""


class InvalidNameError(StoreError):
    """빈 이름, 경로 구분자가 섞인 이름 등 폴더명으로 쓸 수 없는 값."""


class AlreadyExistsError(StoreError):
    """대상 위치에 같은 이름이 이미 존재."""


class EncodeError(StoreError):
    """래스터 이미지로 디코딩할 수 없는 바이트. 해당 파일만 실패."""


class InvalidSizeError(StoreError):
    """WIDTHxHEIGHT 형식이 아닌 size spec."""


class InvalidMoveError(StoreError):
    """자기 자신/하위 폴더로의 이동, 루트 폴더 조작 등."""


class LockTimeoutError(StoreError):
    """폴더 메타데이터 락 획득 실패."""


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """에러 코드 상수. HTTP 레이어는 이 코드를 그대로 응답 body에 싣는다."""

    # === Path ===
    PATH_ESCAPE = "PATH_ESCAPE"
    RESERVED_NAME = "RESERVED_NAME"
    INVALID_NAME = "INVALID_NAME"

    # === Folder ===
    ALREADY_EXISTS = "ALREADY_EXISTS"
    MOVE_INTO_SELF = "MOVE_INTO_SELF"
    ROOT_FOLDER_PROTECTED = "ROOT_FOLDER_PROTECTED"

    # === Image ===
    ENCODE_FAILED = "ENCODE_FAILED"
    INVALID_SIZE = "INVALID_SIZE"

    # === Metadata ===
    METADATA_LOCK_TIMEOUT = "METADATA_LOCK_TIMEOUT"
