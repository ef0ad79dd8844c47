"""
Application Services.

역할:
- uploads: 중복 검사 + replace 정책 + 일괄 저장
"""

from .uploads import UploadResult, UploadService

__all__ = [
    "UploadService",
    "UploadResult",
]
