"""
FastAPI Routes.

API 라우트 (REST, Form 입력 + JSON 응답 / ZIP 다운로드)
"""

from . import assets

__all__ = ["assets"]
