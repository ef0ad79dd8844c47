"""
Domain Constants: 저장소 전역 상수.

디렉터리 규칙, 파일명 정책, 이미지 인코딩 기본값 등
저장소 전반에서 사용되는 값들.
"""

import re

# =============================================================================
# Folder Layout (폴더 내부 구조)
# =============================================================================
# {root}/{folder...}/
# ├── originals/          # 업로드 원본 (불변 바이트)
# ├── webp/               # primary rendition (정체성 기준 파일명)
# ├── {W}x{H}/            # 사이즈별 derivative
# └── index.json          # 폴더 메타데이터 (order, sizes)

ORIGINALS_DIR = "originals"
WEBP_DIR = "webp"
METADATA_FILENAME = "index.json"
METADATA_LOCK_FILENAME = ".index.json.lock"

# 사용자 폴더명으로 쓸 수 없는 내부 디렉터리
INTERNAL_DIRS = (ORIGINALS_DIR, WEBP_DIR)
SIZE_DIR_PATTERN = re.compile(r"\d+x\d+")

# =============================================================================
# Filename Policy (파일명 정책)
# =============================================================================
# canonical filename: {slug}-{hash}.webp
# 예: my-photo-deadbeef.webp

PRIMARY_EXTENSION = ".webp"
DEFAULT_ORIGINAL_EXTENSION = ".jpg"
CONTENT_HASH_LENGTH = 8

# =============================================================================
# Encoding Defaults (인코딩 기본값, default.yaml에서 오버라이드 가능)
# =============================================================================

PRIMARY_MAX_WIDTH = 2000
PRIMARY_QUALITY = 85
DERIVATIVE_QUALITY = 80

# 폴더별 메타데이터 락 timeout (초)
DEFAULT_LOCK_TIMEOUT = 10.0
