"""
해시/파일명 규칙: content hash, slug, canonical stem

규칙:
- canonical filename = {slug}-{hash}.webp
- hash: 업로드 바이트 MD5 앞 8자리 (rename 시 재계산 금지)
- slug: 소문자, 공백 → "-", 단어 문자 외 제거, "-" 연속 축약
- original / primary / derivative 모두 같은 stem 공유
"""

import hashlib
import re
import unicodedata
from pathlib import Path

from src.domain.constants import CONTENT_HASH_LENGTH, PRIMARY_EXTENSION

# slug가 비었을 때 (예: 영문/숫자 없는 파일명)
FALLBACK_SLUG = "image"

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w-]", re.ASCII)
_HYPHENS = re.compile(r"-+")


def compute_content_hash(data: bytes) -> str:
    """
    업로드 바이트의 content fingerprint.

    Args:
        data: 원본 바이트

    Returns:
        16진수 8자리 문자열
    """
    return hashlib.md5(data).hexdigest()[:CONTENT_HASH_LENGTH]


def slugify(text: str) -> str:
    """
    URL-safe slug 생성.

    NFD 정규화 후 ASCII 단어 문자만 남김 (악센트 제거 효과).

    Examples:
        >>> slugify("My Photo")
        'my-photo'
        >>> slugify("Café  Noir!")
        'cafe-noir'
    """
    slug = unicodedata.normalize("NFD", str(text).lower()).strip()
    slug = _WHITESPACE.sub("-", slug)
    slug = _NON_WORD.sub("", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug or FALLBACK_SLUG


def build_canonical_stem(original_filename: str, data: bytes) -> str:
    """업로드 파일명 + 바이트 → {slug}-{hash}."""
    slug = slugify(Path(original_filename).stem)
    return f"{slug}-{compute_content_hash(data)}"


def primary_filename(stem: str) -> str:
    """stem → primary rendition 파일명."""
    return f"{stem}{PRIMARY_EXTENSION}"


def stem_of(filename: str) -> str:
    """파일명에서 stem 추출 (첫 "." 이전)."""
    return filename.split(".", 1)[0]


def hash_of(filename: str) -> str:
    """stem의 마지막 "-" 세그먼트 (hash 부분)."""
    return stem_of(filename).rsplit("-", 1)[-1]


def slug_of(filename: str) -> str:
    """stem에서 마지막 hash 세그먼트를 뺀 부분 (중복 검사 키)."""
    stem = stem_of(filename)
    if "-" not in stem:
        return stem
    return stem.rsplit("-", 1)[0]
